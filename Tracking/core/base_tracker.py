"""基本跟踪器模块，定义了跟踪器的生命周期状态、命令标志和输出姿态类。"""
import enum
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from .error_codes import ALREADY_INITIALIZED, NOT_INITIALIZED, SUCCESS


class TrackerStatus(enum.Enum):
    """跟踪线程的生命周期状态"""
    IDLE = "idle"          # 已构造，尚未启动
    RUNNING = "running"    # 循环运行中
    STOPPING = "stopping"  # 已收到ABORT，正在退出
    STOPPED = "stopped"    # 终止状态


class Command(enum.IntFlag):
    """由所属线程写入、跟踪线程轮询的命令位"""
    NONE = 0
    ABORT = 1
    PAUSE = 2


class PauseMode(enum.Enum):
    """
    PAUSE 标志对循环体的作用范围

    IGNORE: 仅记录标志，循环照常运行
    SKIP_FRAMES: 暂停期间不取帧，仍然应用配置
    FREEZE_POSE: 照常取帧、提取和显示，但不更新姿态
    """
    IGNORE = "ignore"
    SKIP_FRAMES = "skip_frames"
    FREEZE_POSE = "freeze_pose"


@dataclass
class HeadPose:
    """输出约定下的头部姿态，角度单位为度，平移单位为厘米。"""
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    tx: float = 0.0
    ty: float = 0.0
    tz: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """将姿态转换为字典。

        Returns:
            Dict[str, Any]: 包含六个自由度和时间戳的字典。
        """
        return {
            "timestamp": self.timestamp,
            "yaw": self.yaw,
            "pitch": self.pitch,
            "roll": self.roll,
            "tx": self.tx,
            "ty": self.ty,
            "tz": self.tz,
        }


class BaseTracker(ABC):
    """所有跟踪线程的抽象基类，负责命令标志与生命周期状态。"""

    def __init__(self, name: str):
        """
        初始化 BaseTracker。

        Args:
            name (str): 跟踪器的名称。
        """
        self.name = name
        self._status = TrackerStatus.IDLE
        self._commands = Command.NONE
        self._command_lock = threading.Lock()

    @abstractmethod
    def initialize(self) -> int:
        """
        初始化跟踪器并启动后台循环

        Returns:
            int: 错误码，0表示成功，其他值表示失败
        """

    @abstractmethod
    def shutdown(self) -> int:
        """
        等待后台循环退出并释放资源

        Returns:
            int: 错误码，0表示成功，其他值表示失败
        """

    def set_command(self, command: Command) -> None:
        """置位命令标志"""
        with self._command_lock:
            self._commands |= command

    def reset_command(self, command: Command) -> None:
        """清除命令标志"""
        with self._command_lock:
            self._commands &= ~command

    def has_command(self, command: Command) -> bool:
        """检查命令标志是否置位"""
        return bool(self._commands & command)

    @property
    def status(self) -> TrackerStatus:
        return self._status

    def start(self) -> int:
        """
        启动跟踪器，每个实例只能启动一次

        Returns:
            int: 错误码，0表示成功，其他值表示失败
        """
        if self._status != TrackerStatus.IDLE:
            return ALREADY_INITIALIZED

        result = self.initialize()
        if result == SUCCESS:
            self._status = TrackerStatus.RUNNING

        return result

    def stop(self) -> int:
        """
        请求ABORT并等待循环退出，可重复调用

        Returns:
            int: 错误码，0表示成功，其他值表示失败
        """
        if self._status == TrackerStatus.IDLE:
            return NOT_INITIALIZED
        if self._status == TrackerStatus.STOPPED:
            return SUCCESS

        self.set_command(Command.ABORT)
        if self._status == TrackerStatus.RUNNING:
            self._status = TrackerStatus.STOPPING

        result = self.shutdown()
        if result == SUCCESS:
            self._status = TrackerStatus.STOPPED

        return result

    def pause(self) -> None:
        """置位PAUSE，其效果由 PauseMode 决定"""
        self.set_command(Command.PAUSE)

    def resume(self) -> None:
        """清除PAUSE"""
        self.reset_command(Command.PAUSE)

    def is_running(self) -> bool:
        """
        检查跟踪器是否正在运行

        Returns:
            bool: 如果循环正在运行则返回True，否则返回False
        """
        return self._status == TrackerStatus.RUNNING

    def get_key_info(self) -> str:
        """
        获取跟踪器的关键信息

        Returns:
            str: 跟踪器的关键信息
        """
        return f"{self.name}: {self._status.value}"
