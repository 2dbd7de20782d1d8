"""跟踪器配置模块，包含不可变配置快照、单槽配置邮箱以及JSON配置存储"""

import dataclasses
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger('TrackerSettings')

Vec3 = Tuple[float, float, float]


def _as_vec3(value: Any, name: str) -> Vec3:
    try:
        vec = tuple(float(v) for v in value)
    except TypeError as e:
        raise ValueError(f"{name} must be a sequence of 3 numbers") from e
    if len(vec) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(vec)}")
    return vec


@dataclass(frozen=True)
class TrackerSettings:
    """
    一次性发布的配置快照，交给跟踪线程后只读。

    长度单位为毫米，点大小为像素面积。
    """
    cam_index: int = 0
    cam_res: Tuple[int, int] = (640, 480)
    cam_fps: int = 30
    threshold: int = 128
    threshold_secondary: int = 128
    min_point_size: float = 10.0
    max_point_size: float = 50.0
    model_point1: Vec3 = (60.0, 40.0, -30.0)
    model_point2: Vec3 = (-60.0, 40.0, -30.0)
    head_to_model_offset: Vec3 = (0.0, 0.0, 0.0)

    def __post_init__(self):
        # frozen 数据类只能通过 object.__setattr__ 规范化字段
        object.__setattr__(self, "cam_index", int(self.cam_index))
        object.__setattr__(self, "cam_fps", int(self.cam_fps))
        object.__setattr__(self, "threshold", int(self.threshold))
        object.__setattr__(self, "threshold_secondary", int(self.threshold_secondary))
        object.__setattr__(self, "min_point_size", float(self.min_point_size))
        object.__setattr__(self, "max_point_size", float(self.max_point_size))

        res = tuple(int(v) for v in self.cam_res)
        if len(res) != 2 or res[0] <= 0 or res[1] <= 0:
            raise ValueError(f"cam_res must be two positive integers, got {self.cam_res}")
        object.__setattr__(self, "cam_res", res)

        for name in ("model_point1", "model_point2", "head_to_model_offset"):
            object.__setattr__(self, name, _as_vec3(getattr(self, name), name))

        if self.cam_index < 0:
            raise ValueError(f"cam_index must be >= 0, got {self.cam_index}")
        if self.cam_fps <= 0:
            raise ValueError(f"cam_fps must be > 0, got {self.cam_fps}")
        for name in ("threshold", "threshold_secondary"):
            if not 0 <= getattr(self, name) <= 255:
                raise ValueError(f"{name} must be within [0, 255]")
        if self.min_point_size < 0 or self.min_point_size > self.max_point_size:
            raise ValueError(
                f"invalid point size bounds [{self.min_point_size}, {self.max_point_size}]")

    def to_dict(self) -> Dict[str, Any]:
        """转换为可JSON序列化的字典"""
        result = dataclasses.asdict(self)
        for key, value in result.items():
            if isinstance(value, tuple):
                result[key] = list(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrackerSettings':
        """从字典构造快照，忽略未知字段"""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown settings keys: %s", sorted(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})


class SettingsSlot:
    """
    单槽配置邮箱：写线程发布，跟踪线程取走。

    后写覆盖先写，未被取走的旧快照直接丢弃；take() 取出并清空，
    保证每个快照最多被应用一次。该锁只保护槽位本身，与姿态锁无关。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Optional[TrackerSettings] = None

    def put(self, settings: TrackerSettings) -> None:
        if not isinstance(settings, TrackerSettings):
            raise TypeError(f"expected TrackerSettings, got {type(settings).__name__}")
        with self._lock:
            if self._pending is not None:
                logger.debug("Dropping unconsumed settings snapshot")
            self._pending = settings

    def take(self) -> Optional[TrackerSettings]:
        with self._lock:
            settings, self._pending = self._pending, None
        return settings

    def has_pending(self) -> bool:
        return self._pending is not None


DEFAULT_SETTINGS = TrackerSettings()


class SettingsStore:
    """配置存储类，负责以JSON格式加载和保存跟踪器配置"""

    def __init__(self, config_path: str):
        """
        初始化配置存储

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.settings = self._load_settings()

    def _load_settings(self) -> TrackerSettings:
        """
        加载配置文件，若不存在则创建默认配置

        Returns:
            TrackerSettings: 配置快照
        """
        if not os.path.exists(self.config_path):
            logger.info("配置文件不存在，创建默认配置: %s", self.config_path)
            self._write(DEFAULT_SETTINGS)
            return DEFAULT_SETTINGS

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.error("配置文件格式错误: 顶层不是对象，使用默认配置")
                return DEFAULT_SETTINGS

            # 检查并补充缺失的配置项
            merged = DEFAULT_SETTINGS.to_dict()
            merged.update(data)
            settings = TrackerSettings.from_dict(merged)
        except (FileNotFoundError, PermissionError) as e:
            logger.error("无法访问配置文件: %s，使用默认配置", e)
            return DEFAULT_SETTINGS
        except json.JSONDecodeError as e:
            logger.error("配置文件格式错误: %s，使用默认配置", e)
            return DEFAULT_SETTINGS
        except (TypeError, ValueError) as e:
            logger.error("配置项取值无效: %s，使用默认配置", e)
            return DEFAULT_SETTINGS
        except OSError as e:
            logger.error("读写配置文件时发生系统错误: %s，使用默认配置", e)
            return DEFAULT_SETTINGS

        if set(data) != set(merged):
            self._write(settings)
        return settings

    def _write(self, settings: TrackerSettings) -> bool:
        try:
            config_dir = os.path.dirname(self.config_path)
            if config_dir:
                os.makedirs(config_dir, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(settings.to_dict(), f, ensure_ascii=False, indent=4)
            return True
        except (PermissionError, OSError) as e:
            logger.error("保存配置文件失败: %s", e)
            return False

    def save(self) -> bool:
        """
        保存当前配置到文件

        Returns:
            bool: 是否保存成功
        """
        return self._write(self.settings)

    def get_settings(self) -> TrackerSettings:
        """获取当前配置快照"""
        return self.settings

    def update(self, **changes: Any) -> TrackerSettings:
        """
        以替换的方式生成新的配置快照并保存

        Args:
            **changes: 需要修改的字段

        Returns:
            TrackerSettings: 新的配置快照

        Raises:
            ValueError: 字段取值无效
            TypeError: 存在未知字段
        """
        self.settings = dataclasses.replace(self.settings, **changes)
        self.save()
        return self.settings
