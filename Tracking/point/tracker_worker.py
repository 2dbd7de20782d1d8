"""
点跟踪线程：取帧、提取亮点、更新姿态并发布显示帧

所属线程通过 request_apply() 发布配置快照、通过 read_pose_as_angles() 读取姿态、
通过 stop() 结束循环；跟踪线程在每次迭代开始时应用待处理的配置。
"""
import logging
import threading
import time
import weakref
from typing import Any, Optional

import numpy as np

from ..core.base_tracker import BaseTracker, Command, HeadPose, PauseMode
from ..core.error_codes import (INVALID_ARGUMENT, RUNTIME_ERROR, SUCCESS,
                                TRACKER_START_FAILED, TRACKER_STOP_FAILED,
                                get_error_message)
from ..core.settings import DEFAULT_SETTINGS, SettingsSlot, TrackerSettings
from .camera import Camera, CVCamera
from .point_extractor import PointExtractor
from .point_tracker import PointModel, PointTracker
from .pose_convert import camera_pose_to_head_pose

logger = logging.getLogger('PointTrackerWorker')


def _tracking_loop(worker_ref: 'weakref.ref') -> None:
    """
    跟踪线程入口，只持有跟踪器的弱引用

    每次迭代临时取得强引用，所属线程释放最后一个引用后跟踪器可以被回收，
    其析构会设置 ABORT，循环随之退出。
    """
    logger.info("Tracker:: Thread started")
    while True:
        worker = worker_ref()
        if worker is None or not worker.step():
            break
        del worker
    logger.info("Tracker:: Thread stopping")


class PointTrackerWorker(BaseTracker):
    """
    点标记头部跟踪线程

    姿态的写入（帧处理）和读取（read_pose_as_angles）由同一把可重入锁互斥；
    配置槽使用独立的锁，发布配置不会等待正在处理的帧。
    """

    # SKIP_FRAMES 模式下暂停时的轮询间隔（秒）
    PAUSE_POLL_INTERVAL = 0.01

    def __init__(self, name: str = "point_tracker",
                 settings: TrackerSettings = DEFAULT_SETTINGS,
                 camera: Optional[Camera] = None,
                 point_extractor: Optional[PointExtractor] = None,
                 point_tracker: Optional[PointTracker] = None,
                 pause_mode: PauseMode = PauseMode.IGNORE,
                 focal_length: Optional[float] = None,
                 join_timeout: Optional[float] = None):
        """
        Args:
            name: 跟踪器名称
            settings: start() 时发布的初始配置
            camera: 摄像头源，默认使用 OpenCV 摄像头
            point_extractor: 亮点提取器
            point_tracker: 姿态求解器
            pause_mode: PAUSE 标志的作用范围
            focal_length: 以帧宽度为单位的焦距，仅在未提供 point_tracker 时使用
            join_timeout: stop() 等待线程退出的最长时间，None 表示一直等待
        """
        super().__init__(name)
        self.settings = settings
        self.camera = camera if camera is not None else CVCamera()
        self.point_extractor = point_extractor if point_extractor is not None else PointExtractor()
        self.point_tracker = (point_tracker if point_tracker is not None
                              else PointTracker(focal_length))
        self.pause_mode = pause_mode
        self.join_timeout = join_timeout

        self.mutex = threading.RLock()
        self._settings_slot = SettingsSlot()
        self.model = PointModel(settings.model_point1, settings.model_point2)
        self.t_MH = np.zeros(3)

        self.video_widget: Optional[Any] = None
        self._thread: Optional[threading.Thread] = None
        self._last_time = time.monotonic()

        self.iteration_count = 0
        self.frame_count = 0
        self.pose_update_count = 0

    def __enter__(self) -> 'PointTrackerWorker':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    def __del__(self):
        try:
            if self._thread is not None and self._thread is threading.current_thread():
                # 最后一个引用在跟踪线程内释放，不能 join 自身
                self.set_command(Command.ABORT)
                self.camera.stop()
            else:
                self.stop()
        except AttributeError:
            # 构造未完成
            pass

    def start(self, display_target: Optional[Any] = None) -> int:
        """
        启动跟踪线程

        Args:
            display_target: 显示目标，需提供 update_image(frame)

        Returns:
            int: 错误码，0表示成功，其他值表示失败
        """
        self.video_widget = display_target
        return super().start()

    def initialize(self) -> int:
        # 启动前由所属线程请求的配置优先于构造时的配置
        if not self._settings_slot.has_pending():
            self.request_apply(self.settings)
        try:
            applied = self.apply_pending()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to apply initial settings: %s", e)
            return RUNTIME_ERROR
        if not applied:
            return INVALID_ARGUMENT

        result = self.camera.start()
        if result != SUCCESS:
            logger.error("Camera start failed: %s", get_error_message(result))

        self._last_time = time.monotonic()
        self._thread = threading.Thread(target=_tracking_loop, args=(weakref.ref(self),),
                                        name=self.name, daemon=True)
        try:
            self._thread.start()
        except RuntimeError as e:
            logger.error("Failed to start tracking thread: %s", e)
            self.camera.stop()
            return TRACKER_START_FAILED

        logger.info("Tracker '%s' started", self.name)
        return SUCCESS

    def shutdown(self) -> int:
        if self._thread is not None:
            if self._thread is threading.current_thread():
                logger.warning("stop() called from the tracking thread, not joining")
                return TRACKER_STOP_FAILED
            self._thread.join(timeout=self.join_timeout)
            if self._thread.is_alive():
                logger.warning("Tracking thread did not stop in time")
                return TRACKER_STOP_FAILED
        self.camera.stop()
        logger.info("Tracker '%s' stopped", self.name)
        return SUCCESS

    def request_apply(self, settings: TrackerSettings) -> None:
        """发布配置快照，覆盖尚未应用的旧快照"""
        self._settings_slot.put(settings)

    def apply_pending(self) -> bool:
        """
        取出并应用待处理的配置快照，槽为空时直接返回

        Returns:
            bool: 是否应用了新配置
        """
        s = self._settings_slot.take()
        if s is None:
            return False

        logger.info("Tracker:: Applying settings")
        try:
            model = PointModel(s.model_point1, s.model_point2)
        except ValueError as e:
            logger.error("Rejected settings, keeping previous configuration: %s", e)
            return False
        t_MH = np.array(s.head_to_model_offset, dtype=np.float64)

        stage = "camera"
        try:
            self.camera.set_device_index(s.cam_index)
            self.camera.set_res(*s.cam_res)
            self.camera.set_fps(s.cam_fps)
            stage = "point extractor"
            self.point_extractor.configure(s.threshold, s.threshold_secondary,
                                           s.min_point_size, s.max_point_size)
        except Exception:
            # 模型、偏移和 settings 保持旧值；已提交给摄像头的部分无法撤回
            logger.error("Settings partially applied, %s failed; model and offset unchanged",
                         stage)
            raise

        with self.mutex:
            self.model = model
            self.t_MH = t_MH
            self.settings = s
        logger.info("Tracker::apply ends")
        return True

    def step(self) -> bool:
        """
        执行一次循环迭代

        Returns:
            bool: 收到ABORT时返回False
        """
        if self.has_command(Command.ABORT):
            return False
        try:
            self._iterate()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error in tracking loop: %s", e, exc_info=True)
        self.iteration_count += 1
        return True

    def _iterate(self) -> None:
        self.apply_pending()

        now = time.monotonic()
        dt = now - self._last_time
        self._last_time = now

        paused = self.has_command(Command.PAUSE)
        if paused and self.pause_mode == PauseMode.SKIP_FRAMES:
            time.sleep(self.PAUSE_POLL_INTERVAL)
            return

        new_frame, frame = self.camera.get_frame(dt)
        if not new_frame or frame is None or frame.size == 0:
            return

        with self.mutex:
            self.frame_count += 1
            points = self.point_extractor.extract_points(frame)
            freeze = paused and self.pause_mode == PauseMode.FREEZE_POSE
            if len(points) == PointModel.N_POINTS and not freeze:
                if self.point_tracker.track(points, self.model):
                    self.pose_update_count += 1
            if self.video_widget is not None:
                self.video_widget.update_image(frame)

    def read_pose_as_angles(self) -> HeadPose:
        """
        读取当前头部姿态

        Returns:
            HeadPose: 偏航/俯仰/翻滚（度）和平移（厘米）
        """
        with self.mutex:
            return camera_pose_to_head_pose(self.point_tracker.pose(), self.t_MH)

    def get_key_info(self) -> str:
        pose = self.read_pose_as_angles()
        return (f"{self.name}: yaw={pose.yaw:.1f} pitch={pose.pitch:.1f} "
                f"roll={pose.roll:.1f} t=({pose.tx:.1f}, {pose.ty:.1f}, {pose.tz:.1f})")
