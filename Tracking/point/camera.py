#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Module Description:
    点跟踪使用的摄像头源，按需返回帧并负责设备的生命周期
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from ..core.error_codes import CAMERA_NOT_AVAILABLE, SUCCESS, VIDEO_SOURCE_ERROR

logger = logging.getLogger("CVCamera")


@dataclass
class CameraInfo:
    """当前生效的分辨率和测得的帧率"""
    res_x: int = 0
    res_y: int = 0
    fps: float = 0.0


class Camera(ABC):
    """
    摄像头源基类。

    设备号、分辨率和帧率可以在 start() 之间随时修改；运行中修改时，
    设备会在下一次 get_frame() 时重新打开。
    """

    # 帧率平滑系数
    FPS_SMOOTHING = 0.1

    def __init__(self) -> None:
        self.desired_index = 0
        self.desired_res: Tuple[int, int] = (640, 480)
        self.desired_fps = 30
        self.active = False
        self._started = False
        self._needs_restart = False
        self._dt_mean = 0.0
        self._dt_valid = 0.0
        self.info = CameraInfo()

    def set_device_index(self, index: int) -> None:
        if index != self.desired_index:
            self.desired_index = index
            self._needs_restart = self._started

    def set_res(self, res_x: int, res_y: int) -> None:
        if (res_x, res_y) != self.desired_res:
            self.desired_res = (res_x, res_y)
            self._needs_restart = self._started

    def set_fps(self, fps: int) -> None:
        if fps != self.desired_fps:
            self.desired_fps = fps
            self._needs_restart = self._started

    def start(self) -> int:
        """打开设备，返回错误码"""
        result = self._start()
        self.active = result == SUCCESS
        self._started = True
        self._needs_restart = False
        self._dt_mean = 0.0
        self._dt_valid = 0.0
        return result

    def stop(self) -> None:
        self._stop()
        self.active = False
        self._started = False
        self._needs_restart = False

    def get_frame(self, dt: float) -> Tuple[bool, Optional[np.ndarray]]:
        """
        获取一帧，不抛出异常

        Args:
            dt: 距上次调用经过的时间（秒），用于估计帧率

        Returns:
            Tuple[bool, Optional[np.ndarray]]: 是否得到新帧，以及该帧
        """
        if self._needs_restart:
            logger.info("Camera settings changed, restarting device %s", self.desired_index)
            self.stop()
            self.start()

        self._dt_valid += dt
        if not self.active:
            return False, None

        try:
            ok, frame = self._get_frame()
        except cv2.error as e:
            logger.warning("Frame grab failed: %s", e)
            return False, None

        if not ok:
            return False, None

        if self._dt_valid > 0:
            if self._dt_mean <= 0:
                self._dt_mean = self._dt_valid
            else:
                self._dt_mean = ((1 - self.FPS_SMOOTHING) * self._dt_mean
                                 + self.FPS_SMOOTHING * self._dt_valid)
            self.info.fps = 1.0 / self._dt_mean
        self._dt_valid = 0.0
        return True, frame

    def get_info(self) -> CameraInfo:
        return self.info

    @abstractmethod
    def _start(self) -> int:
        """打开设备"""

    @abstractmethod
    def _stop(self) -> None:
        """释放设备"""

    @abstractmethod
    def _get_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """读取一帧"""


class CVCamera(Camera):
    """基于 OpenCV VideoCapture 的摄像头源"""

    def __init__(self) -> None:
        super().__init__()
        self.capture: Optional[cv2.VideoCapture] = None
        self._operation_lock = threading.Lock()

    def _start(self) -> int:
        with self._operation_lock:
            try:
                self.capture = cv2.VideoCapture(self.desired_index)
                if not self.capture.isOpened():
                    logger.error("Failed to open camera device: %s", self.desired_index)
                    self.capture.release()
                    self.capture = None
                    return CAMERA_NOT_AVAILABLE

                res_x, res_y = self.desired_res
                self.capture.set(cv2.CAP_PROP_FRAME_WIDTH, res_x)
                self.capture.set(cv2.CAP_PROP_FRAME_HEIGHT, res_y)
                self.capture.set(cv2.CAP_PROP_FPS, self.desired_fps)

                self.info.res_x = int(self.capture.get(cv2.CAP_PROP_FRAME_WIDTH))
                self.info.res_y = int(self.capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
                logger.info(
                    "Camera opened. Requested: %sx%s@%s, Actual: %sx%s",
                    res_x, res_y, self.desired_fps, self.info.res_x, self.info.res_y
                )
                return SUCCESS
            except cv2.error as e:
                logger.error("Error opening camera: %s", e, exc_info=True)
                self.capture = None
                return VIDEO_SOURCE_ERROR

    def _stop(self) -> None:
        with self._operation_lock:
            if self.capture is not None:
                self.capture.release()
                self.capture = None
                logger.info("Camera %s released", self.desired_index)

    def _get_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        with self._operation_lock:
            if self.capture is None:
                return False, None
            ok, frame = self.capture.read()
        if not ok or frame is None:
            return False, None
        return True, frame
