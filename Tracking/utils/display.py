"""显示目标：保存跟踪线程发布的最新一帧"""
import threading
from typing import Optional

import numpy as np


class FrameSink:
    """
    最简单的显示目标，只保留最新一帧的副本。

    update_image() 不阻塞调用方，界面线程通过 latest() 按自己的节奏取帧。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self.frame_count = 0

    def update_image(self, frame: np.ndarray) -> None:
        with self._lock:
            self._frame = frame.copy()
            self.frame_count += 1

    def latest(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._frame is None else self._frame.copy()
