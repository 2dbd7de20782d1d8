"""亮点标记提取模块：按阈值从图像帧中提取二维点"""
import logging
from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np

logger = logging.getLogger('PointExtractor')

Point2 = Tuple[float, float]


@dataclass(frozen=True)
class ExtractorConfig:
    """点提取参数，整体替换而不是逐字段修改"""
    threshold: int = 128            # 主阈值，亮点必须包含高于该值的像素
    threshold_secondary: int = 128  # 次阈值，用于向外生长亮斑
    min_size: float = 10.0          # 最小亮斑面积（像素）
    max_size: float = 50.0          # 最大亮斑面积（像素）


class PointExtractor:
    """
    基于双阈值的亮斑提取器

    输出坐标以帧宽度为单位、以图像中心为原点，x 向右，y 向上。
    """

    def __init__(self, config: ExtractorConfig = ExtractorConfig()):
        self.config = config

    @property
    def threshold(self) -> int:
        return self.config.threshold

    @property
    def threshold_secondary(self) -> int:
        return self.config.threshold_secondary

    @property
    def min_size(self) -> float:
        return self.config.min_size

    @property
    def max_size(self) -> float:
        return self.config.max_size

    def configure(self, threshold: int, threshold_secondary: int,
                  min_size: float, max_size: float) -> None:
        """以新的参数整体替换当前配置"""
        self.config = ExtractorConfig(threshold, threshold_secondary, min_size, max_size)
        logger.debug("Extractor configured: %s", self.config)

    def extract_points(self, frame: np.ndarray) -> List[Point2]:
        """
        提取亮点中心

        Args:
            frame: BGR 或灰度图像

        Returns:
            List[Point2]: 按连通域编号排序的归一化点坐标
        """
        config = self.config
        if frame.ndim == 3:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        else:
            gray = frame

        h, w = gray.shape[:2]
        low = min(config.threshold, config.threshold_secondary)
        _, mask = cv2.threshold(gray, low, 255, cv2.THRESH_BINARY)
        n_labels, labels, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)

        points: List[Point2] = []
        for label in range(1, n_labels):
            area = stats[label, cv2.CC_STAT_AREA]
            if area < config.min_size or area > config.max_size:
                continue

            x0 = stats[label, cv2.CC_STAT_LEFT]
            y0 = stats[label, cv2.CC_STAT_TOP]
            bw = stats[label, cv2.CC_STAT_WIDTH]
            bh = stats[label, cv2.CC_STAT_HEIGHT]
            blob = labels[y0:y0 + bh, x0:x0 + bw] == label
            values = gray[y0:y0 + bh, x0:x0 + bw].astype(np.float64) * blob

            # 亮斑必须至少有一个像素超过主阈值
            if values.max() <= config.threshold:
                continue

            total = values.sum()
            ys, xs = np.mgrid[0:bh, 0:bw]
            cx = x0 + (xs * values).sum() / total
            cy = y0 + (ys * values).sum() / total
            points.append(((cx - w / 2.0) / w, -(cy - h / 2.0) / w))

        return points
