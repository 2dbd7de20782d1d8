"""三点刚体模型与相机到模型姿态的求解"""
import itertools
import logging
import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

logger = logging.getLogger('PointTracker')

# 默认水平视场角（度）
DEFAULT_FOV = 56.0

# OpenCV 相机坐标系（y 向下）与跟踪器坐标系（y 向上）之间的翻转
_FLIP_Y = np.diag([1.0, -1.0, 1.0])


def focal_length_from_fov(fov_deg: float) -> float:
    """以帧宽度为单位的焦距"""
    return 0.5 / math.tan(math.radians(fov_deg) / 2.0)


class Affine:
    """刚体变换：3x3 旋转 + 3 维平移"""

    def __init__(self, R: Optional[np.ndarray] = None, t: Optional[np.ndarray] = None):
        self.R = np.eye(3) if R is None else np.array(R, dtype=np.float64).reshape(3, 3)
        self.t = np.zeros(3) if t is None else np.array(t, dtype=np.float64).reshape(3)

    def __mul__(self, other: 'Affine') -> 'Affine':
        return Affine(self.R @ other.R, self.R @ other.t + self.t)

    def __repr__(self) -> str:
        return f"Affine(R={self.R.tolist()}, t={self.t.tolist()})"

    def apply(self, point: Sequence[float]) -> np.ndarray:
        return self.R @ np.asarray(point, dtype=np.float64) + self.t

    def copy(self) -> 'Affine':
        return Affine(self.R.copy(), self.t.copy())


class PointModel:
    """
    由两个三维向量定义的三点刚体模型，构造后不可修改

    模型点为 M0 = 0、M1 = M01、M2 = M02（毫米）。
    """

    N_POINTS = 3

    def __init__(self, m01: Sequence[float], m02: Sequence[float]):
        self.M01 = np.array(m01, dtype=np.float64).reshape(3)
        self.M02 = np.array(m02, dtype=np.float64).reshape(3)
        if np.linalg.norm(np.cross(self.M01, self.M02)) < 1e-6:
            raise ValueError("model points must not be collinear")
        self.points = np.vstack([np.zeros(3), self.M01, self.M02])
        self.points.setflags(write=False)

    def __repr__(self) -> str:
        return f"PointModel(M01={self.M01.tolist()}, M02={self.M02.tolist()})"


def _rotation_angle(R_a: np.ndarray, R_b: np.ndarray) -> float:
    cos_angle = (np.trace(R_a.T @ R_b) - 1.0) / 2.0
    return math.acos(max(-1.0, min(1.0, cos_angle)))


class PointTracker:
    """
    根据三个归一化图像点求解相机到模型的姿态

    使用 P3P 求解所有点对应关系下的候选解，取与上一帧姿态最接近的一个；
    第一帧取旋转角最小的解。跟踪器坐标系 x 向右，y 向上，z 沿光轴。
    """

    def __init__(self, focal_length: Optional[float] = None):
        self.focal_length = (focal_length if focal_length is not None
                             else focal_length_from_fov(DEFAULT_FOV))
        self.camera_matrix = np.array([[self.focal_length, 0.0, 0.0],
                                       [0.0, self.focal_length, 0.0],
                                       [0.0, 0.0, 1.0]])
        self.X_CM = Affine()
        self.has_pose = False

    def reset(self, pose: Optional[Affine] = None) -> None:
        """丢弃历史姿态，可选地指定新的初始姿态"""
        self.X_CM = pose.copy() if pose is not None else Affine()
        self.has_pose = pose is not None

    def pose(self) -> Affine:
        return self.X_CM

    def _score(self, candidate: Affine) -> float:
        if not self.has_pose:
            return _rotation_angle(np.eye(3), candidate.R)
        prev = self.X_CM
        scale = max(np.linalg.norm(prev.t), 1.0)
        return (_rotation_angle(prev.R, candidate.R)
                + np.linalg.norm(candidate.t - prev.t) / scale)

    def _candidates(self, points: np.ndarray, model: PointModel):
        object_points = (model.points @ _FLIP_Y).astype(np.float64)
        for order in itertools.permutations(range(model.N_POINTS)):
            image_points = (points[list(order)] @ _FLIP_Y[:2, :2]).astype(np.float64)
            n_solutions, rvecs, tvecs = cv2.solveP3P(
                object_points, image_points, self.camera_matrix, None,
                flags=cv2.SOLVEPNP_P3P)
            for i in range(n_solutions):
                R_cv, _ = cv2.Rodrigues(rvecs[i])
                t_cv = np.asarray(tvecs[i], dtype=np.float64).reshape(3)
                yield Affine(_FLIP_Y @ R_cv @ _FLIP_Y, _FLIP_Y @ t_cv)

    def track(self, points: Sequence[Tuple[float, float]], model: PointModel) -> bool:
        """
        用一组检测点更新姿态

        Args:
            points: 恰好 N_POINTS 个归一化图像点
            model: 当前点模型

        Returns:
            bool: 是否更新了姿态
        """
        if len(points) != model.N_POINTS:
            return False

        pts = np.asarray(points, dtype=np.float64).reshape(model.N_POINTS, 2)
        best: Optional[Affine] = None
        best_score = math.inf
        try:
            for candidate in self._candidates(pts, model):
                if candidate.t[2] <= 0:
                    continue
                score = self._score(candidate)
                if score < best_score:
                    best, best_score = candidate, score
        except cv2.error as e:
            logger.warning("P3P solve failed: %s", e)
            return False

        if best is None:
            logger.debug("No valid pose for points %s", pts.tolist())
            return False

        self.X_CM = best
        self.has_pose = True
        return True
