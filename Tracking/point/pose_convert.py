"""
相机空间姿态到输出约定（偏航/俯仰/翻滚 + 厘米平移）的坐标系转换

欧拉分解在 R'[2][1] 与 R'[2][2] 同时接近 0 时（万向节锁）roll 不再良定，
这是分解本身的性质。
"""
import math
from typing import Sequence, Tuple

import numpy as np

from ..core.base_tracker import HeadPose
from .point_tracker import Affine

# 图形学相机坐标系 (G) 到 roll-pitch-yaw 坐标系 (E) 的基变换
# -z -> x, -x -> y, y -> z
R_EG = np.array([[0.0, 0.0, -1.0],
                 [-1.0, 0.0, 0.0],
                 [0.0, 1.0, 0.0]])

# 毫米转厘米
TRANSLATION_SCALE = 10.0


def head_pose_in_camera(X_CM: Affine, t_MH: Sequence[float]) -> Affine:
    """由相机到模型姿态和头部偏移得到相机到头部姿态"""
    X_MH = Affine(np.eye(3), t_MH)
    return X_CM * X_MH


def rotation_to_euler(R: np.ndarray) -> Tuple[float, float, float]:
    """
    从旋转矩阵提取欧拉角

    :param R: 3*3 旋转矩阵（已在 E 坐标系下）
    :return: (alpha, beta, gamma)，单位为弧度
    """
    beta = math.atan2(-R[2, 0], math.sqrt(R[2, 1] ** 2 + R[2, 2] ** 2))
    alpha = math.atan2(R[1, 0], R[0, 0])
    gamma = math.atan2(R[2, 1], R[2, 2])
    return alpha, beta, gamma


def camera_pose_to_head_pose(X_CM: Affine, t_MH: Sequence[float],
                             basis: np.ndarray = R_EG) -> HeadPose:
    """
    将相机到模型姿态转换为输出约定的头部姿态

    Args:
        X_CM: 相机到模型的刚体变换
        t_MH: 模型到头部的偏移（毫米）
        basis: 坐标系基变换矩阵

    Returns:
        HeadPose: 偏航/俯仰/翻滚（度）和平移（厘米）
    """
    X_GH = head_pose_in_camera(X_CM, t_MH)
    R = basis @ X_GH.R @ basis.T
    t = X_GH.t

    alpha, beta, gamma = rotation_to_euler(R)
    return HeadPose(
        yaw=math.degrees(alpha),
        pitch=-math.degrees(beta),
        roll=math.degrees(gamma),
        tx=float(t[0]) / TRANSLATION_SCALE,
        ty=float(t[1]) / TRANSLATION_SCALE,
        tz=float(t[2]) / TRANSLATION_SCALE,
    )
