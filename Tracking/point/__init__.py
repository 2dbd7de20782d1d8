from .camera import Camera, CameraInfo, CVCamera
from .point_extractor import ExtractorConfig, PointExtractor
from .point_tracker import (DEFAULT_FOV, Affine, PointModel, PointTracker,
                            focal_length_from_fov)
from .pose_convert import (R_EG, TRANSLATION_SCALE, camera_pose_to_head_pose,
                           rotation_to_euler)
from .tracker_worker import PointTrackerWorker

__all__ = [
    # camera.py
    'Camera', 'CameraInfo', 'CVCamera',

    # point_extractor.py
    'ExtractorConfig', 'PointExtractor',

    # point_tracker.py
    'DEFAULT_FOV', 'Affine', 'PointModel', 'PointTracker', 'focal_length_from_fov',

    # pose_convert.py
    'R_EG', 'TRANSLATION_SCALE', 'camera_pose_to_head_pose', 'rotation_to_euler',

    # tracker_worker.py
    'PointTrackerWorker'
]
