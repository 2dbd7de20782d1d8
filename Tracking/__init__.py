from .core import (BaseTracker, Command, HeadPose, PauseMode, SettingsSlot,
                   SettingsStore, TrackerSettings, TrackerStatus)
from .point import (Affine, CVCamera, PointExtractor, PointModel,
                    PointTracker, PointTrackerWorker, camera_pose_to_head_pose)
from .utils import FrameSink, Logger

__all__ = [
    # core
    'BaseTracker', 'Command', 'HeadPose', 'PauseMode', 'TrackerStatus',
    'SettingsSlot', 'SettingsStore', 'TrackerSettings',

    # point tracking
    'Affine', 'CVCamera', 'PointExtractor', 'PointModel', 'PointTracker',
    'PointTrackerWorker', 'camera_pose_to_head_pose',

    # utils
    'FrameSink', 'Logger'
]
