"""跟踪核心包，提供生命周期状态、命令标志、配置快照和错误码。"""
from .base_tracker import (BaseTracker, Command, HeadPose, PauseMode,
                           TrackerStatus)
from .error_codes import *
from .settings import (DEFAULT_SETTINGS, SettingsSlot, SettingsStore,
                       TrackerSettings)

__all__ = [
    'BaseTracker', 'Command', 'HeadPose', 'PauseMode', 'TrackerStatus',
    'DEFAULT_SETTINGS', 'SettingsSlot', 'SettingsStore', 'TrackerSettings',

    # 错误码
    'SUCCESS', 'INVALID_ARGUMENT', 'NOT_INITIALIZED', 'ALREADY_INITIALIZED',
    'RUNTIME_ERROR', 'VIDEO_SOURCE_ERROR', 'CAMERA_NOT_AVAILABLE',
    'TRACKER_START_FAILED', 'TRACKER_STOP_FAILED',
    'get_error_message'
]
