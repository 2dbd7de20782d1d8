"""
错误码定义模块，定义了跟踪器各项操作可能返回的错误码
"""

# 通用错误码
SUCCESS = 0                    # 操作成功
INVALID_ARGUMENT = 2           # 无效参数
NOT_INITIALIZED = 3            # 未初始化
ALREADY_INITIALIZED = 4        # 已经初始化
RUNTIME_ERROR = 9              # 运行时错误

# 摄像头相关错误码
VIDEO_SOURCE_ERROR = 200         # 视频源错误
CAMERA_NOT_AVAILABLE = 201       # 摄像头不可用

# 点跟踪相关错误码
TRACKER_START_FAILED = 300       # 跟踪线程启动失败
TRACKER_STOP_FAILED = 301        # 跟踪线程停止失败

# 错误码映射到描述信息
ERROR_DESCRIPTIONS = {
    SUCCESS: "操作成功",
    INVALID_ARGUMENT: "无效参数",
    NOT_INITIALIZED: "未初始化",
    ALREADY_INITIALIZED: "已经初始化",
    RUNTIME_ERROR: "运行时错误",

    VIDEO_SOURCE_ERROR: "视频源错误",
    CAMERA_NOT_AVAILABLE: "摄像头不可用",

    TRACKER_START_FAILED: "跟踪线程启动失败",
    TRACKER_STOP_FAILED: "跟踪线程停止失败",
}


def get_error_message(error_code: int) -> str:
    """
    获取错误码对应的描述信息

    Args:
        error_code: 错误码

    Returns:
        str: 错误描述信息，如果错误码未定义则返回"未定义的错误码"
    """
    return ERROR_DESCRIPTIONS.get(error_code, f"未定义的错误码: {error_code}")
