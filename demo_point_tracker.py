import argparse
import logging
import os
import time

from Tracking.core import SettingsStore
from Tracking.core.error_codes import SUCCESS, get_error_message
from Tracking.point import PointTrackerWorker
from Tracking.utils import FrameSink, Logger

logger = logging.getLogger('PointTrackerDemo')


def parse_args():
    parser = argparse.ArgumentParser(description="点标记头部跟踪演示")
    parser.add_argument("--camera", type=int, default=None, help="摄像头ID (默认取配置文件)")
    parser.add_argument("--width", type=int, default=None, help="图像宽度")
    parser.add_argument("--height", type=int, default=None, help="图像高度")
    parser.add_argument("--fps", type=int, default=None, help="帧率")
    parser.add_argument("--config", type=str,
                        default=os.path.join("database", "setting", "point_tracker.json"),
                        help="配置文件路径")
    parser.add_argument("--duration", type=float, default=0.0,
                        help="运行时长（秒），0 表示直到 Ctrl-C")
    parser.add_argument("--debug", action="store_true", help="开启调试模式，显示更详细信息")
    return parser.parse_args()


def main():
    args = parse_args()
    Logger(debug=args.debug)

    store = SettingsStore(args.config)
    changes = {}
    if args.camera is not None:
        changes["cam_index"] = args.camera
    if args.width is not None or args.height is not None:
        width, height = store.get_settings().cam_res
        changes["cam_res"] = (args.width or width, args.height or height)
    if args.fps is not None:
        changes["cam_fps"] = args.fps
    settings = store.update(**changes) if changes else store.get_settings()

    sink = FrameSink()
    tracker = PointTrackerWorker(settings=settings)
    result = tracker.start(sink)
    if result != SUCCESS:
        logger.error("跟踪器启动失败: %s", get_error_message(result))
        return

    start_time = time.monotonic()
    try:
        while args.duration <= 0 or time.monotonic() - start_time < args.duration:
            pose = tracker.read_pose_as_angles()
            print(f"yaw={pose.yaw:7.2f} pitch={pose.pitch:7.2f} roll={pose.roll:7.2f}  "
                  f"x={pose.tx:7.2f} y={pose.ty:7.2f} z={pose.tz:7.2f} cm  "
                  f"fps={tracker.camera.get_info().fps:5.1f}")
            time.sleep(0.2)
    except KeyboardInterrupt:
        pass
    finally:
        tracker.stop()
        print(f"显示帧数: {sink.frame_count}")


if __name__ == "__main__":
    main()
