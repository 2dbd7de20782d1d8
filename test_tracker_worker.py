import gc
import math
import threading
import time
import unittest
from unittest.mock import MagicMock

import numpy as np

from Tracking.core.base_tracker import Command, PauseMode, TrackerStatus
from Tracking.core.error_codes import (ALREADY_INITIALIZED, INVALID_ARGUMENT,
                                       NOT_INITIALIZED, RUNTIME_ERROR, SUCCESS)
from Tracking.core.settings import TrackerSettings
from Tracking.point.camera import Camera
from Tracking.point.point_extractor import PointExtractor
from Tracking.point.point_tracker import Affine, PointTracker
from Tracking.point.tracker_worker import PointTrackerWorker
from Tracking.utils.display import FrameSink

FRAME = np.full((48, 64, 3), 255, dtype=np.uint8)
THREE_POINTS = [(0.0, 0.0), (0.1, 0.05), (-0.1, 0.05)]


def wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.002)
    return predicate()


def rot_y(deg):
    a = math.radians(deg)
    return np.array([[math.cos(a), 0, math.sin(a)], [0, 1, 0], [-math.sin(a), 0, math.cos(a)]])


class FakeCamera(Camera):
    def __init__(self, frame=FRAME, delay=0.001):
        super().__init__()
        self.frame = frame
        self.delay = delay
        self.start_count = 0
        self.grab_count = 0

    def _start(self):
        self.start_count += 1
        return SUCCESS

    def _stop(self):
        pass

    def _get_frame(self):
        time.sleep(self.delay)
        self.grab_count += 1
        if self.frame is None:
            return False, None
        return True, self.frame


class FakeExtractor(PointExtractor):
    def __init__(self, points=THREE_POINTS, error=None):
        super().__init__()
        self.points = points
        self.error = error
        self.calls = 0

    def extract_points(self, frame):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.points)


class FakeTracker(PointTracker):
    """每次更新把姿态设为一个已知值，旋转和平移分两步写入"""

    def __init__(self, write_delay=0.0):
        super().__init__()
        self.write_delay = write_delay
        self.calls = 0
        self.last_model = None

    def track(self, points, model):
        self.calls += 1
        self.last_model = model
        k = self.calls % 60
        self.X_CM.R = rot_y(k)
        if self.write_delay:
            time.sleep(self.write_delay)
        self.X_CM.t = np.array([k * 10.0, 0.0, 500.0])
        return True


class WorkerTestCase(unittest.TestCase):
    def make_worker(self, **kwargs):
        kwargs.setdefault("camera", FakeCamera())
        kwargs.setdefault("point_extractor", FakeExtractor())
        kwargs.setdefault("point_tracker", FakeTracker())
        kwargs.setdefault("join_timeout", 5.0)
        worker = PointTrackerWorker(**kwargs)
        self.addCleanup(worker.stop)
        return worker


class TestLifecycle(WorkerTestCase):
    def test_state_machine(self):
        worker = self.make_worker()
        self.assertEqual(worker.status, TrackerStatus.IDLE)
        self.assertEqual(worker.stop(), NOT_INITIALIZED)

        self.assertEqual(worker.start(FrameSink()), SUCCESS)
        self.assertEqual(worker.status, TrackerStatus.RUNNING)
        self.assertTrue(worker.is_running())
        self.assertEqual(worker.start(), ALREADY_INITIALIZED)

        self.assertEqual(worker.stop(), SUCCESS)
        self.assertEqual(worker.status, TrackerStatus.STOPPED)
        self.assertTrue(worker.has_command(Command.ABORT))
        self.assertEqual(worker.stop(), SUCCESS)
        self.assertEqual(worker.start(), ALREADY_INITIALIZED)

    def test_start_applies_initial_settings_synchronously(self):
        settings = TrackerSettings(cam_index=3, cam_res=(320, 240), cam_fps=90,
                                   threshold=150, threshold_secondary=100,
                                   min_point_size=4, max_point_size=40,
                                   head_to_model_offset=(0.0, 20.0, 100.0))
        camera = FakeCamera()
        extractor = FakeExtractor()
        worker = self.make_worker(settings=settings, camera=camera, point_extractor=extractor)
        worker.start()

        self.assertEqual(camera.desired_index, 3)
        self.assertEqual(camera.desired_res, (320, 240))
        self.assertEqual(camera.desired_fps, 90)
        self.assertEqual(camera.start_count, 1)
        self.assertEqual((extractor.threshold, extractor.threshold_secondary,
                          extractor.min_size, extractor.max_size), (150, 100, 4.0, 40.0))
        self.assertTrue(np.array_equal(worker.t_MH, [0.0, 20.0, 100.0]))

    def test_settings_requested_before_start_take_precedence(self):
        camera = FakeCamera()
        worker = self.make_worker(settings=TrackerSettings(cam_index=1), camera=camera)
        worker.request_apply(TrackerSettings(cam_index=4))
        worker.start()
        self.assertEqual(camera.desired_index, 4)

    def test_stop_returns_from_any_phase(self):
        worker = self.make_worker(camera=FakeCamera(delay=0.05))
        worker.start()
        time.sleep(0.02)
        started = time.monotonic()
        self.assertEqual(worker.stop(), SUCCESS)
        self.assertLess(time.monotonic() - started, 1.0)
        self.assertFalse(worker._thread.is_alive())

    def test_context_manager_stops(self):
        with self.make_worker() as worker:
            worker.start()
            thread = worker._thread
        self.assertEqual(worker.status, TrackerStatus.STOPPED)
        self.assertFalse(thread.is_alive())

    def test_dropping_last_reference_stops_loop(self):
        # 不经过 make_worker：addCleanup(worker.stop) 会保留一个强引用
        camera = FakeCamera()
        worker = PointTrackerWorker(camera=camera, point_extractor=FakeExtractor(),
                                    point_tracker=FakeTracker(), join_timeout=5.0)
        self.assertEqual(worker.start(), SUCCESS)
        thread = worker._thread
        self.assertTrue(wait_until(lambda: camera.grab_count > 0))

        del worker
        gc.collect()
        self.assertTrue(wait_until(lambda: not thread.is_alive()))
        self.assertFalse(camera.active)

    def test_rejected_initial_settings_fail_start(self):
        camera = FakeCamera()
        worker = self.make_worker(camera=camera)
        worker.request_apply(TrackerSettings(model_point1=(10.0, 0.0, 0.0),
                                             model_point2=(20.0, 0.0, 0.0)))
        with self.assertLogs('PointTrackerWorker', level='ERROR'):
            self.assertEqual(worker.start(), INVALID_ARGUMENT)
        self.assertEqual(worker.status, TrackerStatus.IDLE)
        self.assertEqual(camera.start_count, 0)
        self.assertIsNone(worker._thread)

    def test_initial_apply_failure_fails_start(self):
        camera = FakeCamera()
        camera.set_fps = MagicMock(side_effect=RuntimeError("unsupported fps"))
        worker = self.make_worker(camera=camera)
        with self.assertLogs('PointTrackerWorker', level='ERROR'):
            self.assertEqual(worker.start(), RUNTIME_ERROR)
        self.assertEqual(worker.status, TrackerStatus.IDLE)
        self.assertEqual(camera.start_count, 0)


class TestSettingsHotApply(WorkerTestCase):
    def test_empty_slot_is_a_noop(self):
        camera = MagicMock()
        extractor = MagicMock()
        worker = PointTrackerWorker(camera=camera, point_extractor=extractor,
                                    point_tracker=MagicMock())
        model = worker.model

        self.assertFalse(worker.apply_pending())
        self.assertEqual(camera.method_calls, [])
        self.assertEqual(extractor.method_calls, [])
        self.assertIs(worker.model, model)

    def test_last_request_wins(self):
        camera = MagicMock()
        worker = PointTrackerWorker(camera=camera, point_extractor=MagicMock(),
                                    point_tracker=MagicMock())
        for index in (1, 2, 3):
            worker.request_apply(TrackerSettings(cam_index=index))

        self.assertTrue(worker.apply_pending())
        camera.set_device_index.assert_called_once_with(3)
        self.assertFalse(worker.apply_pending())
        camera.set_device_index.assert_called_once_with(3)

    def test_apply_order(self):
        manager = MagicMock()
        worker = PointTrackerWorker(camera=manager.camera,
                                    point_extractor=manager.extractor,
                                    point_tracker=MagicMock())
        worker.request_apply(TrackerSettings(cam_index=1, cam_res=(800, 600), cam_fps=50))
        worker.apply_pending()
        self.assertEqual([c[0] for c in manager.method_calls], [
            "camera.set_device_index", "camera.set_res", "camera.set_fps",
            "extractor.configure"])

    def test_model_is_rebuilt_wholesale(self):
        worker = PointTrackerWorker(camera=MagicMock(), point_extractor=MagicMock(),
                                    point_tracker=MagicMock())
        old_model = worker.model
        worker.request_apply(TrackerSettings(model_point1=(10.0, 0.0, 0.0),
                                             model_point2=(0.0, 10.0, 0.0)))
        worker.apply_pending()
        self.assertIsNot(worker.model, old_model)
        self.assertTrue(np.array_equal(worker.model.M01, [10.0, 0.0, 0.0]))
        self.assertTrue(np.array_equal(old_model.M01, TrackerSettings().model_point1))

    def test_degenerate_model_keeps_previous_configuration(self):
        camera = MagicMock()
        worker = PointTrackerWorker(camera=camera, point_extractor=MagicMock(),
                                    point_tracker=MagicMock())
        model = worker.model
        worker.request_apply(TrackerSettings(cam_index=5, model_point1=(10.0, 0.0, 0.0),
                                             model_point2=(20.0, 0.0, 0.0)))
        self.assertFalse(worker.apply_pending())
        self.assertIs(worker.model, model)
        camera.set_device_index.assert_not_called()

    def test_collaborator_failure_keeps_model_and_offset(self):
        camera = MagicMock()
        camera.set_res.side_effect = RuntimeError("resolution not supported")
        extractor = MagicMock()
        worker = PointTrackerWorker(camera=camera, point_extractor=extractor,
                                    point_tracker=MagicMock())
        model, t_MH, settings = worker.model, worker.t_MH, worker.settings
        worker.request_apply(TrackerSettings(cam_res=(800, 600),
                                             model_point1=(10.0, 0.0, 0.0),
                                             model_point2=(0.0, 10.0, 0.0),
                                             head_to_model_offset=(0.0, 5.0, 5.0)))

        with self.assertLogs('PointTrackerWorker', level='ERROR') as logs:
            with self.assertRaises(RuntimeError):
                worker.apply_pending()
        self.assertTrue(any("partially applied" in line for line in logs.output))
        self.assertIs(worker.model, model)
        self.assertIs(worker.t_MH, t_MH)
        self.assertIs(worker.settings, settings)
        extractor.configure.assert_not_called()

    def test_reconfiguration_while_running(self):
        camera = FakeCamera()
        tracker = FakeTracker()
        worker = self.make_worker(camera=camera, point_tracker=tracker)
        worker.start()
        self.assertTrue(wait_until(lambda: tracker.calls > 0))

        new = TrackerSettings(cam_index=2, model_point1=(30.0, 0.0, 0.0),
                              model_point2=(0.0, 30.0, 0.0))
        worker.request_apply(new)
        self.assertTrue(wait_until(lambda: worker.settings is new))
        calls = tracker.calls
        self.assertTrue(wait_until(lambda: tracker.calls > calls + 1))

        self.assertIs(tracker.last_model, worker.model)
        self.assertTrue(np.array_equal(worker.model.M01, [30.0, 0.0, 0.0]))
        self.assertTrue(wait_until(lambda: camera.start_count == 2))
        self.assertEqual(camera.desired_index, 2)


class TestLoop(WorkerTestCase):
    def test_three_points_update_pose_and_display(self):
        tracker = FakeTracker()
        sink = FrameSink()
        worker = self.make_worker(point_tracker=tracker)
        worker.start(sink)

        self.assertTrue(wait_until(lambda: tracker.calls >= 3 and sink.frame_count >= 3))
        worker.stop()
        self.assertEqual(worker.pose_update_count, tracker.calls)
        self.assertTrue(np.array_equal(sink.latest(), FRAME))

    def test_wrong_point_count_keeps_pose(self):
        tracker = PointTracker()
        tracker.reset(Affine(rot_y(10), [5.0, 0.0, 400.0]))
        extractor = FakeExtractor(points=THREE_POINTS[:2])
        sink = FrameSink()
        worker = self.make_worker(point_tracker=tracker, point_extractor=extractor)

        before = worker.read_pose_as_angles()
        worker.start(sink)
        self.assertTrue(wait_until(lambda: worker.frame_count >= 5))
        after = worker.read_pose_as_angles()

        self.assertEqual(worker.pose_update_count, 0)
        self.assertGreaterEqual(sink.frame_count, 5)
        for axis in ("yaw", "pitch", "roll", "tx", "ty", "tz"):
            self.assertEqual(getattr(before, axis), getattr(after, axis))

    def test_missing_frames_are_skipped(self):
        camera = FakeCamera(frame=None)
        extractor = FakeExtractor()
        sink = FrameSink()
        worker = self.make_worker(camera=camera, point_extractor=extractor)
        worker.start(sink)

        self.assertTrue(wait_until(lambda: worker.iteration_count >= 10))
        self.assertEqual(extractor.calls, 0)
        self.assertEqual(sink.frame_count, 0)

    def test_empty_frames_are_skipped(self):
        camera = FakeCamera(frame=np.zeros((0, 0, 3), dtype=np.uint8))
        extractor = FakeExtractor()
        worker = self.make_worker(camera=camera, point_extractor=extractor)
        worker.start()

        self.assertTrue(wait_until(lambda: camera.grab_count >= 10))
        self.assertEqual(extractor.calls, 0)
        self.assertEqual(worker.frame_count, 0)

    def test_per_frame_errors_do_not_stop_the_loop(self):
        extractor = FakeExtractor(error=RuntimeError("boom"))
        worker = self.make_worker(point_extractor=extractor)
        worker.start()

        self.assertTrue(wait_until(lambda: extractor.calls >= 5))
        self.assertTrue(worker._thread.is_alive())
        self.assertEqual(worker.stop(), SUCCESS)

    def test_works_without_display_target(self):
        tracker = FakeTracker()
        worker = self.make_worker(point_tracker=tracker)
        worker.start()
        self.assertTrue(wait_until(lambda: tracker.calls >= 3))


class TestPause(WorkerTestCase):
    def test_ignore_keeps_processing(self):
        tracker = FakeTracker()
        worker = self.make_worker(point_tracker=tracker, pause_mode=PauseMode.IGNORE)
        worker.start()
        worker.pause()
        self.assertTrue(worker.has_command(Command.PAUSE))
        calls = tracker.calls
        self.assertTrue(wait_until(lambda: tracker.calls > calls + 3))
        self.assertTrue(worker.is_running())

    def test_skip_frames_stops_fetching(self):
        camera = FakeCamera()
        worker = self.make_worker(camera=camera, pause_mode=PauseMode.SKIP_FRAMES)
        worker.start()
        self.assertTrue(wait_until(lambda: camera.grab_count > 0))

        worker.pause()
        time.sleep(0.05)
        grabs = camera.grab_count
        time.sleep(0.1)
        self.assertEqual(camera.grab_count, grabs)

        # 暂停期间仍然应用配置
        new = TrackerSettings(cam_fps=15)
        worker.request_apply(new)
        self.assertTrue(wait_until(lambda: worker.settings is new))

        worker.resume()
        self.assertFalse(worker.has_command(Command.PAUSE))
        self.assertTrue(wait_until(lambda: camera.grab_count > grabs))

    def test_freeze_pose_keeps_display(self):
        tracker = FakeTracker()
        sink = FrameSink()
        worker = self.make_worker(point_tracker=tracker, pause_mode=PauseMode.FREEZE_POSE)
        worker.start(sink)
        self.assertTrue(wait_until(lambda: tracker.calls > 0))

        worker.pause()
        time.sleep(0.05)
        calls = tracker.calls
        frames = sink.frame_count
        self.assertTrue(wait_until(lambda: sink.frame_count > frames + 3))
        self.assertEqual(tracker.calls, calls)

        worker.resume()
        self.assertTrue(wait_until(lambda: tracker.calls > calls))


class TestPoseAccessor(WorkerTestCase):
    def test_identity_pose_reads_zero(self):
        worker = self.make_worker(point_tracker=PointTracker())
        pose = worker.read_pose_as_angles()
        for axis in ("yaw", "pitch", "roll", "tx", "ty", "tz"):
            self.assertAlmostEqual(getattr(pose, axis), 0.0)

    def test_head_offset_is_applied(self):
        tracker = PointTracker()
        tracker.reset(Affine(np.eye(3), [0.0, 0.0, 500.0]))
        settings = TrackerSettings(head_to_model_offset=(0.0, -30.0, 80.0))
        worker = self.make_worker(settings=settings, point_tracker=tracker,
                                  point_extractor=FakeExtractor(points=[]))
        worker.start()
        pose = worker.read_pose_as_angles()
        self.assertAlmostEqual(pose.tx, 0.0)
        self.assertAlmostEqual(pose.ty, -3.0)
        self.assertAlmostEqual(pose.tz, 58.0)

    def test_concurrent_reads_are_never_torn(self):
        tracker = FakeTracker(write_delay=0.001)
        worker = self.make_worker(point_tracker=tracker)
        worker.start()
        self.assertTrue(wait_until(lambda: tracker.calls > 0))

        torn = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                pose = worker.read_pose_as_angles()
                # FakeTracker 写入 yaw = k 度，tx = k 厘米
                if abs(pose.yaw - pose.tx) > 1e-6:
                    torn.append((pose.yaw, pose.tx))

        readers = [threading.Thread(target=reader) for _ in range(3)]
        for r in readers:
            r.start()
        start_calls = tracker.calls
        wait_until(lambda: tracker.calls > start_calls + 30)
        stop.set()
        for r in readers:
            r.join()

        self.assertEqual(torn, [])

    def test_key_info(self):
        worker = self.make_worker(point_tracker=PointTracker())
        self.assertIn("yaw=0.0", worker.get_key_info())


if __name__ == "__main__":
    unittest.main()
