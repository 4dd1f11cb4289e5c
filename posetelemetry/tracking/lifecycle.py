"""
Session lifecycle
=================

Runs a TrackingSession on one dedicated worker thread:

    frame source -> pose estimator -> session.on_frame()

The engine never queues frames; the worker pulls the next frame only after
the previous one has been fully published. Shutdown order is fixed:
stop accepting frames -> join worker -> stop monitors -> release the
frame source and the pose estimator.
"""
import threading
import time
import traceback
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.logger import logger
from ..monitoring.frame_rate_monitor import FrameRateMonitor
from ..pose.geometry import FrameEstimate
from ..sources.interfaces import FrameSource, PoseEstimatorInterface
from .session import TrackingSession


FrameCallback = Callable[[FrameEstimate, int], None]


class SessionLifecycle:
    """
    Session lifecycle

    Features:
    - a single worker thread does acquisition, derivation and publication
    - read_frame() is bounded by read_timeout so stop() is observed promptly
    - estimator failures are logged and counted, never fatal
    - idempotent stop(), safe without start()
    - context manager support

    Usage:
        session = TrackingSession()
        with SessionLifecycle(session, camera_source, pose_model) as lifecycle:
            ...
            print(session.get_distance(), lifecycle.get_stats())
    """

    def __init__(
        self,
        session: TrackingSession,
        frame_source: FrameSource,
        pose_estimator: PoseEstimatorInterface,
        monitors: Optional[Iterable[Any]] = None,
        read_timeout: float = 0.1,
        join_timeout: float = 5.0,
        frame_callback: Optional[FrameCallback] = None,
        fps_monitor: Optional[FrameRateMonitor] = None,
    ):
        """
        Args:
            session: tracking session fed by the worker
            frame_source: frame producer (opened by start, closed by stop)
            pose_estimator: keypoint model (closed by stop)
            monitors: auxiliary objects with start()/stop() (e.g. thermal or
                battery watchers), started and stopped with the worker
            read_timeout: seconds the worker waits for a frame per poll
            join_timeout: seconds stop() waits for the worker to exit
            frame_callback: optional fn(estimate, frame_number) called on the
                worker after each published frame

        Raises:
            TypeError: a collaborator does not implement its interface
        """
        if not isinstance(session, TrackingSession):
            raise TypeError(f"session must be a TrackingSession, got {type(session).__name__}")
        if not isinstance(frame_source, FrameSource):
            raise TypeError(f"frame_source must implement FrameSource, got {type(frame_source).__name__}")
        if not isinstance(pose_estimator, PoseEstimatorInterface):
            raise TypeError(
                f"pose_estimator must implement PoseEstimatorInterface, got {type(pose_estimator).__name__}"
            )

        self.monitors: List[Any] = list(monitors or [])
        for monitor in self.monitors:
            if not (callable(getattr(monitor, "start", None)) and callable(getattr(monitor, "stop", None))):
                raise TypeError(f"monitor {monitor!r} must provide start() and stop()")

        self.session = session
        self.frame_source = frame_source
        self.pose_estimator = pose_estimator
        self.read_timeout = max(0.0, float(read_timeout))
        self.join_timeout = max(0.0, float(join_timeout))
        self.frame_callback = frame_callback
        self.fps_monitor = fps_monitor or FrameRateMonitor()

        self._worker_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._resources_open = False

        self._stats_lock = threading.Lock()
        self._stats = {
            'frames_read': 0,
            'frames_processed': 0,
            'frames_empty': 0,
            'frames_rejected': 0,
            'read_timeouts': 0,
            'estimator_errors': 0,
            'source_errors': 0,
            'lifecycle_errors': 0,
            'total_processing_time': 0.0,
            'last_processing_time': 0.0,
            'worker_active': False,
        }

        self.last_exception: Optional[BaseException] = None

    # ---------- control ----------
    def start(self):
        """
        Open the frame source, start the monitors and launch the worker

        Raises:
            whatever frame_source.open() raises (nothing is left running)
        """
        with self._state_lock:
            if self._worker_thread is not None and self._worker_thread.is_alive():
                logger.warning("[SessionLifecycle] Worker thread already running")
                return

            self.frame_source.open()
            self._resources_open = True

            started = []
            try:
                for monitor in self.monitors:
                    monitor.start()
                    started.append(monitor)
            except Exception:
                for monitor in reversed(started):
                    self._stop_monitor(monitor)
                self._release_resources()
                raise

            self._stop_event.clear()
            self._worker_thread = threading.Thread(
                target=self._worker_loop,
                name="SessionLifecycle_Worker",
                daemon=True
            )
            self._worker_thread.start()
        logger.info("[SessionLifecycle] Worker thread started")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the worker and release external resources (idempotent)

        Args:
            timeout: join timeout override (seconds)

        Returns:
            bool: True when the worker exited (or never ran)
        """
        timeout = self.join_timeout if timeout is None else timeout

        with self._state_lock:
            worker = self._worker_thread
            if worker is None and not self._resources_open:
                return True

            logger.info("[SessionLifecycle] Stopping...")
            self._stop_event.set()

            exited = True
            if worker is threading.current_thread():
                # stop() from a frame callback; the loop exits on the stop event
                exited = False
                self._worker_thread = None
            elif worker is not None:
                worker.join(timeout=timeout)
                if worker.is_alive():
                    exited = False
                    logger.warning(f"[SessionLifecycle] Worker thread did not exit within {timeout}s")
                self._worker_thread = None

            for monitor in reversed(self.monitors):
                self._stop_monitor(monitor)

            self._release_resources()

        logger.info("[SessionLifecycle] Stopped")
        return exited

    @property
    def is_running(self) -> bool:
        worker = self._worker_thread
        return worker is not None and worker.is_alive()

    def get_stats(self) -> Dict[str, Any]:
        """Lifecycle statistics (thread-safe copy)"""
        with self._stats_lock:
            stats = self._stats.copy()
        stats['fps'] = self.fps_monitor.get_fps()
        stats['running'] = self.is_running
        return stats

    def __enter__(self) -> "SessionLifecycle":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    # ---------- worker ----------
    def _worker_loop(self):
        logger.info("[SessionLifecycle] Worker loop started")
        with self._stats_lock:
            self._stats['worker_active'] = True

        try:
            while not self._stop_event.is_set():
                try:
                    frame = self.frame_source.read_frame(self.read_timeout)
                except Exception as e:
                    logger.error(f"[SessionLifecycle] Frame source read failed: {e}")
                    with self._stats_lock:
                        self._stats['source_errors'] += 1
                    self.last_exception = e
                    # back off so a broken source does not spin
                    self._stop_event.wait(self.read_timeout)
                    continue

                if frame is None:
                    with self._stats_lock:
                        self._stats['read_timeouts'] += 1
                    continue

                if self._stop_event.is_set():
                    # no new frames once shutdown has begun
                    break

                self._process_frame(frame)

        except Exception as e:
            logger.error(f"[SessionLifecycle] Worker loop crashed: {e}")
            logger.error(traceback.format_exc())
            self.last_exception = e
        finally:
            with self._stats_lock:
                self._stats['worker_active'] = False
            logger.info("[SessionLifecycle] Worker loop exited")

    def _process_frame(self, frame: Any):
        start_time = time.monotonic()
        with self._stats_lock:
            self._stats['frames_read'] += 1

        try:
            keypoints = self.pose_estimator.estimate(frame)
        except Exception as e:
            logger.error(f"[SessionLifecycle] Pose estimation failed: {e}")
            logger.debug(traceback.format_exc())
            with self._stats_lock:
                self._stats['estimator_errors'] += 1
            self.last_exception = e
            return

        try:
            estimate = self.session.on_frame(keypoints)
        except ValueError as e:
            logger.warning(f"[SessionLifecycle] Frame rejected: {e}")
            with self._stats_lock:
                self._stats['frames_rejected'] += 1
            self.last_exception = e
            return

        self.fps_monitor.update()

        processing_time = time.monotonic() - start_time
        empty = not (estimate.distance.valid or estimate.angle.valid or estimate.offset.valid)
        with self._stats_lock:
            self._stats['frames_processed'] += 1
            if empty:
                self._stats['frames_empty'] += 1
            self._stats['total_processing_time'] += processing_time
            self._stats['last_processing_time'] = processing_time

        if self.frame_callback is not None:
            try:
                self.frame_callback(estimate, self.session.frame_count)
            except Exception as e:
                logger.error(f"[SessionLifecycle] Frame callback failed: {e}", exc_info=True)

    # ---------- teardown helpers ----------
    def _stop_monitor(self, monitor: Any):
        try:
            monitor.stop()
        except Exception as e:
            logger.error(f"[SessionLifecycle] Failed to stop monitor {monitor!r}: {e}")
            self._record_lifecycle_error(e)

    def _release_resources(self):
        if not self._resources_open:
            return
        self._resources_open = False

        for name, resource in (("frame source", self.frame_source), ("pose estimator", self.pose_estimator)):
            try:
                resource.close()
            except Exception as e:
                logger.error(f"[SessionLifecycle] Failed to close {name}: {e}")
                self._record_lifecycle_error(e)

    def _record_lifecycle_error(self, error: BaseException):
        with self._stats_lock:
            self._stats['lifecycle_errors'] += 1
        self.last_exception = error

    def __repr__(self) -> str:
        return f"SessionLifecycle(running={self.is_running}, session={self.session!r})"
