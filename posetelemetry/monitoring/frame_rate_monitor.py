"""
Frame rate monitor
==================

EMA-smoothed processing rate and frame interval statistics.
"""
import threading
import time
from typing import Optional

from ..core.logger import logger
from ..shared.ring_buffer import NS_PER_SECOND


class FrameRateMonitor:
    """
    Frame rate monitor

    Responsibilities:
    - compute the processing rate (call update() once per processed frame)
    - keep the last frame interval
    - smooth the rate with an EMA

    Updated by the worker thread, read by any thread.

    Usage:
        fps_monitor = FrameRateMonitor(smoothing=0.9)

        while running:
            fps_monitor.update()
            print(f"FPS: {fps_monitor.get_fps():.2f}, Interval: {fps_monitor.get_interval_ms():.2f}ms")
    """

    def __init__(self, smoothing: float = 0.9):
        """
        Args:
            smoothing: EMA factor (0.0-1.0), larger is smoother
        """
        self.smoothing = max(0.0, min(1.0, smoothing))
        self._lock = threading.Lock()
        self.last_frame_ns: Optional[int] = None
        self.fps: float = 0.0
        self.frame_interval: float = 0.0
        self.frame_count: int = 0

    def update(self, timestamp_ns: Optional[int] = None):
        """
        Record one processed frame

        Args:
            timestamp_ns: monotonic timestamp (default: time.monotonic_ns())
        """
        current = time.monotonic_ns() if timestamp_ns is None else int(timestamp_ns)

        with self._lock:
            if self.last_frame_ns is not None:
                elapsed = (current - self.last_frame_ns) / NS_PER_SECOND
                if elapsed > 0:
                    current_fps = 1.0 / elapsed
                    if self.fps == 0.0:
                        # first interval, no history to smooth against
                        self.fps = current_fps
                    else:
                        self.fps = self.smoothing * self.fps + (1 - self.smoothing) * current_fps
                    self.frame_interval = elapsed

            self.last_frame_ns = current
            self.frame_count += 1

    def get_fps(self) -> float:
        with self._lock:
            return self.fps

    def get_interval(self) -> float:
        """Last frame interval (s)"""
        with self._lock:
            return self.frame_interval

    def get_interval_ms(self) -> float:
        return self.get_interval() * 1000.0

    def reset(self):
        with self._lock:
            self.last_frame_ns = None
            self.fps = 0.0
            self.frame_interval = 0.0
            self.frame_count = 0
        logger.info("FrameRateMonitor: reset")

    def get_stats(self) -> dict:
        with self._lock:
            return {
                'fps': self.fps,
                'interval_s': self.frame_interval,
                'interval_ms': self.frame_interval * 1000.0,
                'frame_count': self.frame_count
            }

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (
            f"FrameRateMonitor(fps={stats['fps']:.2f}, interval={stats['interval_ms']:.2f}ms, "
            f"frames={stats['frame_count']})"
        )
