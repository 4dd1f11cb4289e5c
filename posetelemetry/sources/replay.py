"""
Replay collaborators
====================

Feed pre-recorded keypoint frames through the FrameSource /
PoseEstimatorInterface contracts. Used by run_tracker.py and the tests.

JSON-lines format, one frame per line:
    {"keypoints": [{"part": "LEFT_EYE", "x": 100.0, "y": 50.0, "score": 0.9}, ...]}
    {"detections": [{"confidence": 0.8, "keypoints": [{"index": 1, "x": ..., "y": ..., "confidence": ...}]}]}
Blank lines are skipped.
"""
import json
import threading
import time
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Union

from ..core.logger import logger
from ..pose.keypoints import KeypointSet
from .interfaces import FrameSource, PoseEstimatorInterface


def load_replay_file(path: Union[str, Path]) -> List[Mapping[str, Any]]:
    """
    Read a JSON-lines replay file

    Raises:
        FileNotFoundError: file does not exist
        ValueError: a line is not a JSON object
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Replay file not found: {path}")

    frames = []
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                frame = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON: {e}") from e
            if not isinstance(frame, dict):
                raise ValueError(f"{path}:{line_no}: frame must be a JSON object")
            frames.append(frame)

    logger.info(f"Loaded {len(frames)} replay frames from {path}")
    return frames


class ReplayFrameSource(FrameSource):
    """
    Yields recorded frames in order

    Args:
        frames: iterable of frames (any object the paired estimator accepts)
        frame_interval: seconds between frames (0 = as fast as consumed)
    """

    def __init__(self, frames: Iterable[Any], frame_interval: float = 0.0):
        self._frames = frames
        self._iterator: Optional[Iterator[Any]] = None
        self.frame_interval = max(0.0, float(frame_interval))
        self._exhausted = threading.Event()
        self._closed = threading.Event()
        self._last_emit: Optional[float] = None
        self.frames_emitted = 0

    @classmethod
    def from_file(cls, path: Union[str, Path], frame_interval: float = 0.0) -> "ReplayFrameSource":
        return cls(load_replay_file(path), frame_interval=frame_interval)

    def open(self) -> None:
        self._iterator = iter(self._frames)
        self._exhausted.clear()
        self._closed.clear()
        self._last_emit = None

    def read_frame(self, timeout: float) -> Optional[Any]:
        if self._iterator is None:
            raise RuntimeError("ReplayFrameSource.read_frame() called before open()")
        if self._exhausted.is_set():
            # nothing left, behave like an idle camera
            self._closed.wait(timeout)
            return None

        if self.frame_interval > 0 and self._last_emit is not None:
            wait = self._last_emit + self.frame_interval - time.monotonic()
            if wait > 0:
                if wait > timeout:
                    self._closed.wait(timeout)
                    return None
                if self._closed.wait(wait):
                    return None

        try:
            frame = next(self._iterator)
        except StopIteration:
            self._exhausted.set()
            logger.info(f"Replay finished after {self.frames_emitted} frames")
            return None

        self._last_emit = time.monotonic()
        self.frames_emitted += 1
        return frame

    def close(self) -> None:
        self._closed.set()
        self._iterator = None

    @property
    def exhausted(self) -> bool:
        return self._exhausted.is_set()

    def wait_exhausted(self, timeout: Optional[float] = None) -> bool:
        """Block until every frame has been handed out"""
        return self._exhausted.wait(timeout)


class PrecomputedPoseEstimator(PoseEstimatorInterface):
    """Frames already carry keypoints (KeypointSet or detector-format dict)"""

    def estimate(self, frame: Any) -> KeypointSet:
        if isinstance(frame, KeypointSet):
            return frame
        if frame is None:
            return KeypointSet()
        if isinstance(frame, Mapping):
            if "detections" in frame:
                return KeypointSet.from_detection(frame)
            return KeypointSet.from_dicts(frame.get("keypoints") or [])
        raise TypeError(f"unsupported replay frame type: {type(frame).__name__}")
