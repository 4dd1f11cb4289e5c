"""
Collaborator interfaces
=======================

The engine does not acquire frames or run inference itself. A lifecycle
drives any frame source and pose estimator implementing these contracts:
- camera / video / replay sources
- PoseNet, YOLO-Pose or any model returning 17 COCO keypoints
- test doubles
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..pose.keypoints import KeypointSet


class FrameSource(ABC):
    """Frame producer owned by the external capture collaborator"""

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the underlying device or stream

        Raises:
            RuntimeError: the source cannot be opened
        """

    @abstractmethod
    def read_frame(self, timeout: float) -> Optional[Any]:
        """
        Wait at most `timeout` seconds for the next frame

        Returns:
            the frame, or None when no frame arrived in time

        Notes:
            - must return within roughly `timeout` so the worker can
              observe cancellation
            - frames arriving while the worker is busy are dropped by the
              source, never queued by the engine
        """

    @abstractmethod
    def close(self) -> None:
        """Release the device or stream (called after the worker exits)"""

    @property
    def exhausted(self) -> bool:
        """True when the source will never produce another frame"""
        return False


class PoseEstimatorInterface(ABC):
    """Black-box pose model: frame in, keypoints with confidences out"""

    @abstractmethod
    def estimate(self, frame: Any) -> KeypointSet:
        """
        Run the pose model on one frame

        Returns:
            KeypointSet in the model's working resolution
        """

    def close(self) -> None:
        """Release model resources (optional)"""
