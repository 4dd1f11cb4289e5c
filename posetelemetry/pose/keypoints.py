"""
Per-frame keypoint containers

Keypoints arrive from the external pose estimator in the model's working
resolution. Body part indices follow the 17-joint COCO layout shared by
PoseNet and YOLO-Pose.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import numpy as np

from ..core.constants import Constants


class BodyPart(IntEnum):
    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16

    @classmethod
    def parse(cls, value: Any) -> "BodyPart":
        """
        Accept a BodyPart, a COCO index or a name ("LEFT_EYE" / "left_eye")

        Raises:
            ValueError: unknown body part
        """
        if isinstance(value, BodyPart):
            return value
        if isinstance(value, (int, np.integer)):
            try:
                return cls(int(value))
            except ValueError:
                raise ValueError(f"unknown body part index: {value}") from None
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"unknown body part name: {value!r}") from None
        raise ValueError(f"cannot interpret {value!r} as a body part")


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class Keypoint:
    part: BodyPart
    position: Position
    score: float


class KeypointSet:
    """
    Unordered keypoints of a single frame

    Owned by the caller for the duration of one on_frame() call.
    """

    def __init__(self, keypoints: Optional[Iterable[Keypoint]] = None):
        self._keypoints: List[Keypoint] = list(keypoints or [])

    def add(self, part: Any, x: float, y: float, score: float) -> "KeypointSet":
        self._keypoints.append(Keypoint(BodyPart.parse(part), Position(float(x), float(y)), float(score)))
        return self

    def confident(self, min_confidence: float = Constants.MIN_CONFIDENCE) -> Dict[BodyPart, Position]:
        """
        Positions of keypoints scoring strictly above min_confidence

        When a part is reported more than once the highest score wins.
        """
        best: Dict[BodyPart, Keypoint] = {}
        for kp in self._keypoints:
            if not kp.score > min_confidence:
                continue
            if not (np.isfinite(kp.position.x) and np.isfinite(kp.position.y)):
                continue
            current = best.get(kp.part)
            if current is None or kp.score > current.score:
                best[kp.part] = kp
        return {part: kp.position for part, kp in best.items()}

    def __iter__(self) -> Iterator[Keypoint]:
        return iter(self._keypoints)

    def __len__(self) -> int:
        return len(self._keypoints)

    def __repr__(self) -> str:
        return f"KeypointSet({len(self._keypoints)} keypoints)"

    # ---------- constructors ----------
    @classmethod
    def from_arrays(cls, xy: Any, scores: Any) -> "KeypointSet":
        """
        Build from a (17, 2) coordinate array and a (17,) score array

        Rows are interpreted in COCO order; extra rows are ignored.
        """
        xy = np.asarray(xy, dtype=float).reshape(-1, 2)
        scores = np.asarray(scores, dtype=float).reshape(-1)
        count = min(len(xy), len(scores), len(BodyPart))
        keypoints = [
            Keypoint(BodyPart(i), Position(float(xy[i, 0]), float(xy[i, 1])), float(scores[i]))
            for i in range(count)
        ]
        return cls(keypoints)

    @classmethod
    def from_dicts(cls, items: Iterable[Mapping[str, Any]]) -> "KeypointSet":
        """
        Build from keypoint dictionaries

        Accepted entry forms:
            {"index": 1, "x": 100.0, "y": 50.0, "confidence": 0.9}
            {"part": "LEFT_EYE", "x": 100.0, "y": 50.0, "score": 0.9}
        """
        keypoint_set = cls()
        for item in items:
            part = item.get("part", item.get("index"))
            score = item.get("score", item.get("confidence", 0.0))
            keypoint_set.add(part, item["x"], item["y"], score)
        return keypoint_set

    @classmethod
    def from_detection(cls, detection: Optional[Mapping[str, Any]]) -> "KeypointSet":
        """
        Build from one detector result

        Accepts either a single detection ({"keypoints": [...]}) or the
        detector's frame result ({"detections": [...]}), in which case the
        most confident detection is used. None yields an empty set.
        """
        if not detection:
            return cls()

        if "detections" in detection:
            detections = detection.get("detections") or []
            if not detections:
                return cls()
            detection = max(detections, key=lambda d: d.get("confidence", 0.0))

        return cls.from_dicts(detection.get("keypoints") or [])
