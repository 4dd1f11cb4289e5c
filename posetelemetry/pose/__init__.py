"""
Pose geometry

Features:
- keypoint containers (COCO 17-joint body parts, confidence filtering)
- scale and distance from the inter-pupil span
- torso tilt ratio / bearing angle with a face-only fallback
- bounding-box centering offset with an eyes-only fallback
"""
from .keypoints import BodyPart, Keypoint, KeypointSet, Position
from .geometry import (
    BoundingBox,
    EstimatorSettings,
    FrameEstimate,
    GeometricEstimator,
    OffsetStrategy,
    TiltStrategy,
    build_offset_strategies,
    build_tilt_strategies,
    face_angle_from_ratio,
    torso_angle_from_ratio,
)

__all__ = [
    "BodyPart",
    "Keypoint",
    "KeypointSet",
    "Position",
    "BoundingBox",
    "EstimatorSettings",
    "FrameEstimate",
    "GeometricEstimator",
    "OffsetStrategy",
    "TiltStrategy",
    "build_offset_strategies",
    "build_tilt_strategies",
    "face_angle_from_ratio",
    "torso_angle_from_ratio",
]
