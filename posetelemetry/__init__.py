"""
posetelemetry - relative position and velocity telemetry from 2-D body keypoints
"""
from .core.freshness import MeasurementKind
from .pose.keypoints import BodyPart, KeypointSet
from .pose.geometry import EstimatorSettings, GeometricEstimator
from .shared.publisher import Measurement
from .tracking.session import TrackingSession
from .tracking.lifecycle import SessionLifecycle

__version__ = "0.1.0"

__all__ = [
    'BodyPart',
    'EstimatorSettings',
    'GeometricEstimator',
    'KeypointSet',
    'Measurement',
    'MeasurementKind',
    'SessionLifecycle',
    'TrackingSession',
]
