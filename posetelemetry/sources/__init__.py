"""
Frame source and pose estimator collaborators
"""
from .interfaces import FrameSource, PoseEstimatorInterface
from .replay import PrecomputedPoseEstimator, ReplayFrameSource, load_replay_file

__all__ = [
    'FrameSource',
    'PoseEstimatorInterface',
    'PrecomputedPoseEstimator',
    'ReplayFrameSource',
    'load_replay_file',
]
