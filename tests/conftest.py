import pytest

from posetelemetry.pose.keypoints import BodyPart, KeypointSet


def keypoints(**parts):
    """keypoints(LEFT_EYE=(100, 50, 0.9), ...) -> KeypointSet"""
    kps = KeypointSet()
    for name, (x, y, score) in parts.items():
        kps.add(BodyPart[name], x, y, score)
    return kps


@pytest.fixture
def torso_frame():
    return keypoints(
        LEFT_EYE=(100, 50, 0.9),
        RIGHT_EYE=(80, 50, 0.9),
        LEFT_SHOULDER=(110, 150, 0.8),
        RIGHT_SHOULDER=(70, 150, 0.8),
    )


@pytest.fixture
def face_frame():
    return keypoints(
        NOSE=(90, 60, 0.9),
        LEFT_EYE=(100, 50, 0.9),
        RIGHT_EYE=(80, 50, 0.9),
    )
