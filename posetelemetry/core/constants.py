"""
Estimator constants
"""

class Constants:
    """Compiled-in defaults (overridable through tracker_config.json)"""
    # Pose model working resolution is 257x257 px
    FRAME_CENTER_X = 128.5  # horizontal midpoint of the working resolution

    # Keypoint filtering
    MIN_CONFIDENCE = 0.5  # keypoints must score strictly above this

    # Similar-triangles distance model
    PUPILLARY_DISTANCE_M = 0.063  # average adult pupillary distance (m)
    FOCAL_LENGTH_EXPERIMENTAL = 219.0  # (P x D) / W measured at 257x257 (px)
    PIVOT_WEIGHT = 1.5  # weight of the apparent PD shrink caused by rotation
    RIGHT_TURN_PIXEL_CORRECTION = 5.0  # px added when the subject is turned right

    # Eye displacement model under torso rotation (m)
    EYE_HALF_SPAN_M = 0.0315
    EYE_PIVOT_DEPTH_M = 0.0875

    # Bearing angle calibration (deg)
    ANGLE_CALIBRATION_LEFT = 0.0
    ANGLE_CALIBRATION_RIGHT = 0.0
    FACE_ANGLE_CALIBRATION_LEFT = 20.0
    FACE_ANGLE_CALIBRATION_RIGHT = 34.0

    # Numeric guards
    DIVISOR_EPSILON = 1e-6

    # Velocity buffers
    BUFFER_CAPACITY = 25

    # Value reported by getters when no current estimate exists
    INVALID_SENTINEL = -1.0
