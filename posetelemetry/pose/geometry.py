"""
Geometric estimation of subject distance, bearing and centering
===============================================================

Converts the confident keypoints of one frame into:
- meters-per-pixel scale and distance to the subject (inter-pupil similar triangles)
- torso tilt ratio and bearing angle (torso model, falling back to a face model)
- horizontal offset of the subject's box from the frame center

Every derivation reports an explicit Measurement; degenerate geometry
(missing keypoints, near-zero divisors, non-finite ratios) yields an invalid
Measurement instead of raising, so one failure never blocks the others.

Angle convention: negative = subject turned right (camera view), positive = turned left.
"""
import math
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.constants import Constants
from ..core.logger import logger
from ..shared.publisher import INVALID, Measurement
from .keypoints import BodyPart, KeypointSet, Position

Points = Dict[BodyPart, Position]

EYES = (BodyPart.LEFT_EYE, BodyPart.RIGHT_EYE)
TORSO = (BodyPart.LEFT_EYE, BodyPart.RIGHT_EYE, BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER)
FACE = (BodyPart.NOSE, BodyPart.LEFT_EYE, BodyPart.RIGHT_EYE)


@dataclass(frozen=True)
class EstimatorSettings:
    """Model constants; defaults come from Constants"""
    pupillary_distance_m: float = Constants.PUPILLARY_DISTANCE_M
    focal_length_experimental: float = Constants.FOCAL_LENGTH_EXPERIMENTAL
    pivot_weight: float = Constants.PIVOT_WEIGHT
    right_turn_pixel_correction: float = Constants.RIGHT_TURN_PIXEL_CORRECTION
    eye_half_span_m: float = Constants.EYE_HALF_SPAN_M
    eye_pivot_depth_m: float = Constants.EYE_PIVOT_DEPTH_M
    frame_center_x: float = Constants.FRAME_CENTER_X
    angle_calibration_left: float = Constants.ANGLE_CALIBRATION_LEFT
    angle_calibration_right: float = Constants.ANGLE_CALIBRATION_RIGHT
    face_angle_calibration_left: float = Constants.FACE_ANGLE_CALIBRATION_LEFT
    face_angle_calibration_right: float = Constants.FACE_ANGLE_CALIBRATION_RIGHT
    divisor_epsilon: float = Constants.DIVISOR_EPSILON

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "EstimatorSettings":
        """Known keys are taken from `values`, unknown keys are ignored"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in values.items() if k in known})

    @classmethod
    def from_config(cls, config=None) -> "EstimatorSettings":
        """Build from the `estimator` section of a SystemConfig"""
        if config is None:
            return cls()
        section = config.get("estimator")
        if section is None:
            return cls()
        return cls.from_mapping(section.to_dict())


# ============================================================================
# Numeric helpers
# ============================================================================

def safe_ratio(numerator: float, denominator: float) -> float:
    """IEEE division: x/0 gives +-inf and 0/0 gives NaN instead of raising"""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(numerator) / np.float64(denominator))


def apparent_pd_shrink(angle_rad: float, half_span: float, pivot_depth: float) -> float:
    """
    Apparent shrink (m) of the inter-pupil span when the head pivots by angle_rad

    Each eye sits half_span from the head's vertical axis and pivot_depth in
    front of it; the shrink is the difference of the two eyes' horizontal
    displacements.
    """
    cos_a = math.cos(angle_rad)
    sin_a = math.sin(angle_rad)
    right_disp = abs((-half_span * cos_a + pivot_depth * sin_a) - (-half_span))
    left_disp = abs((half_span * cos_a + pivot_depth * sin_a) - half_span)
    return abs(left_disp - right_disp)


def torso_angle_from_ratio(ratio: float) -> Optional[float]:
    """
    Raw bearing angle (deg) from the eye-to-shoulder span ratio

    Closed-form solution of the anthropometric eye/shoulder triangle model.
    The root of the quadratic under the square root flips at ratio = -1.

    Returns:
        angle in degrees, 0.0 for ratio == 1, None outside the domain
    """
    ratio = float(ratio)
    if not math.isfinite(ratio):
        return None
    if ratio == 1.0:
        return 0.0

    radicand = 29257.0 * ratio * ratio + 2736.0 * ratio + 29257.0
    if not radicand >= 0.0:
        return None

    denom = 167.0 * ratio - 167.0
    v = math.sqrt(2.0) * math.sqrt(radicand) / denom
    root = -v if ratio >= -1.0 else v
    angle = math.degrees(-2.0 * math.atan(root + 175.0 * ratio / denom + 175.0 / denom))
    return angle if math.isfinite(angle) else None


def face_angle_from_ratio(ratio: float) -> Optional[float]:
    """
    Raw bearing angle (deg) from the nose-to-eye span ratio

    Returns:
        angle in degrees, 0.0 for ratio == 1, None outside the domain
    """
    ratio = float(ratio)
    if not math.isfinite(ratio):
        return None
    if ratio == 1.0:
        return 0.0

    radicand = 4594.0 * ratio * ratio - 6688.0 * ratio + 4594.0
    if not radicand >= 0.0:
        return None

    v = math.sqrt(radicand)
    root = -v if ratio >= -1.0 else v
    angle = math.degrees(-2.0 * math.atan((root + 25.0 * ratio + 25.0) / (63.0 * (ratio - 1.0))))
    return angle if math.isfinite(angle) else None


# ============================================================================
# Strategies
# ============================================================================

@dataclass(frozen=True)
class TiltStrategy:
    """One tilt-ratio/bearing derivation path"""
    name: str
    required: Tuple[BodyPart, ...]
    ratio: Callable[[Points], float]
    angle: Callable[[float], Optional[float]]
    calibration_left: float = 0.0
    calibration_right: float = 0.0

    def applies(self, points: Points) -> bool:
        return all(part in points for part in self.required)

    def calibrate(self, raw_angle: float) -> float:
        # squarely facing the camera stays exactly 0
        if raw_angle < 0.0:
            return raw_angle + self.calibration_right
        if raw_angle > 0.0:
            return raw_angle - self.calibration_left
        return 0.0


@dataclass(frozen=True)
class BoundingBox:
    left: float
    right: float
    top: float
    bottom: float

    @property
    def center_x(self) -> float:
        return (self.left + self.right) / 2.0


@dataclass(frozen=True)
class OffsetStrategy:
    """One bounding-box centering path"""
    name: str
    required: Tuple[BodyPart, ...]
    center: Callable[[Points], Tuple[float, Optional[BoundingBox]]]
    fell_back_to_eyes_only: bool = False

    def applies(self, points: Points) -> bool:
        return all(part in points for part in self.required)


def _torso_ratio(points: Points) -> float:
    return safe_ratio(
        points[BodyPart.RIGHT_EYE].x - points[BodyPart.RIGHT_SHOULDER].x,
        points[BodyPart.LEFT_SHOULDER].x - points[BodyPart.LEFT_EYE].x,
    )


def _face_ratio(points: Points) -> float:
    return safe_ratio(
        points[BodyPart.NOSE].x - points[BodyPart.RIGHT_EYE].x,
        points[BodyPart.LEFT_EYE].x - points[BodyPart.NOSE].x,
    )


def _torso_box(points: Points) -> Tuple[float, Optional[BoundingBox]]:
    box = BoundingBox(
        left=points[BodyPart.RIGHT_SHOULDER].x,
        right=points[BodyPart.LEFT_SHOULDER].x,
        top=max(points[BodyPart.LEFT_EYE].y, points[BodyPart.RIGHT_EYE].y),
        bottom=min(points[BodyPart.LEFT_SHOULDER].y, points[BodyPart.RIGHT_SHOULDER].y),
    )
    return box.center_x, box


def _eyes_center(points: Points) -> Tuple[float, Optional[BoundingBox]]:
    return (points[BodyPart.LEFT_EYE].x + points[BodyPart.RIGHT_EYE].x) / 2.0, None


def build_tilt_strategies(settings: EstimatorSettings) -> List[TiltStrategy]:
    """Tilt/bearing paths in priority order"""
    return [
        TiltStrategy(
            name="torso",
            required=TORSO,
            ratio=_torso_ratio,
            angle=torso_angle_from_ratio,
            calibration_left=settings.angle_calibration_left,
            calibration_right=settings.angle_calibration_right,
        ),
        TiltStrategy(
            name="face",
            required=FACE,
            ratio=_face_ratio,
            angle=face_angle_from_ratio,
            calibration_left=settings.face_angle_calibration_left,
            calibration_right=settings.face_angle_calibration_right,
        ),
    ]


def build_offset_strategies() -> List[OffsetStrategy]:
    """Centering paths in priority order"""
    return [
        OffsetStrategy(name="torso", required=TORSO, center=_torso_box),
        OffsetStrategy(name="eyes", required=EYES, center=_eyes_center, fell_back_to_eyes_only=True),
    ]


# ============================================================================
# Estimator
# ============================================================================

@dataclass(frozen=True)
class FrameEstimate:
    """Everything derived from one KeypointSet"""
    distance: Measurement = INVALID
    scale: Measurement = INVALID
    tilt_ratio: Measurement = INVALID
    angle: Measurement = INVALID
    offset: Measurement = INVALID
    scaled_offset: Measurement = INVALID
    both_eyes_found: bool = False
    tilt_path: Optional[str] = None
    offset_path: Optional[str] = None
    fell_back_to_eyes_only: bool = False
    bounding_box: Optional[BoundingBox] = None
    confident_keypoints: int = 0


class GeometricEstimator:
    """
    Per-frame geometric derivations

    Rolling state across frames: the meters-per-pixel scale and the last
    valid bearing angle (used to correct the next frame's distance for
    head rotation). Only the processing thread calls estimate().

    Usage:
        estimator = GeometricEstimator()
        estimate = estimator.estimate(keypoint_set)
        if estimate.distance.valid:
            print(estimate.distance.value)
    """

    def __init__(
        self,
        settings: Optional[EstimatorSettings] = None,
        min_confidence: float = Constants.MIN_CONFIDENCE,
        tilt_strategies: Optional[Sequence[TiltStrategy]] = None,
        offset_strategies: Optional[Sequence[OffsetStrategy]] = None,
    ):
        self.settings = settings or EstimatorSettings()
        self.min_confidence = float(min_confidence)
        self.tilt_strategies = list(tilt_strategies) if tilt_strategies is not None \
            else build_tilt_strategies(self.settings)
        self.offset_strategies = list(offset_strategies) if offset_strategies is not None \
            else build_offset_strategies()

        self._scale: float = 0.0
        self._last_angle: Optional[float] = None

    @property
    def scale(self) -> float:
        """Last derived meters-per-pixel (0.0 until the first valid frame)"""
        return self._scale

    @property
    def last_angle(self) -> Optional[float]:
        """Bearing angle of the previous frame when it was valid"""
        return self._last_angle

    def reset(self):
        self._scale = 0.0
        self._last_angle = None

    def estimate(self, keypoints: KeypointSet) -> FrameEstimate:
        """Run scale/distance, tilt/angle and offset derivations in that order"""
        points = keypoints.confident(self.min_confidence)

        both_eyes = all(part in points for part in EYES)
        distance, scale = self.estimate_distance(points)
        tilt_ratio, angle, tilt_path = self.estimate_tilt(points)
        offset, offset_path, fell_back, box = self.estimate_offset(points)

        # no lateral sample until a scale has been derived
        scaled_offset = Measurement.of(offset.value * self._scale) if offset.valid and self._scale != 0.0 else INVALID

        # the next frame's distance correction only trusts an angle derived now
        self._last_angle = angle.value if angle.valid else None

        return FrameEstimate(
            distance=distance,
            scale=scale,
            tilt_ratio=tilt_ratio,
            angle=angle,
            offset=offset,
            scaled_offset=scaled_offset,
            both_eyes_found=both_eyes,
            tilt_path=tilt_path,
            offset_path=offset_path,
            fell_back_to_eyes_only=fell_back,
            bounding_box=box,
            confident_keypoints=len(points),
        )

    # ---------- derivations ----------
    def estimate_distance(self, points: Points) -> Tuple[Measurement, Measurement]:
        """
        Scale (m/px) and distance (m) from the inter-pupil pixel span

        Returns:
            (distance, scale); both invalid when an eye is missing or the
            geometry is degenerate, in which case the rolling scale is kept
        """
        left_eye = points.get(BodyPart.LEFT_EYE)
        right_eye = points.get(BodyPart.RIGHT_EYE)
        if left_eye is None or right_eye is None:
            return INVALID, INVALID

        s = self.settings
        # front camera mirrors the subject: the left eye has the larger x
        pixel_distance = left_eye.x - right_eye.x
        if abs(pixel_distance) < s.divisor_epsilon:
            logger.debug(f"Eyes coincide horizontally ({pixel_distance:.2e}px), distance skipped")
            return INVALID, INVALID

        scale = s.pupillary_distance_m / pixel_distance

        shrink = 0.0
        corrected_pixels = pixel_distance
        if self._last_angle is not None:
            angle_rad = math.radians(self._last_angle)
            if angle_rad < 0.0:
                corrected_pixels += s.right_turn_pixel_correction
            shrink = apparent_pd_shrink(angle_rad, s.eye_half_span_m, s.eye_pivot_depth_m)

        if abs(corrected_pixels) < s.divisor_epsilon:
            logger.debug("Corrected pupil span is zero, distance skipped")
            return INVALID, INVALID

        distance = (s.pupillary_distance_m - shrink * s.pivot_weight) * s.focal_length_experimental / corrected_pixels
        if not (math.isfinite(distance) and math.isfinite(scale)):
            return INVALID, INVALID

        self._scale = scale
        return Measurement.of(distance), Measurement.of(scale)

    def estimate_tilt(self, points: Points) -> Tuple[Measurement, Measurement, Optional[str]]:
        """
        Tilt ratio and calibrated bearing angle from the first applicable strategy

        Returns:
            (tilt_ratio, angle, strategy name or None)
        """
        for strategy in self.tilt_strategies:
            if not strategy.applies(points):
                continue

            ratio = strategy.ratio(points)
            if not math.isfinite(ratio):
                logger.debug(f"Tilt ratio from '{strategy.name}' path is not finite ({ratio})")
                return INVALID, INVALID, strategy.name

            raw_angle = strategy.angle(ratio)
            if raw_angle is None:
                return Measurement.of(ratio), INVALID, strategy.name

            angle = strategy.calibrate(raw_angle)
            if not math.isfinite(angle):
                return Measurement.of(ratio), INVALID, strategy.name

            return Measurement.of(ratio), Measurement.of(angle), strategy.name

        logger.debug("Not enough keypoints for a tilt ratio")
        return INVALID, INVALID, None

    def estimate_offset(self, points: Points) -> Tuple[Measurement, Optional[str], bool, Optional[BoundingBox]]:
        """
        Horizontal offset (px) of the subject's box center from the frame center

        Returns:
            (offset, strategy name or None, fell back to eyes only, box or None)
        """
        for strategy in self.offset_strategies:
            if not strategy.applies(points):
                continue

            center, box = strategy.center(points)
            offset = center - self.settings.frame_center_x
            if not math.isfinite(offset):
                return INVALID, strategy.name, False, None

            if strategy.fell_back_to_eyes_only:
                logger.debug("Falling back to eyes only for the centering offset")
            return Measurement.of(offset), strategy.name, strategy.fell_back_to_eyes_only, box

        logger.debug("Not enough keypoints for a centering offset")
        return INVALID, None, False, None
