"""
Tracking session
================

Per-frame orchestration: reset validity, run the geometric derivations,
publish the results and velocity samples, then flag fresh data for the
consumer. Getters are safe to call from any thread at any time.
"""
import time
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from ..core.constants import Constants
from ..core.freshness import FreshnessBoard, FreshnessCallback, MeasurementKind
from ..core.logger import logger
from ..pose.geometry import EstimatorSettings, FrameEstimate, GeometricEstimator
from ..pose.keypoints import KeypointSet
from ..shared.publisher import Measurement, MeasurementPublisher, ScalarPublisher
from ..shared.ring_buffer import TimeWindowedBuffer


class SessionPhase(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    PUBLISHED = "published"


@dataclass(frozen=True)
class SessionState:
    """Validity flags of the most recent frame (replaced as a whole)"""
    both_eyes_found: bool = False
    angle_calculated: bool = False
    torso_tilt_calculated: bool = False
    bb_off_center_calculated: bool = False
    bb_off_center_fell_back_to_eyes_only: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "both_eyes_found": self.both_eyes_found,
            "angle_calculated": self.angle_calculated,
            "torso_tilt_calculated": self.torso_tilt_calculated,
            "bb_off_center_calculated": self.bb_off_center_calculated,
            "bb_off_center_fell_back_to_eyes_only": self.bb_off_center_fell_back_to_eyes_only,
        }


class TrackingSession:
    """
    Tracking session

    Responsibilities:
    - run GeometricEstimator on each KeypointSet (one frame at a time)
    - publish distance / bearing / tilt ratio / offset as Measurements
    - feed the distance, offset and angle velocity buffers
    - flag fresh data per measurement kind and notify subscribers

    Usage:
        session = TrackingSession()
        session.subscribe(lambda kind, value: print(kind, value))

        # processing thread
        session.on_frame(keypoint_set)

        # any consumer thread
        distance = session.get_distance()      # -1 when unavailable
        lateral = session.get_lateral_velocity()
    """

    def __init__(
        self,
        estimator: Optional[GeometricEstimator] = None,
        buffer_capacity: int = Constants.BUFFER_CAPACITY,
        clock: Callable[[], int] = time.monotonic_ns,
        freshness: Optional[FreshnessBoard] = None,
    ):
        """
        Args:
            estimator: geometric estimator (default settings when omitted)
            buffer_capacity: samples kept per velocity buffer
            clock: monotonic nanosecond clock used to stamp samples
            freshness: freshness board shared with the consumer (optional)
        """
        self.estimator = estimator or GeometricEstimator()
        self._clock = clock
        self.freshness = freshness or FreshnessBoard()

        self._distance = MeasurementPublisher()
        self._angle = MeasurementPublisher()
        self._tilt_ratio = MeasurementPublisher()
        self._offset = MeasurementPublisher()
        self._scale = ScalarPublisher()

        self.distance_buffer = TimeWindowedBuffer(buffer_capacity)
        self.offset_buffer = TimeWindowedBuffer(buffer_capacity)
        self.angle_buffer = TimeWindowedBuffer(buffer_capacity)

        self._publishers: Dict[MeasurementKind, MeasurementPublisher] = {
            MeasurementKind.DISTANCE: self._distance,
            MeasurementKind.ANGLE: self._angle,
            MeasurementKind.TILT_RATIO: self._tilt_ratio,
            MeasurementKind.OFFSET: self._offset,
        }

        self._state = SessionState()
        self._phase = SessionPhase.IDLE
        self._frame_lock = threading.Lock()
        self._frame_count = 0
        self._last_estimate: Optional[FrameEstimate] = None

        logger.info(
            f"TrackingSession initialized (buffer_capacity={buffer_capacity}, "
            f"min_confidence={self.estimator.min_confidence})"
        )

    @classmethod
    def from_config(cls, config, **kwargs) -> "TrackingSession":
        """Build a session from a SystemConfig (estimator + session sections)"""
        estimator = GeometricEstimator(
            settings=EstimatorSettings.from_config(config),
            min_confidence=float(config.session.min_confidence),
        )
        return cls(estimator=estimator, buffer_capacity=int(config.session.buffer_capacity), **kwargs)

    # ---------- processing thread ----------
    def on_frame(self, keypoints: KeypointSet, timestamp_ns: Optional[int] = None) -> FrameEstimate:
        """
        Process one frame's keypoints

        Args:
            keypoints: confident-or-not keypoints of the frame
            timestamp_ns: monotonic timestamp of the frame (default: clock())

        Returns:
            FrameEstimate with all derived measurements

        Raises:
            ValueError: timestamp older than the newest buffered sample (the
                frame is dropped and the session is left untouched)
        """
        with self._frame_lock:
            stamp = self._clock() if timestamp_ns is None else int(timestamp_ns)
            newest = self._newest_timestamp()
            if newest is not None and stamp < newest:
                # nothing is published for a rejected frame
                raise ValueError(f"frame timestamp {stamp} precedes newest sample {newest}")

            self._phase = SessionPhase.PROCESSING
            self._state = SessionState()
            try:
                estimate = self.estimator.estimate(keypoints)

                self._distance.publish(estimate.distance)
                self._angle.publish(estimate.angle)
                self._tilt_ratio.publish(estimate.tilt_ratio)
                self._offset.publish(estimate.offset)
                if estimate.scale.valid:
                    self._scale.set(estimate.scale.value)

                if estimate.distance.valid:
                    self.distance_buffer.put(estimate.distance.value, stamp)
                if estimate.angle.valid:
                    self.angle_buffer.put(estimate.angle.value, stamp)
                if estimate.scaled_offset.valid:
                    self.offset_buffer.put(estimate.scaled_offset.value, stamp)

                self._state = SessionState(
                    both_eyes_found=estimate.both_eyes_found,
                    angle_calculated=estimate.angle.valid,
                    torso_tilt_calculated=estimate.tilt_ratio.valid,
                    bb_off_center_calculated=estimate.offset.valid,
                    bb_off_center_fell_back_to_eyes_only=estimate.fell_back_to_eyes_only,
                )
                self._last_estimate = estimate
                self._frame_count += 1
                self._phase = SessionPhase.PUBLISHED

                fresh = [
                    (kind, publisher.get_measurement().value)
                    for kind, publisher in self._publishers.items()
                    if publisher.get_measurement().valid
                ]
                frame_number = self._frame_count
            except Exception:
                self._phase = SessionPhase.IDLE
                raise

        # subscribers run outside the frame lock so they may query or reset the session
        for kind, value in fresh:
            self.freshness.mark(kind, value)
        self._phase = SessionPhase.IDLE

        logger.debug(
            f"Frame #{frame_number}: distance={estimate.distance.as_optional()} "
            f"angle={estimate.angle.as_optional()} ({estimate.tilt_path}) "
            f"offset={estimate.offset.as_optional()} ({estimate.offset_path})"
        )
        return estimate

    def _newest_timestamp(self) -> Optional[int]:
        stamps = [
            sample.timestamp_ns
            for sample in (buffer.latest() for buffer in (self.distance_buffer, self.offset_buffer, self.angle_buffer))
            if sample is not None
        ]
        return max(stamps) if stamps else None

    def reset(self):
        """Forget all published values, samples and rolling estimator state"""
        with self._frame_lock:
            for publisher in self._publishers.values():
                publisher.invalidate()
            self._scale.set(0.0)
            self.distance_buffer.clear()
            self.offset_buffer.clear()
            self.angle_buffer.clear()
            self.freshness.clear()
            self.estimator.reset()
            self._state = SessionState()
            self._frame_count = 0
            self._last_estimate = None
        logger.info("TrackingSession: reset")

    # ---------- consumer side ----------
    def get_distance(self) -> float:
        """Distance to the subject (m), -1 when unavailable"""
        return self._distance.get()

    def get_bearing_angle(self) -> float:
        """Signed bearing (deg, negative = turned right), -1 when unavailable"""
        return self._angle.get()

    def get_torso_tilt_ratio(self) -> float:
        return self._tilt_ratio.get()

    def get_bounding_box_offset(self) -> float:
        """Box center minus frame center (px), -1 when unavailable"""
        return self._offset.get()

    def get_current_scale(self) -> float:
        """Meters per pixel in the plane of the subject's face"""
        return self._scale.get()

    def get_lateral_velocity(self) -> float:
        """Displacement over time of the scaled centering offset (m/s)"""
        return self.offset_buffer.get_displacement_over_time()

    def get_range_velocity(self) -> float:
        """Displacement over time of the distance to the subject (m/s)"""
        return self.distance_buffer.get_displacement_over_time()

    def get_vertical_velocity(self) -> float:
        """Range velocity on the follower's vertical control axis"""
        return self.get_range_velocity()

    def get_angular_velocity(self) -> float:
        """Displacement over time of the bearing angle (deg/s)"""
        return self.angle_buffer.get_displacement_over_time()

    def get_measurement(self, kind: MeasurementKind) -> Measurement:
        return self._publishers[MeasurementKind(kind)].get_measurement()

    def get_state(self) -> SessionState:
        return self._state

    def get_phase(self) -> SessionPhase:
        return self._phase

    def is_fresh(self, kind: MeasurementKind) -> bool:
        return self.freshness.is_fresh(MeasurementKind(kind))

    def consume_fresh(self, kind: MeasurementKind) -> bool:
        """Test-and-clear the freshness flag of `kind`"""
        return self.freshness.consume(MeasurementKind(kind))

    def subscribe(self, callback: FreshnessCallback) -> Callable[[], None]:
        """Register callback(kind, value) for freshly published values"""
        return self.freshness.subscribe(callback)

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def last_estimate(self) -> Optional[FrameEstimate]:
        return self._last_estimate

    def __repr__(self) -> str:
        return (
            f"TrackingSession(frames={self._frame_count}, phase={self._phase.value}, "
            f"distance={self.get_distance():.3f}, angle={self.get_bearing_angle():.3f})"
        )
