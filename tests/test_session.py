import threading

import pytest

from conftest import keypoints
from posetelemetry.core.config_loader import default_config
from posetelemetry.core.freshness import MeasurementKind
from posetelemetry.shared.ring_buffer import NS_PER_SECOND
from posetelemetry.tracking.session import SessionPhase, SessionState, TrackingSession

PD = 0.063
FOCAL = 219.0
CENTER = 128.5


def eyes(left_x, right_x, y=50):
    return keypoints(LEFT_EYE=(left_x, y, 0.9), RIGHT_EYE=(right_x, y, 0.9))


def test_full_torso_frame_publishes_everything(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame, timestamp_ns=0)

    assert session.get_distance() == pytest.approx(PD * FOCAL / 20)
    assert session.get_current_scale() == pytest.approx(PD / 20)
    assert session.get_torso_tilt_ratio() == pytest.approx(1.0)
    assert session.get_bearing_angle() == 0.0
    assert session.get_bounding_box_offset() == pytest.approx(90 - CENTER)

    assert session.get_state() == SessionState(
        both_eyes_found=True,
        angle_calculated=True,
        torso_tilt_calculated=True,
        bb_off_center_calculated=True,
        bb_off_center_fell_back_to_eyes_only=False,
    )
    for kind in MeasurementKind:
        assert session.is_fresh(kind)
    assert len(session.distance_buffer) == 1
    assert len(session.angle_buffer) == 1
    assert len(session.offset_buffer) == 1
    assert session.get_phase() is SessionPhase.IDLE


def test_face_only_frame_falls_back(face_frame):
    session = TrackingSession()
    estimate = session.on_frame(face_frame)

    assert estimate.tilt_path == "face"
    state = session.get_state()
    assert state.bb_off_center_fell_back_to_eyes_only
    assert state.angle_calculated
    assert session.get_bearing_angle() == 0.0


def test_empty_frame_publishes_sentinels_and_no_freshness():
    session = TrackingSession()
    session.on_frame(keypoints())

    assert session.get_distance() == -1
    assert session.get_bearing_angle() == -1
    assert session.get_torso_tilt_ratio() == -1
    assert session.get_bounding_box_offset() == -1
    assert session.freshness.snapshot() == {kind.value: False for kind in MeasurementKind}
    assert session.get_state() == SessionState()
    assert session.frame_count == 1


def test_validity_is_recomputed_each_frame(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame)
    session.on_frame(keypoints())

    assert session.get_distance() == -1
    assert not session.get_state().both_eyes_found
    # scale survives frames without eyes
    assert session.get_current_scale() == pytest.approx(PD / 20)


def test_nan_ratio_adds_no_angle_sample():
    session = TrackingSession()
    session.on_frame(keypoints(
        LEFT_EYE=(100, 50, 0.9),
        RIGHT_EYE=(80, 50, 0.9),
        LEFT_SHOULDER=(100, 150, 0.8),
        RIGHT_SHOULDER=(80, 150, 0.8),
    ))
    assert session.get_bearing_angle() == -1
    assert session.get_torso_tilt_ratio() == -1
    assert len(session.angle_buffer) == 0
    assert not session.is_fresh(MeasurementKind.ANGLE)
    assert session.is_fresh(MeasurementKind.DISTANCE)


def test_velocities_from_buffers():
    session = TrackingSession()
    session.on_frame(eyes(100, 80), timestamp_ns=0)
    session.on_frame(eyes(110, 70), timestamp_ns=NS_PER_SECOND // 2)

    d1, d2 = PD * FOCAL / 20, PD * FOCAL / 40
    assert session.get_range_velocity() == pytest.approx((d2 - d1) / 0.5)
    assert session.get_vertical_velocity() == session.get_range_velocity()

    lateral1 = (90 - CENTER) * PD / 20
    lateral2 = (90 - CENTER) * PD / 40
    assert session.get_lateral_velocity() == pytest.approx((lateral2 - lateral1) / 0.5)
    # eyes-only frames carry no angle
    assert session.get_angular_velocity() == 0.0


def test_uses_injected_clock(torso_frame):
    ticks = iter([10, 10 + NS_PER_SECOND])
    session = TrackingSession(clock=lambda: next(ticks))
    session.on_frame(torso_frame)
    session.on_frame(torso_frame)
    assert [s.timestamp_ns for s in session.distance_buffer.snapshot()] == [10, 10 + NS_PER_SECOND]


def test_consume_fresh_is_test_and_clear(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame)
    assert session.consume_fresh(MeasurementKind.DISTANCE)
    assert not session.consume_fresh(MeasurementKind.DISTANCE)
    assert session.is_fresh("offset")


def test_subscribers_receive_valid_values(face_frame):
    session = TrackingSession()
    received = []
    unsubscribe = session.subscribe(lambda kind, value: received.append(kind))

    session.on_frame(face_frame)
    assert set(received) == {
        MeasurementKind.DISTANCE,
        MeasurementKind.ANGLE,
        MeasurementKind.TILT_RATIO,
        MeasurementKind.OFFSET,
    }

    unsubscribe()
    received.clear()
    session.on_frame(face_frame)
    assert received == []


def test_subscriber_may_reset_session(torso_frame):
    session = TrackingSession()
    session.subscribe(lambda kind, value: session.reset())
    session.on_frame(torso_frame)
    assert session.frame_count == 0


def test_failing_subscriber_does_not_break_frame(torso_frame):
    session = TrackingSession()
    calls = []

    def broken(kind, value):
        raise RuntimeError("boom")

    session.subscribe(broken)
    session.subscribe(lambda kind, value: calls.append(kind))
    session.on_frame(torso_frame)
    assert len(calls) == 4
    assert session.get_distance() > 0


def test_reset_clears_everything(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame)
    session.reset()

    assert session.get_distance() == -1
    assert session.get_current_scale() == 0.0
    assert len(session.distance_buffer) == 0
    assert not any(session.freshness.snapshot().values())
    assert session.last_estimate is None
    assert session.estimator.last_angle is None


def test_get_measurement_by_kind(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame)
    m = session.get_measurement(MeasurementKind.OFFSET)
    assert m.valid and m.value == pytest.approx(90 - CENTER)
    assert session.get_measurement("distance").valid


def test_from_config_applies_session_section():
    config = default_config()
    config.session.min_confidence = 0.95
    config.session.buffer_capacity = 3
    session = TrackingSession.from_config(config)

    assert session.estimator.min_confidence == 0.95
    assert session.distance_buffer.capacity == 3
    session.on_frame(eyes(100, 80))
    assert session.get_distance() == -1


def test_concurrent_readers_during_processing(torso_frame):
    session = TrackingSession()
    done = threading.Event()
    errors = []

    def reader():
        while not done.is_set():
            try:
                distance = session.get_distance()
                assert distance == -1 or distance == pytest.approx(PD * FOCAL / 20)
                session.get_lateral_velocity()
                session.get_angular_velocity()
                session.get_state().to_dict()
            except Exception as e:
                errors.append(e)
                return

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    for i in range(500):
        session.on_frame(torso_frame if i % 3 else keypoints(), timestamp_ns=i * 1000)
    done.set()
    for t in readers:
        t.join(timeout=10)

    assert errors == []
    assert session.frame_count == 500


def test_out_of_order_frame_is_rejected_without_side_effects(torso_frame):
    session = TrackingSession()
    first = session.on_frame(torso_frame, timestamp_ns=1000)
    assert session.consume_fresh(MeasurementKind.DISTANCE)
    state = session.get_state()

    wider = keypoints(
        LEFT_EYE=(110, 50, 0.9),
        RIGHT_EYE=(80, 50, 0.9),
        LEFT_SHOULDER=(120, 150, 0.8),
        RIGHT_SHOULDER=(70, 150, 0.8),
    )
    with pytest.raises(ValueError):
        session.on_frame(wider, timestamp_ns=500)

    assert session.get_distance() == pytest.approx(first.distance.value)
    assert session.get_state() == state
    assert session.get_phase() is SessionPhase.IDLE
    assert not session.is_fresh(MeasurementKind.DISTANCE)
    assert session.frame_count == 1
    assert session.last_estimate is first
    assert [len(b) for b in (session.distance_buffer, session.angle_buffer, session.offset_buffer)] == [1, 1, 1]
    assert session.estimator.scale == pytest.approx(PD / 20)
    assert session.estimator.last_angle == 0.0

    # later frames are accepted again
    session.on_frame(wider, timestamp_ns=1000 + NS_PER_SECOND)
    assert session.get_distance() == pytest.approx(PD * FOCAL / 30)
