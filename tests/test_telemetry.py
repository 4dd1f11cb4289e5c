import json

import numpy as np
import pytest

from conftest import keypoints
from posetelemetry.core.config_loader import default_config
from posetelemetry.core.telemetry import TelemetryBuilder, format_floats
from posetelemetry.tracking.session import TrackingSession


def test_format_floats_recurses():
    data = {"a": 1.23456, "b": [np.float32(2.5), np.int64(3)], "c": np.array([0.12345, 1.0]), "d": "x"}
    assert format_floats(data) == {"a": 1.235, "b": [2.5, 3], "c": [0.123, 1.0], "d": "x"}


def test_build_reports_invalid_as_null():
    session = TrackingSession()
    session.on_frame(keypoints(LEFT_EYE=(100, 50, 0.9), RIGHT_EYE=(80, 50, 0.9)))
    telemetry = TelemetryBuilder(print_enabled=False).build(session, frame_count=1, global_fps=0.0)

    assert telemetry["distance_m"] == pytest.approx(0.68985)
    assert telemetry["bearing_angle_deg"] is None
    assert telemetry["torso_tilt_ratio"] is None
    assert telemetry["bounding_box_offset_px"] == pytest.approx(-38.5)
    assert telemetry["global_fps"] is None
    assert telemetry["state"]["bb_off_center_fell_back_to_eyes_only"] is True
    assert telemetry["status"] == "tracking"
    json.dumps(telemetry)


def test_build_includes_lifecycle_stats(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame)
    stats = {"frames_processed": 4, "total_processing_time": 0.008, "last_processing_time": 0.002}
    telemetry = TelemetryBuilder(print_enabled=False).build(session, 4, 30.0, lifecycle_stats=stats)
    assert telemetry["lifecycle"]["avg_processing_ms"] == 2.0
    assert telemetry["lifecycle"]["last_processing_ms"] == 2.0


def test_build_empty_reuses_last(torso_frame):
    session = TrackingSession()
    session.on_frame(torso_frame)
    builder = TelemetryBuilder(print_enabled=False)
    builder.build(session, 1, 30.0)

    empty = builder.build_empty(2, 30.0)
    assert empty["status"] == "no_detection"
    assert empty["frame_count"] == 2
    assert empty["distance_m"] == pytest.approx(0.68985)

    builder.reset()
    fresh = builder.build_empty(3, 30.0)
    assert fresh["distance_m"] is None


def test_prints_every_interval(torso_frame, capsys):
    session = TrackingSession()
    session.on_frame(torso_frame)
    builder = TelemetryBuilder(print_enabled=True, print_interval=2)
    for frame in range(1, 5):
        builder.build(session, frame, 30.0)

    out = capsys.readouterr().out
    assert out.count("[Telemetry]") == 2


def test_from_config():
    config = default_config()
    config.telemetry.print_interval = 0
    builder = TelemetryBuilder.from_config(config)
    assert builder.print_enabled
    assert builder.print_interval == 1
