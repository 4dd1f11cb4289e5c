import json
import logging

import pytest

from posetelemetry.core import config_loader
from posetelemetry.core.config_loader import (
    apply_env_overrides,
    default_config,
    find_config_path,
    get_estimator_constants,
    load_config,
)
from posetelemetry.core.logger import setup_logger


def write_config(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults_fill_missing_sections(tmp_path):
    path = write_config(tmp_path / "tracker_config.json", {"estimator": {"pivot_weight": 2.0}})
    config = load_config(path)

    assert config.estimator.pivot_weight == 2.0
    assert config.estimator.pupillary_distance_m == 0.063
    assert config.session.buffer_capacity == 25
    assert config.lifecycle.read_timeout_s == 0.1
    assert config.config_path == path


def test_load_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(broken)

    with pytest.raises(ValueError):
        load_config(write_config(tmp_path / "list.json", [1, 2]))


def test_env_var_selects_config(tmp_path, monkeypatch):
    path = write_config(tmp_path / "custom.json", {})
    monkeypatch.setenv(config_loader.CONFIG_ENV_VAR, str(path))
    assert find_config_path() == path


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("POSETELEMETRY_LOG_LEVEL", "debug")
    monkeypatch.setenv("POSETELEMETRY_MIN_CONFIDENCE", "0.3")
    config = apply_env_overrides(default_config())
    assert config.logging.level == "DEBUG"
    assert config.session.min_confidence == 0.3


def test_invalid_env_confidence_is_ignored(monkeypatch):
    monkeypatch.setenv("POSETELEMETRY_MIN_CONFIDENCE", "high")
    config = apply_env_overrides(default_config())
    assert config.session.min_confidence == 0.5


def test_get_config_singleton(tmp_path, monkeypatch):
    path = write_config(tmp_path / "tracker_config.json", {"session": {"buffer_capacity": 7}})
    monkeypatch.setattr(config_loader, "_config_instance", None)

    first = config_loader.get_config(path)
    assert first.session.buffer_capacity == 7
    assert config_loader.get_config() is first
    assert config_loader.get_config(path, reload=True) is not first


def test_estimator_constants_roundtrip():
    constants = get_estimator_constants(default_config())
    assert constants["face_angle_calibration_left"] == 20
    assert constants["face_angle_calibration_right"] == 34


def test_resolve_path(tmp_path):
    path = write_config(tmp_path / "tracker_config.json", {})
    (tmp_path / "logs").mkdir()
    config = load_config(path)
    assert config.resolve_path("logs") == tmp_path / "logs"
    assert config.resolve_path("nowhere") is None
    assert config.resolve_path(None) is None


def test_setup_logger_writes_file(tmp_path):
    log = setup_logger(
        name="posetelemetry_test_file",
        level=logging.DEBUG,
        log_dir=str(tmp_path),
        enable_console=False,
        enable_file=True,
        file_rotation="size",
    )
    log.debug("hello")
    for handler in log.handlers:
        handler.flush()
    assert "hello" in (tmp_path / "posetelemetry_test_file.log").read_text(encoding="utf-8")
