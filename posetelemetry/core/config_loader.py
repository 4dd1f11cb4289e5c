"""
Unified configuration loader - lightweight attribute-style config tree
=====================================================================

Responsibilities:
1. read tracker_config.json and fill in defaults for missing sections
2. expose attribute-style access (config.estimator.pivot_weight)
3. resolve paths relative to the config file

Config file location:
- explicit: load_config(config_path="path/to/tracker_config.json")
- environment: POSETELEMETRY_CONFIG=path/to/tracker_config.json
- default: <project root>/tracker_config.json, then <project root>/config/tracker_config.json

Example:
```python
from posetelemetry.core.config_loader import get_config

config = get_config()  # singleton
print(config.estimator.pupillary_distance_m)
print(config.session.buffer_capacity)
```
"""
from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Dict, Optional, Any

from .constants import Constants


CONFIG_FILENAME = "tracker_config.json"
CONFIG_ENV_VAR = "POSETELEMETRY_CONFIG"

DEFAULT_SECTIONS: Dict[str, Dict[str, Any]] = {
    "estimator": {
        "pupillary_distance_m": Constants.PUPILLARY_DISTANCE_M,
        "focal_length_experimental": Constants.FOCAL_LENGTH_EXPERIMENTAL,
        "pivot_weight": Constants.PIVOT_WEIGHT,
        "right_turn_pixel_correction": Constants.RIGHT_TURN_PIXEL_CORRECTION,
        "eye_half_span_m": Constants.EYE_HALF_SPAN_M,
        "eye_pivot_depth_m": Constants.EYE_PIVOT_DEPTH_M,
        "frame_center_x": Constants.FRAME_CENTER_X,
        "angle_calibration_left": Constants.ANGLE_CALIBRATION_LEFT,
        "angle_calibration_right": Constants.ANGLE_CALIBRATION_RIGHT,
        "face_angle_calibration_left": Constants.FACE_ANGLE_CALIBRATION_LEFT,
        "face_angle_calibration_right": Constants.FACE_ANGLE_CALIBRATION_RIGHT,
        "divisor_epsilon": Constants.DIVISOR_EPSILON,
    },
    "session": {
        "min_confidence": Constants.MIN_CONFIDENCE,
        "buffer_capacity": Constants.BUFFER_CAPACITY,
    },
    "lifecycle": {
        "read_timeout_s": 0.1,
        "join_timeout_s": 5.0,
    },
    "telemetry": {
        "print_enabled": True,
        "print_interval": 5,
    },
    "logging": {
        "level": "INFO",
        "enable_console": True,
        "enable_file": False,
        "file_rotation": "daily",
        "max_size_mb": 20,
    },
    "paths": {
        "logs_dir": "logs",
    },
}


class DictConfig:
    """Dictionary-backed config node with attribute access"""

    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            if isinstance(value, dict):
                setattr(self, key, DictConfig(**value))
            elif isinstance(value, list) and value and isinstance(value[0], dict):
                setattr(self, key, [DictConfig(**item) if isinstance(item, dict) else item for item in value])
            else:
                setattr(self, key, value)

    def get(self, key: str, default=None):
        """dict-style get"""
        return getattr(self, key, default)

    def __getitem__(self, key: str):
        """config["key"] access"""
        return getattr(self, key)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary copy (nested nodes converted back)"""
        result = {}
        for key, value in self.__dict__.items():
            if key.startswith("_"):
                continue
            if isinstance(value, DictConfig):
                result[key] = value.to_dict()
            elif isinstance(value, list):
                result[key] = [item.to_dict() if isinstance(item, DictConfig) else item for item in value]
            else:
                result[key] = value
        return result

    def __repr__(self):
        attrs = {k: v for k, v in self.__dict__.items() if not k.startswith("_")}
        return f"{self.__class__.__name__}({attrs})"


class SystemConfig(DictConfig):
    """
    Top-level configuration

    Attributes:
        estimator: geometric model constants
        session: keypoint filtering and buffer sizing
        lifecycle: worker loop timing
        telemetry: telemetry print settings
        logging: logging settings
        paths: path settings
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._config_path: Optional[Path] = None

    def set_config_path(self, path: Path) -> None:
        """Remember the source file (used for relative path resolution)"""
        self._config_path = path

    @property
    def config_path(self) -> Optional[Path]:
        return self._config_path

    def resolve_path(self, path_str: Optional[str]) -> Optional[Path]:
        """Resolve a relative/absolute path; None when it does not exist"""
        if not path_str:
            return None

        candidate = Path(path_str)
        if not candidate.is_absolute():
            base = self._config_path.parent if self._config_path else Path.cwd()
            candidate = base / candidate

        return candidate if candidate.exists() else None


def _merge_defaults(raw_data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill sections and keys missing from the file with their defaults"""
    merged = copy.deepcopy(raw_data)
    for section, defaults in DEFAULT_SECTIONS.items():
        current = merged.get(section)
        if not isinstance(current, dict):
            merged[section] = copy.deepcopy(defaults)
            continue
        for key, value in defaults.items():
            current.setdefault(key, value)
    return merged


def find_config_path() -> Optional[Path]:
    """
    Locate the config file

    Search order: env POSETELEMETRY_CONFIG > cwd > project root > project root/config
    """
    config_env = os.getenv(CONFIG_ENV_VAR)
    if config_env:
        return Path(config_env)

    root_dir = Path(__file__).parent.parent.parent
    candidates = [
        Path.cwd() / CONFIG_FILENAME,
        root_dir / CONFIG_FILENAME,
        root_dir / "config" / CONFIG_FILENAME,
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


# ============================================================================
# Loader (singleton)
# ============================================================================

_config_instance: Optional[SystemConfig] = None


def default_config() -> SystemConfig:
    """Configuration made only of compiled-in defaults"""
    return SystemConfig(**_merge_defaults({}))


def load_config(config_path: Optional[str | Path] = None) -> SystemConfig:
    """
    Load configuration from a JSON file

    Args:
        config_path: configuration file path (default: auto-detect)

    Returns:
        SystemConfig: configuration object

    Raises:
        FileNotFoundError: configuration file does not exist
        ValueError: configuration file is not valid JSON or not an object
    """
    if config_path is None:
        config_path = find_config_path()
        if config_path is None:
            raise FileNotFoundError(
                f"Configuration file not found: set {CONFIG_ENV_VAR} or create {CONFIG_FILENAME}"
            )
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Configuration file JSON parsing failed: {e}") from e

    if not isinstance(raw_data, dict):
        raise ValueError(f"Configuration root must be a JSON object: {config_path}")

    config = SystemConfig(**_merge_defaults(raw_data))
    config.set_config_path(config_path)
    return config


def get_config(config_path: Optional[str | Path] = None, reload: bool = False) -> SystemConfig:
    """
    Configuration singleton (lazy)

    Args:
        config_path: config file path (only used on first load)
        reload: force a reload

    Returns:
        SystemConfig: the shared configuration
    """
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = load_config(config_path)

    return _config_instance


# ============================================================================
# Environment overrides
# ============================================================================

def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """
    Apply environment overrides (ENV > tracker_config.json > defaults)

    Supported variables:
    - POSETELEMETRY_LOG_LEVEL: log level
    - POSETELEMETRY_MIN_CONFIDENCE: keypoint confidence threshold
    """
    if log_level := os.getenv("POSETELEMETRY_LOG_LEVEL"):
        config.logging.level = log_level.upper()

    if min_confidence := os.getenv("POSETELEMETRY_MIN_CONFIDENCE"):
        try:
            config.session.min_confidence = float(min_confidence)
        except ValueError:
            pass

    return config


def get_estimator_constants(config: Optional[SystemConfig] = None) -> Dict[str, Any]:
    """
    Estimator constants as a plain dictionary

    Returns:
        the `estimator` section merged over the compiled-in defaults
    """
    config = config or get_config()
    return config.estimator.to_dict()
