"""
Telemetry output
================

Builds, formats and prints tracking telemetry snapshots.
"""
import json
import time
from typing import Any, Dict, Optional

import numpy as np

from .freshness import MeasurementKind
from .logger import logger


def format_floats(obj: Any) -> Any:
    """
    Recursively round floats to 3 decimals

    Args:
        obj: dict, list, tuple, float, ndarray, numpy scalar ...

    Returns:
        the formatted object
    """
    if isinstance(obj, dict):
        return {k: format_floats(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [format_floats(item) for item in obj]
    elif isinstance(obj, float):
        return round(obj, 3)
    elif isinstance(obj, np.ndarray):
        return [round(float(x), 3) for x in obj.tolist()]
    elif isinstance(obj, np.generic):
        val = obj.item()
        return round(val, 3) if isinstance(val, float) else val
    else:
        return obj


class TelemetryBuilder:
    """
    Telemetry builder

    Responsibilities:
    - build a telemetry dict from a TrackingSession snapshot
    - round floats to a fixed precision
    - print JSON telemetry every N frames

    Usage:
        builder = TelemetryBuilder(print_enabled=True, print_interval=5)

        # after a frame with detections
        telemetry = builder.build(session, frame_count=100, global_fps=30.0)

        # after a frame without a subject
        telemetry = builder.build_empty(frame_count=101, global_fps=30.0)
    """

    def __init__(self, print_enabled: bool = True, print_interval: int = 5):
        """
        Args:
            print_enabled: print telemetry to stdout
            print_interval: print every N frames
        """
        self.print_enabled = print_enabled
        self.print_interval = max(1, int(print_interval))
        self._last_telemetry: Optional[Dict[str, Any]] = None

    @classmethod
    def from_config(cls, config) -> "TelemetryBuilder":
        return cls(
            print_enabled=bool(config.telemetry.print_enabled),
            print_interval=int(config.telemetry.print_interval),
        )

    def build(
        self,
        session,
        frame_count: int,
        global_fps: float,
        lifecycle_stats: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Build telemetry from the session's current published values

        Args:
            session: TrackingSession
            frame_count: current frame number
            global_fps: processing rate
            lifecycle_stats: SessionLifecycle.get_stats() (optional)

        Returns:
            telemetry dict (unavailable measurements are None)
        """
        state = session.get_state()
        estimate = session.last_estimate

        telemetry = {
            "distance_m": session.get_measurement(MeasurementKind.DISTANCE).as_optional(),
            "bearing_angle_deg": session.get_measurement(MeasurementKind.ANGLE).as_optional(),
            "torso_tilt_ratio": session.get_measurement(MeasurementKind.TILT_RATIO).as_optional(),
            "bounding_box_offset_px": session.get_measurement(MeasurementKind.OFFSET).as_optional(),
            "scale_m_per_px": session.get_current_scale(),
            "velocity": {
                "lateral": session.get_lateral_velocity(),
                "range": session.get_range_velocity(),
                "angular": session.get_angular_velocity(),
            },
            "paths": {
                "tilt": estimate.tilt_path if estimate is not None else None,
                "offset": estimate.offset_path if estimate is not None else None,
            },
            "state": state.to_dict(),
            "timestamp": time.time(),
            "frame_count": frame_count,
            "global_fps": global_fps if global_fps > 0 else None,
            "status": "tracking" if (state.both_eyes_found or state.bb_off_center_calculated) else "no_detection",
        }

        if lifecycle_stats:
            telemetry["lifecycle"] = self._format_lifecycle_stats(lifecycle_stats)

        self._last_telemetry = telemetry
        self._print_if_enabled(telemetry, frame_count)
        return telemetry

    def build_empty(self, frame_count: int, global_fps: float, reuse_last: bool = True) -> Dict[str, Any]:
        """
        Build telemetry for a frame without a subject

        Args:
            frame_count: current frame number
            global_fps: processing rate
            reuse_last: carry the previous values forward with a fresh timestamp
        """
        if reuse_last and self._last_telemetry is not None:
            telemetry = self._last_telemetry.copy()
            telemetry["timestamp"] = time.time()
            telemetry["frame_count"] = frame_count
            telemetry["global_fps"] = global_fps if global_fps > 0 else None
            telemetry["status"] = "no_detection"
        else:
            telemetry = {
                "distance_m": None,
                "bearing_angle_deg": None,
                "torso_tilt_ratio": None,
                "bounding_box_offset_px": None,
                "scale_m_per_px": None,
                "velocity": {"lateral": None, "range": None, "angular": None},
                "paths": {"tilt": None, "offset": None},
                "state": None,
                "timestamp": time.time(),
                "frame_count": frame_count,
                "global_fps": global_fps if global_fps > 0 else None,
                "status": "no_detection",
            }

        self._last_telemetry = telemetry
        self._print_if_enabled(telemetry, frame_count)
        return telemetry

    def _print_if_enabled(self, telemetry: Dict[str, Any], frame_count: int):
        if not self.print_enabled:
            return

        if frame_count % self.print_interval != 0:
            return

        formatted_telemetry = format_floats(telemetry)
        print(f"[Telemetry] {json.dumps(formatted_telemetry, ensure_ascii=False)}", flush=True)

    def reset(self):
        self._last_telemetry = None
        logger.debug("TelemetryBuilder: reset")

    def _format_lifecycle_stats(self, stats: Dict[str, Any]) -> Dict[str, Any]:
        processed = stats.get("frames_processed", 0)
        return {
            "frames_processed": processed,
            "frames_empty": stats.get("frames_empty", 0),
            "estimator_errors": stats.get("estimator_errors", 0),
            "lifecycle_errors": stats.get("lifecycle_errors", 0),
            "last_processing_ms": round(stats.get("last_processing_time", 0) * 1000, 1) if processed else None,
            "avg_processing_ms": round(
                (stats.get("total_processing_time", 0) / processed) * 1000, 1
            ) if processed > 0 else None,
            "worker_active": stats.get("worker_active", False),
        }
