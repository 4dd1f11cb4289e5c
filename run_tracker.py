#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pose telemetry replay runner

Runs a full SessionLifecycle over a recorded keypoint file and prints
telemetry JSON every N frames.

Usage:
    python run_tracker.py --replay recording.jsonl
    python run_tracker.py --replay recording.jsonl --config tracker_config.json --print-interval 1
"""
import argparse
import sys
import traceback

from posetelemetry.core.config_loader import apply_env_overrides, default_config, find_config_path, load_config
from posetelemetry.core.logger import logger
from posetelemetry.core.telemetry import TelemetryBuilder
from posetelemetry.sources.replay import PrecomputedPoseEstimator, ReplayFrameSource
from posetelemetry.tracking.lifecycle import SessionLifecycle
from posetelemetry.tracking.session import TrackingSession


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Replay recorded keypoints through the pose telemetry engine")
    p.add_argument("--replay", required=True, help="JSON-lines file with one keypoint frame per line")
    p.add_argument("--config", default=None, help="tracker_config.json path (default: auto-detect)")
    p.add_argument("--print-interval", type=int, default=None, help="print telemetry every N frames")
    p.add_argument("--frame-interval", type=float, default=0.0, help="seconds between replayed frames")
    p.add_argument("--quiet", action="store_true", help="do not print telemetry")
    return p


def resolve_config(config_path):
    if config_path is not None:
        config = load_config(config_path)
    elif find_config_path() is not None:
        config = load_config()
    else:
        logger.info("No tracker_config.json found, using defaults")
        config = default_config()
    return apply_env_overrides(config)


def run_replay(args) -> bool:
    config = resolve_config(args.config)

    session = TrackingSession.from_config(config)
    builder = TelemetryBuilder.from_config(config)
    if args.print_interval is not None:
        builder.print_interval = max(1, args.print_interval)
    if args.quiet:
        builder.print_enabled = False

    source = ReplayFrameSource.from_file(args.replay, frame_interval=args.frame_interval)
    lifecycle = None

    def on_frame(estimate, frame_number):
        fps = lifecycle.fps_monitor.get_fps() if lifecycle is not None else 0.0
        if estimate.both_eyes_found or estimate.offset.valid:
            builder.build(session, frame_number, fps)
        else:
            builder.build_empty(frame_number, fps)

    lifecycle = SessionLifecycle(
        session,
        source,
        PrecomputedPoseEstimator(),
        read_timeout=float(config.lifecycle.read_timeout_s),
        join_timeout=float(config.lifecycle.join_timeout_s),
        frame_callback=on_frame,
    )

    try:
        lifecycle.start()
        while not source.wait_exhausted(timeout=0.5):
            if not lifecycle.is_running:
                logger.error("Worker exited before the replay finished")
                break
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        lifecycle.stop()

    stats = lifecycle.get_stats()
    logger.info(
        f"Replay done: processed={stats['frames_processed']} empty={stats['frames_empty']} "
        f"estimator_errors={stats['estimator_errors']} lifecycle_errors={stats['lifecycle_errors']}"
    )
    return stats['estimator_errors'] == 0 and stats['lifecycle_errors'] == 0


def main(argv=None):
    """Command line entry point"""
    args = build_parser().parse_args(argv)
    try:
        success = run_replay(args)
        return 0 if success else 1
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 2
    except Exception as e:
        logger.error(f"Replay failed: {e}")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
