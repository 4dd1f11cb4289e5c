"""
Project logger

Handlers follow the `logging` section of tracker_config.json; the level can
be forced with POSETELEMETRY_LOG_LEVEL. Explicit arguments win over both.
"""
import logging
import os
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def _project_config():
    """tracker_config.json when one can be found and parsed, else None"""
    # deferred import, config_loader must stay importable without logging
    from posetelemetry.core.config_loader import find_config_path, get_config

    try:
        config_path = find_config_path()
        return get_config(config_path=config_path) if config_path is not None else None
    except (OSError, ValueError) as e:
        print(f"Warning: could not load tracker_config.json, using default logging setup: {e}")
        return None


def _setting(config, section: str, key: str, default: Any) -> Any:
    node = config.get(section) if config is not None else None
    return node.get(key, default) if node is not None else default


def setup_logger(
    name: str = 'posetelemetry',
    level: Optional[int] = None,
    log_dir: Optional[str] = None,
    enable_console: Optional[bool] = None,
    enable_file: Optional[bool] = None,
    max_size_mb: Optional[int] = None,
    file_rotation: Optional[str] = None
) -> logging.Logger:
    """
    Configure a logger once per process

    Args:
        name: logger name (also the log file stem)
        level: log level; None means env, then config, then INFO
        log_dir: directory for file logging (config `paths.logs_dir`)
        enable_console / enable_file: handler switches (config `logging.*`)
        max_size_mb: size limit when file_rotation is 'size'
        file_rotation: 'daily' (one file per day) or 'size'
    """
    config = _project_config()

    if level is None:
        level_name = os.getenv("POSETELEMETRY_LOG_LEVEL") or _setting(config, 'logging', 'level', 'INFO')
        level = getattr(logging, str(level_name).upper(), logging.INFO)
    if log_dir is None:
        log_dir = _setting(config, 'paths', 'logs_dir', 'logs')
    if enable_console is None:
        enable_console = _setting(config, 'logging', 'enable_console', True)
    if enable_file is None:
        enable_file = _setting(config, 'logging', 'enable_file', False)
    if file_rotation is None:
        file_rotation = _setting(config, 'logging', 'file_rotation', 'daily')
    if max_size_mb is None:
        max_size_mb = _setting(config, 'logging', 'max_size_mb', 20)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = []

    if enable_console:
        handlers.append(logging.StreamHandler())

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        if file_rotation == 'daily':
            handlers.append(logging.FileHandler(
                log_path / f'{name}_{datetime.now().strftime("%Y%m%d")}.log', encoding='utf-8'
            ))
        else:
            handlers.append(RotatingFileHandler(
                log_path / f'{name}.log',
                maxBytes=int(max_size_mb) * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            ))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


logger = setup_logger()
