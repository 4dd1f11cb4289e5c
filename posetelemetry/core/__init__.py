"""
Core module for common utilities and constants
"""
from .constants import Constants
from .logger import setup_logger, logger
from .freshness import FreshnessBoard, FreshnessFlag, MeasurementKind

__all__ = [
    'Constants',
    'setup_logger',
    'logger',
    'FreshnessBoard',
    'FreshnessFlag',
    'MeasurementKind',
]
