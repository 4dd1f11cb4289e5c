"""
Monitoring module
=================

Processing rate monitoring utilities.
"""
from .frame_rate_monitor import FrameRateMonitor

__all__ = ['FrameRateMonitor']
