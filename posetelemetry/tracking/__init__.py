"""
Tracking module
===============

Per-frame session orchestration and its worker lifecycle.
"""
from .session import SessionPhase, SessionState, TrackingSession
from .lifecycle import SessionLifecycle

__all__ = ['SessionPhase', 'SessionState', 'TrackingSession', 'SessionLifecycle']
