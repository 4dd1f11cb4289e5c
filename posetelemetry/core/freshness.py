"""
Freshness flags
===============

Thread-safe "new data available" flags, one per measurement kind, with
subscriber callbacks. The processing thread marks a kind fresh after it
publishes a valid value; consumers test-and-clear with consume().
"""
import threading
from enum import Enum
from typing import Callable, Dict, List

from .logger import logger


class MeasurementKind(str, Enum):
    """Published measurement kinds"""
    DISTANCE = "distance"
    ANGLE = "angle"
    TILT_RATIO = "tilt_ratio"
    OFFSET = "offset"


FreshnessCallback = Callable[[MeasurementKind, float], None]


class FreshnessFlag:
    """
    Thread-safe boolean set by the writer and cleared by the reader

    Example:
        >>> flag = FreshnessFlag(MeasurementKind.DISTANCE)
        >>> flag.mark()
        >>> flag.consume()
        True
        >>> flag.consume()
        False
    """

    def __init__(self, kind: MeasurementKind):
        self.kind = kind
        self._flag = False
        self._lock = threading.Lock()

    def mark(self):
        """Signal that a new value was published"""
        with self._lock:
            self._flag = True

    def peek(self) -> bool:
        """Current state without clearing it"""
        with self._lock:
            return self._flag

    def consume(self) -> bool:
        """Return the current state and clear it"""
        with self._lock:
            fresh = self._flag
            self._flag = False
            return fresh

    def clear(self):
        with self._lock:
            self._flag = False

    def __repr__(self) -> str:
        return f"FreshnessFlag(kind='{self.kind.value}', fresh={self.peek()})"


class FreshnessBoard:
    """
    One FreshnessFlag per MeasurementKind plus subscriber notification

    Callbacks run on the processing thread, outside of any flag lock;
    a failing callback is logged and does not affect the others.
    """

    def __init__(self):
        self._flags: Dict[MeasurementKind, FreshnessFlag] = {
            kind: FreshnessFlag(kind) for kind in MeasurementKind
        }
        self._lock = threading.Lock()
        self._subs: List[FreshnessCallback] = []

    def mark(self, kind: MeasurementKind, value: float):
        """Mark `kind` fresh and notify subscribers"""
        self._flags[kind].mark()

        with self._lock:
            subs = list(self._subs)

        for fn in subs:
            try:
                fn(kind, value)
            except Exception as e:
                logger.error(f"Freshness callback failed for '{kind.value}': {e}", exc_info=True)

    def is_fresh(self, kind: MeasurementKind) -> bool:
        return self._flags[kind].peek()

    def consume(self, kind: MeasurementKind) -> bool:
        """Test-and-clear the flag for `kind`"""
        return self._flags[kind].consume()

    def snapshot(self) -> Dict[str, bool]:
        return {kind.value: flag.peek() for kind, flag in self._flags.items()}

    def clear(self):
        for flag in self._flags.values():
            flag.clear()

    def subscribe(self, fn: FreshnessCallback) -> Callable[[], None]:
        """
        Register a callback fn(kind, value)

        Returns:
            an unsubscribe function
        """
        with self._lock:
            self._subs.append(fn)

        def unsubscribe():
            with self._lock:
                try:
                    self._subs.remove(fn)
                except ValueError:
                    pass

        return unsubscribe

    def __repr__(self) -> str:
        return f"FreshnessBoard(flags={self.snapshot()}, subscribers={len(self._subs)})"
