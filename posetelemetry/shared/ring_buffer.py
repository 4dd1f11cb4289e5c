"""
Time-windowed sample buffer

Fixed-capacity ring of (value, timestamp) samples used to estimate
displacement over time (two-point finite difference between the oldest
and the newest sample).
"""
import threading
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

from ..core.constants import Constants

NS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp_ns: int


class TimeWindowedBuffer:
    """
    Ring buffer of Samples, oldest first

    put() is called from the processing thread only; readers take a
    consistent snapshot under a lock held just for the copy/compute.
    """

    def __init__(self, capacity: int = Constants.BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError(f"buffer capacity must be positive, got {capacity}")
        self._samples: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    def put(self, value: float, timestamp_ns: int):
        """
        Append one sample, evicting the oldest when full

        Raises:
            ValueError: timestamp older than the newest stored sample
        """
        sample = Sample(float(value), int(timestamp_ns))
        with self._lock:
            if self._samples and sample.timestamp_ns < self._samples[-1].timestamp_ns:
                raise ValueError(
                    f"sample timestamp {sample.timestamp_ns} precedes newest "
                    f"{self._samples[-1].timestamp_ns}"
                )
            self._samples.append(sample)

    def get_displacement_over_time(self) -> float:
        """
        (newest.value - oldest.value) / elapsed seconds

        Returns 0.0 with fewer than two samples or a zero time span.
        """
        with self._lock:
            if len(self._samples) < 2:
                return 0.0
            oldest = self._samples[0]
            newest = self._samples[-1]

        elapsed_ns = newest.timestamp_ns - oldest.timestamp_ns
        if elapsed_ns <= 0:
            return 0.0
        return (newest.value - oldest.value) / (elapsed_ns / NS_PER_SECOND)

    def snapshot(self) -> List[Sample]:
        with self._lock:
            return list(self._samples)

    def latest(self) -> Optional[Sample]:
        with self._lock:
            return self._samples[-1] if self._samples else None

    def clear(self):
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def __repr__(self) -> str:
        return f"TimeWindowedBuffer(size={len(self)}, capacity={self.capacity})"
