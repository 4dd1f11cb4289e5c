"""
Single-writer / multi-reader value publication

Values are immutable objects; publishing rebinds one reference, which is
atomic for readers, so get() never blocks and never observes a torn value.
"""
from dataclasses import dataclass
from typing import Optional

from ..core.constants import Constants


@dataclass(frozen=True)
class Measurement:
    """A derived value plus its validity flag"""
    value: float = 0.0
    valid: bool = False

    @classmethod
    def invalid(cls) -> "Measurement":
        return cls(0.0, False)

    @classmethod
    def of(cls, value: float) -> "Measurement":
        return cls(float(value), True)

    def or_sentinel(self, sentinel: float = Constants.INVALID_SENTINEL) -> float:
        """value when valid, otherwise the getter sentinel"""
        return self.value if self.valid else sentinel

    def as_optional(self) -> Optional[float]:
        return self.value if self.valid else None


INVALID = Measurement.invalid()


class ScalarPublisher:
    """Latest float published by one thread, readable from any thread"""

    def __init__(self, initial: float = 0.0):
        self._value = float(initial)

    def set(self, value: float):
        self._value = float(value)

    def get(self) -> float:
        return self._value

    def __repr__(self) -> str:
        return f"ScalarPublisher({self._value})"


class MeasurementPublisher:
    """
    Publishes a whole Measurement so value and validity are read together

    get() keeps the -1 convention of the consumer interface;
    get_measurement() exposes the explicit pair.
    """

    def __init__(self):
        self._measurement = INVALID

    def publish(self, measurement: Measurement):
        self._measurement = measurement

    def invalidate(self):
        self._measurement = INVALID

    def get(self) -> float:
        return self._measurement.or_sentinel()

    def get_measurement(self) -> Measurement:
        return self._measurement

    def is_valid(self) -> bool:
        return self._measurement.valid

    def __repr__(self) -> str:
        return f"MeasurementPublisher({self._measurement})"
