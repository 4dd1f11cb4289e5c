"""
Shared-state primitives read by consumer threads
"""
from .publisher import Measurement, MeasurementPublisher, ScalarPublisher, INVALID
from .ring_buffer import Sample, TimeWindowedBuffer

__all__ = [
    'Measurement',
    'MeasurementPublisher',
    'ScalarPublisher',
    'INVALID',
    'Sample',
    'TimeWindowedBuffer',
]
