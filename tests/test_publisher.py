import threading

from posetelemetry.shared.publisher import INVALID, Measurement, MeasurementPublisher, ScalarPublisher


def test_measurement_constructors():
    m = Measurement.of(3)
    assert m.valid and m.value == 3.0
    assert not Measurement.invalid().valid
    assert INVALID == Measurement.invalid()


def test_measurement_boundary_conversions():
    assert Measurement.of(0.25).or_sentinel() == 0.25
    assert INVALID.or_sentinel() == -1.0
    assert INVALID.or_sentinel(-10000) == -10000
    assert Measurement.of(-1.5).as_optional() == -1.5
    assert INVALID.as_optional() is None


def test_scalar_publisher_defaults_to_zero_and_keeps_last_value():
    publisher = ScalarPublisher()
    assert publisher.get() == 0.0
    publisher.set(0.5)
    publisher.set(0.75)
    assert publisher.get() == 0.75


def test_measurement_publisher_reports_sentinel_when_invalid():
    publisher = MeasurementPublisher()
    assert publisher.get() == -1.0
    assert not publisher.is_valid()

    publisher.publish(Measurement.of(1.25))
    assert publisher.get() == 1.25
    assert publisher.get_measurement() == Measurement(1.25, True)

    publisher.invalidate()
    assert publisher.get() == -1.0


def test_valid_negative_one_is_distinguishable_through_measurement():
    publisher = MeasurementPublisher()
    publisher.publish(Measurement.of(-1.0))
    assert publisher.get() == -1.0
    assert publisher.get_measurement().valid


def test_readers_never_see_torn_pairs():
    publisher = MeasurementPublisher()
    stop = threading.Event()
    errors = []

    def writer():
        for i in range(2000):
            publisher.publish(Measurement.of(float(i)) if i % 2 else INVALID)
        stop.set()

    def reader():
        while not stop.is_set():
            m = publisher.get_measurement()
            # invalid measurements always carry the zero value
            if not m.valid and m.value != 0.0:
                errors.append(m)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    w = threading.Thread(target=writer)
    w.start()
    w.join(timeout=10)
    stop.set()
    for t in readers:
        t.join(timeout=10)

    assert errors == []
