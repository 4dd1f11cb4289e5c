import threading

import pytest

from posetelemetry.shared.ring_buffer import NS_PER_SECOND, Sample, TimeWindowedBuffer


def test_default_capacity():
    assert TimeWindowedBuffer().capacity == 25


@pytest.mark.parametrize("capacity", [0, -3])
def test_non_positive_capacity_rejected(capacity):
    with pytest.raises(ValueError):
        TimeWindowedBuffer(capacity)


def test_keeps_most_recent_samples_oldest_first():
    buffer = TimeWindowedBuffer(25)
    for i in range(30):
        buffer.put(float(i), i * 1000)

    samples = buffer.snapshot()
    assert len(buffer) == 25
    assert [s.value for s in samples] == [float(i) for i in range(5, 30)]
    assert samples[0] == Sample(5.0, 5000)
    assert buffer.latest() == Sample(29.0, 29000)


def test_displacement_needs_two_samples():
    buffer = TimeWindowedBuffer()
    assert buffer.get_displacement_over_time() == 0.0
    buffer.put(3.0, 10)
    assert buffer.get_displacement_over_time() == 0.0


def test_displacement_between_two_samples():
    buffer = TimeWindowedBuffer()
    buffer.put(1.0, 0)
    buffer.put(2.5, NS_PER_SECOND // 2)
    assert buffer.get_displacement_over_time() == pytest.approx(3.0)


def test_displacement_uses_oldest_and_newest_only():
    buffer = TimeWindowedBuffer(3)
    buffer.put(100.0, 0)
    buffer.put(0.0, NS_PER_SECOND)
    buffer.put(50.0, 2 * NS_PER_SECOND)
    buffer.put(4.0, 3 * NS_PER_SECOND)
    # window is now (0.0 @ 1s) .. (4.0 @ 3s)
    assert buffer.get_displacement_over_time() == pytest.approx(2.0)


def test_equal_timestamps_give_zero():
    buffer = TimeWindowedBuffer()
    buffer.put(1.0, 5)
    buffer.put(9.0, 5)
    assert buffer.get_displacement_over_time() == 0.0


def test_decreasing_timestamp_rejected():
    buffer = TimeWindowedBuffer()
    buffer.put(1.0, 100)
    with pytest.raises(ValueError):
        buffer.put(2.0, 99)
    assert len(buffer) == 1


def test_clear():
    buffer = TimeWindowedBuffer()
    buffer.put(1.0, 1)
    buffer.clear()
    assert len(buffer) == 0
    assert buffer.latest() is None


def test_concurrent_put_and_read():
    buffer = TimeWindowedBuffer(25)
    done = threading.Event()
    errors = []

    def writer():
        for i in range(1000):
            # value == timestamp so every consistent window has slope 1e9
            buffer.put(float(i), i)
        done.set()

    def reader():
        while not done.is_set():
            try:
                samples = buffer.snapshot()
                assert len(samples) <= 25
                for s in samples:
                    assert s.value == float(s.timestamp_ns)
                assert [s.timestamp_ns for s in samples] == sorted(s.timestamp_ns for s in samples)
                velocity = buffer.get_displacement_over_time()
                assert velocity == 0.0 or velocity == pytest.approx(NS_PER_SECOND)
            except Exception as e:
                errors.append(e)
                return

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    w = threading.Thread(target=writer)
    w.start()
    w.join(timeout=10)
    done.set()
    for t in readers:
        t.join(timeout=10)

    assert errors == []
    assert len(buffer) == 25
    assert buffer.latest() == Sample(999.0, 999)
