import numpy as np
import pytest

from spike_bender.errors import AllocationFailure, BadArguments
from spike_bender.sample import Sample


def test_allocate_and_frames_layout():
    sample = Sample.allocate(2, 5, 44100)
    assert sample.data.shape == (2, 5)
    assert sample.data.dtype == np.float32

    frames = np.arange(10, dtype=np.float32).reshape(5, 2)
    sample = Sample.from_frames(frames, 44100)
    assert sample.channels == 2
    assert sample.length == 5
    assert np.array_equal(sample.channel(1), [1, 3, 5, 7, 9])
    assert np.array_equal(sample.to_frames(), frames)


def test_bad_allocation():
    with pytest.raises(BadArguments):
        Sample.allocate(-1, 5, 44100)
    with pytest.raises(AllocationFailure):
        Sample.allocate(1 << 40, 1 << 40, 44100)


def test_truncate_and_swap():
    a = Sample(np.arange(10, dtype=np.float32), 8000)
    b = Sample(np.zeros((2, 3)), 16000)

    a.truncate_front(3)
    assert a.channel(0).tolist() == [3, 4, 5, 6, 7, 8, 9]
    a.truncate_length(4)
    assert a.channel(0).tolist() == [3, 4, 5, 6]
    a.truncate_length(100)
    assert a.length == 4

    a.swap(b)
    assert a.channels == 2 and a.sample_rate == 16000
    assert b.channel(0).tolist() == [3, 4, 5, 6] and b.sample_rate == 8000


def test_copy_is_independent():
    a = Sample(np.ones(4), 8000)
    b = a.copy()
    b.channel(0)[0] = 5.0
    assert a.channel(0)[0] == 1.0
    assert a.duration == pytest.approx(4 / 8000)
