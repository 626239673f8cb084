from dataclasses import dataclass

import numpy as np
import pytest

from spike_bender.dsp_utils import db_to_gain
from spike_bender.errors import BadArguments
from spike_bender.sample import Sample
from spike_bender.smasher import Peak, block_extrema, find_extrema, smash_amplitude, smash_gain_curve
from spike_bender.statistics import median_gain


SR = 4800
BLOCK = SR // 100
SPIKE = 12 + 48 * 50
DIP = 36 + 48 * 70
# Last extremum of the tone: the minimum of the final cycle
LAST = SR - 12


@dataclass
class _Item:
    gain: float


def _items(*gains):
    return [_Item(g) for g in gains]


def _spiky_tone():
    # 100 Hz at 4.8 kHz: one cycle per block, peaks of exactly +-0.5
    t = np.arange(SR) / float(SR)
    x = 0.5 * np.sin(2.0 * np.pi * 100.0 * t)
    x[SPIKE] = 0.95
    return x.astype(np.float32)


def _tone():
    t = np.arange(SR) / float(SR)
    return (0.5 * np.sin(2.0 * np.pi * 100.0 * t)).astype(np.float32)


def test_median_of_odd_count_is_the_middle_value():
    assert median_gain(_items(5, 1, 4, 2, 3)) == 3.0


def test_median_edge_cases():
    assert median_gain([]) == 0.0
    assert median_gain(_items(0.7)) == 0.7
    assert median_gain(_items(4, 1, 3, 2)) == 3.0
    assert median_gain(_items(2, 2, 2)) == 2.0


def test_median_of_three_ignores_the_outlier():
    assert median_gain(_items(1, 2, 10)) == 2.0
    assert median_gain(_items(10, -4, 2)) == 2.0


def test_median_leaves_source_order_alone():
    items = _items(3, 1, 2)
    median_gain(items)
    assert [i.gain for i in items] == [3, 1, 2]


def test_find_extrema_treats_outside_as_zero():
    maxima, minima = find_extrema(np.array([0.5, 0.2, -0.3, 0.1], dtype=np.float32))
    assert maxima.tolist() == [0, 3]
    assert minima.tolist() == [2]


def test_block_extrema_keeps_strongest_per_block():
    x = _spiky_tone()
    maxima, minima = find_extrema(x)
    pos, neg = block_extrema(x, maxima, minima, BLOCK)

    assert len(pos) == 100
    assert len(neg) == 100
    assert Peak(SPIKE, pytest.approx(0.95)) in pos
    assert all(p.gain < 0.0 for p in neg)


def test_spike_is_pulled_down_to_threshold_times_median():
    x = _spiky_tone()
    threshold = db_to_gain(1.0)
    sample = Sample(x, SR)

    out = smash_amplitude(sample, threshold)

    assert out.channel(0)[SPIKE] == pytest.approx(0.5 * threshold, abs=1e-5)
    # Normal peaks stay as they are
    assert np.array_equal(out.channel(0)[:2000], x[:2000])
    assert np.array_equal(sample.channel(0), x)


def test_negative_spike_is_pulled_up_to_threshold_times_median():
    x = _tone()
    x[DIP] = -0.95
    out = smash_amplitude(Sample(x, SR), 1.2)

    assert out.channel(0)[DIP] == pytest.approx(-0.6, abs=1e-5)
    assert np.array_equal(out.channel(0)[:3000], x[:3000])


def test_tail_blends_toward_threshold_times_median():
    x = np.concatenate([_tone(), np.zeros(20, dtype=np.float32)])
    curve = smash_gain_curve(x, 1.5, BLOCK)
    tail = curve[LAST:]

    assert np.all(curve[:LAST + 1] == 1.0)
    assert np.all(np.diff(tail) <= 1e-7)
    assert curve[-1] < 0.76
    assert curve[-1] >= 0.75 - 1e-6


def test_tail_stays_at_unity_when_full_scale_is_within_threshold():
    curve = smash_gain_curve(_tone(), 2.5, BLOCK)
    assert np.all(curve == 1.0)


def test_gain_curve_is_continuous():
    x = _spiky_tone()
    threshold = db_to_gain(1.0)
    curve = smash_gain_curve(x, threshold, BLOCK)
    target = 0.5 * threshold / 0.95

    body = curve[:LAST]

    assert curve.shape == x.shape
    assert np.max(np.abs(np.diff(body))) < 0.05
    assert np.all(curve <= 1.0 + 1e-6)
    assert np.all(body >= target - 1e-6)
    boundaries = np.arange(BLOCK, LAST, BLOCK)
    assert np.max(np.abs(curve[boundaries] - curve[boundaries - 1])) < 0.05


def test_smash_rejects_non_positive_threshold():
    with pytest.raises(BadArguments):
        smash_gain_curve(np.ones(10, dtype=np.float32), 0.0, 4)


def test_smash_of_empty_and_silent_sample():
    empty = smash_amplitude(Sample(np.zeros((2, 0)), SR), 2.0)
    assert empty.length == 0

    silent = smash_amplitude(Sample(np.zeros((2, 100)), SR), 2.0)
    assert np.all(silent.data == 0.0)
