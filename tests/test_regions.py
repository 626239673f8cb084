import numpy as np
import pytest

pytest.importorskip("numba")

from spike_bender.errors import BadArguments
from spike_bender.estimators import estimate_rms
from spike_bender.regions import apply_region_gain, find_peaks, region_map
from spike_bender.sample import Sample


SIGNAL = np.array([0.1, 0.2, 0.1, -0.1, -0.2, -0.1, 0.2, 0.6, 0.2, -0.1, -0.1, 0.0], dtype=np.float32)


def test_quiet_crossings_are_split_off_before_loud_region():
    regions = find_peaks(SIGNAL, np.zeros_like(SIGNAL), 0.3)

    assert [(r.first, r.last, r.peak) for r in regions] == [(0, 6, 1), (6, 9, 7), (9, 12, 9)]
    assert regions[0].gain == pytest.approx(0.2)
    assert regions[1].gain == pytest.approx(0.6)
    assert regions[2].gain == pytest.approx(-0.1)
    assert regions[2].magnitude == pytest.approx(0.1)


def test_region_gain_clamps_only_loud_regions():
    regions = find_peaks(SIGNAL, np.zeros_like(SIGNAL), 0.3)
    out = apply_region_gain(SIGNAL, regions, 0.3)

    assert np.allclose(out[6:9], [1.0 / 3.0, 1.0, 1.0 / 3.0], atol=1e-6)
    assert np.array_equal(out[:6], SIGNAL[:6])
    assert np.array_equal(out[9:], SIGNAL[9:])
    # input untouched
    assert SIGNAL[7] == pytest.approx(0.6)


def test_regions_tile_the_whole_signal():
    rng = np.random.default_rng(7)
    sr = 8000
    t = np.arange(sr) / float(sr)
    x = (0.05 + 0.6 * (np.sin(2.0 * np.pi * 3.0 * t) > 0.7)) * np.sin(2.0 * np.pi * 220.0 * t)
    x += 0.01 * rng.standard_normal(x.size)
    sample = Sample(x, sr)
    rms = estimate_rms(sample, "k", 800)

    regions = find_peaks(sample.channel(0), rms.channel(0), 10.0 ** (-48.0 / 20.0))

    assert regions[0].first == 0
    assert regions[-1].last == sample.length
    for prev, cur in zip(regions, regions[1:]):
        assert prev.last == cur.first
    for r in regions:
        assert r.first < r.last
        assert r.first <= r.peak < r.last
        assert r.gain == pytest.approx(float(sample.channel(0)[r.peak]))


def test_empty_signal_has_no_regions():
    assert find_peaks(np.zeros(0), np.zeros(0), 0.1) == ()


def test_reference_must_cover_signal():
    with pytest.raises(BadArguments):
        find_peaks(np.ones(10), np.ones(5), 0.1)


def test_region_map_marks_boundaries_and_peaks():
    regions = find_peaks(SIGNAL, np.zeros_like(SIGNAL), 0.3)
    image = region_map(regions, SIGNAL.size)

    assert image.size == SIGNAL.size + 1
    assert image[0] == -1.0
    assert image[6] == -1.0
    assert image[12] == -1.0
    assert image[7] == pytest.approx(0.6)
