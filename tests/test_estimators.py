import numpy as np
import pytest

pytest.importorskip("numba")

from spike_bender.errors import BadArguments, ChannelCountMismatch
from spike_bender.estimators import (
    apply_gain,
    apply_rms_balance,
    calc_deviation,
    calc_gain_adjust,
    estimate_average,
    estimate_envelope,
    estimate_partial_rms,
    estimate_rms,
    estimate_rms_balance,
)
from spike_bender.sample import Sample


SR = 48000


def _sine(freq=100.0, seconds=1.0, amplitude=1.0, sr=SR):
    t = np.arange(int(sr * seconds)) / float(sr)
    return amplitude * np.sin(2.0 * np.pi * freq * t)


def test_rms_of_constant_signal_converges_to_amplitude():
    period = 100
    sample = Sample(np.full((2, 1000), 0.5), SR)
    rms = estimate_rms(sample, "none", period)

    assert rms.sample_rate == SR
    assert np.allclose(rms.data[:, period - 1 : 1000], 0.5, atol=1e-6)
    # Window drains over the zero tail
    assert rms.data[0, -1] < 0.5


@pytest.mark.parametrize("estimator", [estimate_rms, estimate_average, estimate_partial_rms])
def test_output_runs_one_window_past_the_input(estimator):
    sample = Sample(_sine(seconds=0.1)[None, :], SR)
    out = estimator(sample, "none", 333)
    assert out.channels == 1
    assert out.length == sample.length + 333


def test_average_of_alternating_signal_is_zero():
    x = np.tile([1.0, -1.0], 500)
    out = estimate_average(Sample(x, SR), "none", 2)
    assert np.allclose(out.data[0, 1:1000], 0.0, atol=1e-6)


def test_partial_rms_picks_one_polarity():
    sample = Sample(np.full(2000, -0.3), SR)
    pos = estimate_partial_rms(sample, "none", 200, positive=True)
    neg = estimate_partial_rms(sample, "none", 200, positive=False)

    assert np.all(pos.data == 0.0)
    assert np.allclose(neg.data[0, 199:2000], 0.3, atol=1e-6)


def test_invalid_period_is_rejected():
    sample = Sample(np.zeros(10), SR)
    with pytest.raises(BadArguments):
        estimate_rms(sample, "none", 0)


def test_balance_of_non_negative_signal_has_silent_negative_branch():
    x = np.abs(_sine(seconds=0.2))
    balance = estimate_rms_balance(Sample(x, SR), "none", 480)

    assert balance.channels == 5
    assert balance.length == x.size + 480
    assert np.all(balance.channel(1) == 0.0)
    assert np.all(balance.channel(3) == 1.0)
    assert np.all(balance.channel(4) == 1.0)


def test_balance_equalizes_asymmetric_waveform():
    base = _sine(freq=100.0, seconds=0.5)
    x = np.where(base > 0.0, 0.8 * base, 0.2 * base)
    sample = Sample(np.stack([x, x]), SR)
    period = 4800

    balance = estimate_rms_balance(sample, "none", period)
    assert balance.channels == 10
    body = slice(period, sample.length)
    assert np.allclose(balance.channel(3)[body], 0.5, atol=1e-3)
    assert np.allclose(balance.channel(4)[body], 2.0, atol=1e-3)
    assert np.allclose(balance.channel(2)[body], np.sqrt(balance.channel(0)[body] * balance.channel(1)[body]), atol=1e-6)

    out = apply_rms_balance(sample, balance)
    assert out.length == sample.length
    tail = out.channel(0)[period:]
    assert np.max(tail) == pytest.approx(0.4, abs=1e-3)
    assert np.min(tail) == pytest.approx(-0.4, abs=1e-3)


def test_apply_balance_checks_channel_count():
    mono = Sample(np.zeros(100), SR)
    stereo = Sample(np.zeros((2, 100)), SR)
    balance = estimate_rms_balance(mono, "none", 10)
    with pytest.raises(ChannelCountMismatch):
        apply_rms_balance(stereo, balance)


def test_envelope_removes_dc_ramp():
    # One cycle per block: every block yields a +0.8 maximum and a -0.2 minimum
    x = 0.3 + _sine(freq=100.0, seconds=1.0, amplitude=0.5)
    sample = Sample(x, SR)
    env = estimate_envelope(sample, "none", 480)

    assert env.output.length == sample.length
    assert env.midpoint.length == sample.length
    assert np.count_nonzero(env.positive_peaks.channel(0)) == 100
    assert np.count_nonzero(env.negative_peaks.channel(0)) == 100
    assert np.allclose(env.midpoint.channel(0)[480:], 0.3, atol=1e-5)
    assert np.allclose(env.output.channel(0)[480:], x[480:] - 0.3, atol=1e-5)


def test_envelope_pads_to_whole_blocks_and_tolerates_silence():
    sample = Sample(np.zeros((2, 1000)), SR)
    env = estimate_envelope(sample, "none", 300)

    assert env.positive.length == 1200
    assert env.output.length == 1000
    assert np.all(env.midpoint.data == 0.0)
    assert np.all(env.output.data == 0.0)


def test_calc_deviation_with_offset():
    sample = Sample(np.array([0.5, -0.8, 0.2, 0.1]), SR)
    rms = Sample(np.full(4, 0.3), SR)
    dev = calc_deviation(sample, rms, offset=1)
    assert np.allclose(dev.channel(0), [0.5, 0.5, 0.0, 0.0], atol=1e-6)


def test_calc_gain_adjust_is_unity_over_silence():
    ref = Sample(np.array([0.5, 1.0, 0.2]), SR)
    src = Sample(np.array([0.25, 0.0, -0.4, 9.0]), SR)
    gain = calc_gain_adjust(ref, src)
    assert gain.length == 3
    assert np.allclose(gain.channel(0), [2.0, 1.0, 0.5])


def test_apply_gain_uses_shorter_length():
    sample = Sample(np.ones((2, 10)), SR)
    gain = Sample(np.full((2, 6), 0.5), SR)
    out = apply_gain(sample, gain)
    assert out.length == 6
    assert np.all(out.data == 0.5)
    assert np.all(sample.data == 1.0)

    with pytest.raises(ChannelCountMismatch):
        apply_gain(sample, Sample(np.ones(6), SR))
