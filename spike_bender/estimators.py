from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numba import njit

from .dsp_utils import PRECISION
from .errors import BadArguments, ChannelCountMismatch
from .sample import Sample
from .weighting import Weighting, WeightingFilter

LOG = logging.getLogger(__name__)

# Streams emitted per source channel by estimate_rms_balance.
BALANCE_POSITIVE = 0
BALANCE_NEGATIVE = 1
BALANCE_REFERENCE = 2
BALANCE_POSITIVE_GAIN = 3
BALANCE_NEGATIVE_GAIN = 4
BALANCE_STREAMS = 5


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------


@njit(cache=True)
def _sliding_rms(x, period):
    n = x.shape[0]
    out = np.empty(n, dtype=np.float32)
    norm = 1.0 / period
    acc = 0.0
    for j in range(n):
        off = j - period
        if off >= 0:
            acc -= x[off] * x[off]
        acc += x[j] * x[j]
        out[j] = np.sqrt(max(acc, 0.0) * norm)
    return out


@njit(cache=True)
def _sliding_average(x, period):
    n = x.shape[0]
    out = np.empty(n, dtype=np.float32)
    norm = 1.0 / period
    acc = 0.0
    for j in range(n):
        off = j - period
        if off >= 0:
            acc -= x[off]
        acc += x[j]
        out[j] = acc * norm
    return out


@njit(cache=True)
def _sliding_balance(x, period, precision, out):
    # out rows: positive rms, negative rms, reference, positive gain, negative gain
    n = x.shape[0]
    norm = 1.0 / period
    pacc = 0.0
    nacc = 0.0
    for j in range(n):
        off = j - period
        if off >= 0:
            v = x[off]
            if v > 0.0:
                pacc -= v * v
            else:
                nacc -= v * v
        v = x[j]
        if v > 0.0:
            pacc += v * v
        else:
            nacc += v * v

        prms = np.sqrt(max(pacc, 0.0) * norm)
        nrms = np.sqrt(max(nacc, 0.0) * norm)
        ref = np.sqrt(prms * nrms)
        out[0, j] = prms
        out[1, j] = nrms
        out[2, j] = ref
        if prms <= precision or nrms <= precision:
            out[3, j] = 1.0
            out[4, j] = 1.0
        else:
            out[3, j] = ref / prms
            out[4, j] = ref / nrms


@njit(cache=True)
def _smooth_track(track):
    """Fill the gaps of a sparse peak track with zero-slope cubic blends."""
    n = track.shape[0]
    out = np.empty(n, dtype=np.float32)
    if n == 0:
        return out
    prev_i = 0
    prev_v = track[0]
    for k in range(1, n):
        v = track[k]
        if v == 0.0:
            continue
        span = k - prev_i
        for m in range(prev_i, k):
            t = (m - prev_i) / span
            out[m] = prev_v + (v - prev_v) * t * t * (3.0 - 2.0 * t)
        prev_i = k
        prev_v = v
    for m in range(prev_i, n):
        out[m] = prev_v
    return out


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_period(period: int) -> int:
    period = int(period)
    if period < 1:
        raise BadArguments(f"Estimation period must be at least 1 sample, got {period}")
    return period


def _check_channels(expected: int, actual: int, what: str) -> None:
    if expected != actual:
        raise ChannelCountMismatch(expected, actual, what)


def _weighted_channels(sample: Sample, weighting: Weighting | str, tail: int):
    flt = WeightingFilter(weighting, sample.sample_rate)
    for i in range(sample.channels):
        yield i, flt.process(sample.channel(i), tail=tail)


# ---------------------------------------------------------------------------
# Sliding estimators
# ---------------------------------------------------------------------------


def estimate_rms(sample: Sample, weighting: Weighting | str, period: int) -> Sample:
    """Sliding RMS over ``period`` samples; output runs ``period`` samples past the input."""
    period = _check_period(period)
    out = Sample.allocate(sample.channels, sample.length + period, sample.sample_rate)
    for i, x in _weighted_channels(sample, weighting, period):
        out.channel(i)[:] = _sliding_rms(x, period)
    return out


def estimate_average(sample: Sample, weighting: Weighting | str, period: int) -> Sample:
    period = _check_period(period)
    out = Sample.allocate(sample.channels, sample.length + period, sample.sample_rate)
    for i, x in _weighted_channels(sample, weighting, period):
        out.channel(i)[:] = _sliding_average(x, period)
    return out


def estimate_partial_rms(sample: Sample, weighting: Weighting | str, period: int, positive: bool = True) -> Sample:
    """One-sided sliding RMS of the positive (or negative) half of the weighted signal."""
    period = _check_period(period)
    out = Sample.allocate(sample.channels, sample.length + period, sample.sample_rate)
    for i, x in _weighted_channels(sample, weighting, period):
        rect = np.maximum(x, 0.0) if positive else np.maximum(-x, 0.0)
        out.channel(i)[:] = _sliding_rms(rect, period)
    return out


def estimate_rms_balance(sample: Sample, weighting: Weighting | str, period: int) -> Sample:
    """Positive/negative RMS balance, five streams per source channel.

    For source channel ``i`` the output holds, at ``5 * i + k``: positive RMS,
    negative RMS, their geometric mean, and the two gains that bring each
    polarity to the geometric mean. Gains are 1 wherever either polarity is
    silent.
    """
    period = _check_period(period)
    out = Sample.allocate(sample.channels * BALANCE_STREAMS, sample.length + period, sample.sample_rate)
    for i, x in _weighted_channels(sample, weighting, period):
        base = i * BALANCE_STREAMS
        _sliding_balance(x, period, PRECISION, out.data[base : base + BALANCE_STREAMS])
    return out


def apply_rms_balance(sample: Sample, balance: Sample) -> Sample:
    _check_channels(sample.channels * BALANCE_STREAMS, balance.channels, "rms balance")
    count = min(sample.length, balance.length)
    out = Sample.allocate(sample.channels, count, sample.sample_rate)
    for i in range(sample.channels):
        x = sample.channel(i)[:count]
        base = i * BALANCE_STREAMS
        pgain = balance.channel(base + BALANCE_POSITIVE_GAIN)[:count]
        ngain = balance.channel(base + BALANCE_NEGATIVE_GAIN)[:count]
        out.channel(i)[:] = np.where(x >= 0.0, x * pgain, x * ngain)
    return out


# ---------------------------------------------------------------------------
# Peak envelope
# ---------------------------------------------------------------------------


@dataclass
class EnvelopeEstimate:
    positive_peaks: Sample
    negative_peaks: Sample
    positive: Sample
    negative: Sample
    midpoint: Sample
    output: Sample


def _block_peaks(x: np.ndarray, period: int) -> tuple[np.ndarray, np.ndarray]:
    blocks = x.reshape(-1, period)
    rows = np.arange(blocks.shape[0])
    offsets = rows * period
    imax = np.argmax(blocks, axis=1)
    imin = np.argmin(blocks, axis=1)
    vmax = blocks[rows, imax]
    vmin = blocks[rows, imin]

    ppeaks = np.zeros(x.shape[0], dtype=np.float32)
    npeaks = np.zeros(x.shape[0], dtype=np.float32)
    pos = vmax > 0.0
    neg = vmin < 0.0
    ppeaks[offsets[pos] + imax[pos]] = vmax[pos]
    npeaks[offsets[neg] + imin[neg]] = vmin[neg]
    return ppeaks, npeaks


def estimate_envelope(sample: Sample, weighting: Weighting | str, period: int) -> EnvelopeEstimate:
    """Envelope from per-block extrema, smoothed and subtracted from the signal."""
    period = _check_period(period)
    length = sample.length
    padded = -(-length // period) * period
    sr = sample.sample_rate

    result = EnvelopeEstimate(
        positive_peaks=Sample.allocate(sample.channels, padded, sr),
        negative_peaks=Sample.allocate(sample.channels, padded, sr),
        positive=Sample.allocate(sample.channels, padded, sr),
        negative=Sample.allocate(sample.channels, padded, sr),
        midpoint=Sample.allocate(sample.channels, padded, sr),
        output=Sample.allocate(sample.channels, length, sr),
    )
    for i, x in _weighted_channels(sample, weighting, padded - length):
        ppeaks, npeaks = _block_peaks(x, period)
        psmooth = _smooth_track(ppeaks)
        nsmooth = _smooth_track(npeaks)
        mid = 0.5 * (psmooth + nsmooth)

        result.positive_peaks.channel(i)[:] = ppeaks
        result.negative_peaks.channel(i)[:] = npeaks
        result.positive.channel(i)[:] = psmooth
        result.negative.channel(i)[:] = nsmooth
        result.midpoint.channel(i)[:] = mid
        result.output.channel(i)[:] = sample.channel(i) - mid[:length]
    return result


# ---------------------------------------------------------------------------
# Sample-wise gain helpers
# ---------------------------------------------------------------------------


def calc_deviation(sample: Sample, rms: Sample, offset: int = 0) -> Sample:
    """Excess of ``|x|`` over an RMS stream shifted right by ``offset`` samples."""
    _check_channels(sample.channels, rms.channels, "rms")
    length = sample.length
    lo = max(int(offset), 0)
    hi = min(rms.length + int(offset), length)
    out = Sample(np.abs(sample.data), sample.sample_rate)
    if hi > lo:
        seg = out.data[:, lo:hi] - rms.data[:, lo - offset : hi - offset]
        out.data[:, lo:hi] = np.maximum(seg, 0.0)
    return out


def calc_gain_adjust(reference: Sample, source: Sample) -> Sample:
    """Per-sample gain ``|reference| / |source|``; unity where the source is silent."""
    _check_channels(reference.channels, source.channels, "gain source")
    count = min(reference.length, source.length)
    ref = np.abs(reference.data[:, :count])
    src = np.abs(source.data[:, :count])
    silent = src <= PRECISION
    gain = np.ones_like(src)
    np.divide(ref, src, out=gain, where=~silent)
    return Sample(gain, source.sample_rate)


def apply_gain(sample: Sample, gain: Sample) -> Sample:
    _check_channels(sample.channels, gain.channels, "gain")
    count = min(sample.length, gain.length)
    return Sample(sample.data[:, :count] * gain.data[:, :count], sample.sample_rate)
