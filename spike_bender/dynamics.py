from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from .dsp_utils import PRECISION, gain_to_db, odd_period
from .errors import BadArguments, ChannelCountMismatch
from .estimators import estimate_rms
from .sample import Sample
from .weighting import Weighting

if TYPE_CHECKING:
    from .audio_engine import SpikeBenderConfig

LOG = logging.getLogger(__name__)

# Envelope follower timing around the split level (reference - 6 dB).
SPLIT_DB = -6.0
ATTACK_LOW_MS = 0.0
ATTACK_HIGH_MS = 5.0
RELEASE_LOW_MS = 5.0
RELEASE_HIGH_MS = 2.0

# Headroom kept below the reference by the curve control points.
CURVE_OFFSET_DB = 3.0

SILENCE_PEAK = 1e-6


def _coef(sr: int, ms: float) -> float:
    return float(1.0 - np.exp(-1.0 / (sr * ms / 1000.0 + 1e-9)))


@njit(cache=True)
def _follow(env, split, att_lo, att_hi, rel_lo, rel_hi):
    out = np.empty(env.shape[0], dtype=np.float64)
    cur = 0.0
    for i in range(env.shape[0]):
        v = env[i]
        if v > cur:
            c = att_lo if cur < split else att_hi
        else:
            c = rel_lo if cur < split else rel_hi
        cur += c * (v - cur)
        out[i] = cur
    return out


def _knee(x: np.ndarray, point: float, width: float) -> np.ndarray:
    """Softened ``max(x - point, 0)``: quadratic over ``point +- width``."""
    if width <= 0.0:
        return np.maximum(x - point, 0.0)
    lo = point - width
    hi = point + width
    out = np.where(x >= hi, x - point, 0.0)
    inside = (x > lo) & (x < hi)
    out[inside] = (x[inside] - lo) ** 2 / (4.0 * width)
    return out


class UpwardCompressor:
    """Static curve plus envelope follower that lifts quiet passages toward a reference.

    Levels between ``reference + range - 3 dB`` and ``reference - range - 3 dB``
    are mapped onto the reference; outside that window the curve runs at unity
    slope, so quiet material gains ``range + 3`` dB and loud material is pulled
    down by ``range - 3`` dB.

    The upper side is not unity gain: levels above the window keep the
    ``3 - range`` dB offset of the upper curve point.
    """

    def __init__(self, reference: float, range_db: float, knee_db: float, sample_rate: int):
        if reference <= 0.0:
            raise BadArguments(f"Reference level must be positive, got {reference}")
        if range_db <= 0.0:
            raise BadArguments(f"Dynamic range must be positive, got {range_db}")
        self.reference = float(reference)
        self.reference_db = gain_to_db(reference)
        self.range_db = float(range_db)
        self.knee_db = min(abs(float(knee_db)), self.range_db)
        self.sample_rate = int(sample_rate)

        self.low_db = self.reference_db - self.range_db - CURVE_OFFSET_DB
        self.high_db = self.reference_db + self.range_db - CURVE_OFFSET_DB
        self.split = self.reference * 10.0 ** (SPLIT_DB / 20.0)

    def gain_db(self, level_db: np.ndarray) -> np.ndarray:
        x = np.asarray(level_db, dtype=np.float64)
        return (
            self.range_db
            + CURVE_OFFSET_DB
            - _knee(x, self.low_db, self.knee_db)
            + _knee(x, self.high_db, self.knee_db)
        )

    def curve(self, levels: np.ndarray) -> np.ndarray:
        """Static output level for linear input ``levels``."""
        levels = np.abs(np.asarray(levels, dtype=np.float64))
        level_db = 20.0 * np.log10(np.maximum(levels, 1e-12))
        return levels * 10.0 ** (self.gain_db(level_db) / 20.0)

    def smooth(self, envelope: np.ndarray) -> np.ndarray:
        sr = self.sample_rate
        return _follow(
            np.abs(np.asarray(envelope, dtype=np.float64)),
            self.split,
            _coef(sr, ATTACK_LOW_MS),
            _coef(sr, ATTACK_HIGH_MS),
            _coef(sr, RELEASE_LOW_MS),
            _coef(sr, RELEASE_HIGH_MS),
        )

    def compute_gain(self, envelope: np.ndarray) -> np.ndarray:
        level = self.smooth(envelope)
        level_db = 20.0 * np.log10(np.maximum(level, 1e-12))
        return (10.0 ** (self.gain_db(level_db) / 20.0)).astype(np.float32)


def adjust_gain(
    sample: Sample,
    envelope: Sample,
    references: np.ndarray | list[float],
    range_db: float,
    knee_db: float,
) -> tuple[Sample, Sample]:
    """One leveling pass: turn ``envelope`` into a gain and apply it to ``sample``.

    Channels whose reference level is silent are passed through at unity gain.
    """
    if sample.channels != envelope.channels:
        raise ChannelCountMismatch(sample.channels, envelope.channels, "envelope")
    references = np.asarray(references, dtype=np.float64)
    if references.shape[0] < sample.channels:
        raise BadArguments(f"Need {sample.channels} reference levels, got {references.shape[0]}")

    count = min(sample.length, envelope.length)
    out = Sample.allocate(sample.channels, count, sample.sample_rate)
    gain = Sample.allocate(sample.channels, count, sample.sample_rate)
    for i in range(sample.channels):
        ref = float(references[i])
        if ref <= PRECISION:
            gain.channel(i)[:] = 1.0
        else:
            comp = UpwardCompressor(ref, range_db, knee_db, sample.sample_rate)
            gain.channel(i)[:] = comp.compute_gain(envelope.channel(i)[:count])
        out.channel(i)[:] = sample.channel(i)[:count] * gain.channel(i)
    return out, gain


def reference_levels(sample: Sample, weighting: Weighting | str, window_ms: float) -> np.ndarray:
    """Peak of the long-window RMS of every channel."""
    period = odd_period(sample.sample_rate, window_ms)
    rms = estimate_rms(sample, weighting, period)
    if rms.length == 0:
        return np.zeros(sample.channels, dtype=np.float64)
    return np.max(np.abs(rms.data), axis=1).astype(np.float64)


def run_passes(sample: Sample, config: "SpikeBenderConfig", references: np.ndarray | None = None) -> Sample:
    """Chain ``config.passes`` leveling passes, each fed by the previous output."""
    weighting = Weighting.parse(config.weighting)
    if references is None:
        references = reference_levels(sample, weighting, config.reference_window_ms)
    period = odd_period(sample.sample_rate, config.reactivity_ms)
    LOG.info(
        "Reference levels: %s dB",
        ", ".join(f"{gain_to_db(r):.2f}" for r in references),
    )

    src = sample
    for n in range(int(config.passes)):
        env = estimate_rms(src, weighting, period)
        env.truncate_front(period // 2)
        src, _ = adjust_gain(src, env, references, config.range_db, config.knee_db)
        LOG.info("Pass %d/%d: peak %.2f dBFS", n + 1, config.passes, gain_to_db(src.peak()))
    return src


class NormalizeMode(str, Enum):
    NONE = "none"
    ABOVE = "above"
    BELOW = "below"
    ALWAYS = "always"

    @classmethod
    def parse(cls, name: "str | NormalizeMode") -> "NormalizeMode":
        if isinstance(name, NormalizeMode):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError as exc:
            choices = ", ".join(m.value for m in cls)
            raise BadArguments(f"Unknown normalization mode '{name}' (expected one of: {choices})") from exc


def normalize(sample: Sample, gain: float, mode: NormalizeMode | str) -> Sample:
    """Rescale so the peak across all channels lands on ``gain``.

    ABOVE only lowers peaks louder than ``gain``, BELOW only raises quieter ones.
    Near-silent input is never rescaled.
    """
    mode = NormalizeMode.parse(mode)
    out = sample.copy()
    if mode == NormalizeMode.NONE:
        return out

    peak = sample.peak()
    if peak < SILENCE_PEAK:
        return out
    if mode == NormalizeMode.BELOW and peak >= gain:
        return out
    if mode == NormalizeMode.ABOVE and peak <= gain:
        return out

    out.data *= np.float32(gain / peak)
    LOG.debug("normalize(%s): peak %.6f -> %.6f", mode.value, peak, gain)
    return out
