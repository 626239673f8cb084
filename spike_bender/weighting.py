from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache

import numpy as np
from scipy import signal

from .errors import BadArguments
from .sample import Sample

LOG = logging.getLogger(__name__)

_TWO_PI = 2.0 * np.pi

# IEC 61672 / ANSI S1.42 pole frequencies (Hz).
_F1 = 20.598997
_F2 = 107.65265
_F3 = 737.86223
_F4 = 12194.217
_FB = 158.5


class Weighting(str, Enum):
    NONE = "none"
    A = "a"
    B = "b"
    C = "c"
    D = "d"
    K = "k"

    @classmethod
    def parse(cls, name: "str | Weighting") -> "Weighting":
        if isinstance(name, Weighting):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError as exc:
            choices = ", ".join(w.value for w in cls)
            raise BadArguments(f"Unknown weighting '{name}' (expected one of: {choices})") from exc


def _analog_prototype(weighting: Weighting) -> tuple[np.ndarray, np.ndarray]:
    """Zeros and poles (rad/s) of the analog weighting curve."""
    if weighting == Weighting.A:
        zeros = np.zeros(4)
        poles = np.array([_F1, _F1, _F2, _F3, _F4, _F4])
        return zeros, -_TWO_PI * poles
    if weighting == Weighting.B:
        zeros = np.zeros(3)
        poles = np.array([_F1, _F1, _FB, _F4, _F4])
        return zeros, -_TWO_PI * poles
    if weighting == Weighting.C:
        zeros = np.zeros(2)
        poles = np.array([_F1, _F1, _F4, _F4])
        return zeros, -_TWO_PI * poles
    if weighting == Weighting.D:
        zeros = np.concatenate([[0.0], np.roots([1.0, 6532.0, 4.0975e7])])
        poles = np.concatenate([[-1776.3, -7288.5], np.roots([1.0, 21514.0, 3.8836e8])])
        return zeros, poles
    raise BadArguments(f"No analog prototype for weighting {weighting.value}")


def _k_weighting_sos(sample_rate: int) -> np.ndarray:
    # Stage 1: high shelf, +4 dB
    f0 = 1681.974450955533
    q = 0.7071752369554196
    k = np.tan(np.pi * f0 / sample_rate)
    vh = 10.0 ** (4.0 / 20.0)
    vb = vh ** 0.4996667741545416
    a0 = 1.0 + k / q + k * k
    shelf = [
        (vh + vb * k / q + k * k) / a0,
        2.0 * (k * k - vh) / a0,
        (vh - vb * k / q + k * k) / a0,
        1.0,
        2.0 * (k * k - 1.0) / a0,
        (1.0 - k / q + k * k) / a0,
    ]

    # Stage 2: RLB high-pass
    f0 = 38.13547087602444
    q = 0.5003270373238773
    k = np.tan(np.pi * f0 / sample_rate)
    a0 = 1.0 + k / q + k * k
    highpass = [
        1.0,
        -2.0,
        1.0,
        1.0,
        2.0 * (k * k - 1.0) / a0,
        (1.0 - k / q + k * k) / a0,
    ]
    return np.array([shelf, highpass], dtype=np.float64)


@lru_cache(maxsize=32)
def design_weighting(weighting: Weighting, sample_rate: int) -> np.ndarray | None:
    """Second-order sections for ``weighting`` at ``sample_rate`` (None for no weighting)."""
    weighting = Weighting.parse(weighting)
    if sample_rate <= 0:
        raise BadArguments(f"Invalid sample rate: {sample_rate}")
    if weighting == Weighting.NONE:
        return None
    if weighting == Weighting.K:
        return _k_weighting_sos(int(sample_rate))

    zeros, poles = _analog_prototype(weighting)
    zd, pd, kd = signal.bilinear_zpk(zeros, poles, 1.0, fs=float(sample_rate))
    sos = signal.zpk2sos(zd, pd, kd)
    # Normalize to 0 dB at 1 kHz.
    _, response = signal.sosfreqz(sos, worN=np.array([1000.0]), fs=float(sample_rate))
    ref = float(np.abs(response[0]))
    if ref > 0.0:
        sos[0, :3] /= ref
    LOG.debug("Designed %s-weighting: %d sections at %d Hz", weighting.value.upper(), sos.shape[0], sample_rate)
    return sos


class WeightingFilter:
    """Causal weighting filter starting from zero state."""

    def __init__(self, weighting: Weighting | str, sample_rate: int):
        self.weighting = Weighting.parse(weighting)
        self.sample_rate = int(sample_rate)
        self.sos = design_weighting(self.weighting, self.sample_rate)

    def process(self, x: np.ndarray, tail: int = 0) -> np.ndarray:
        """Filter ``x`` and keep running the filter over ``tail`` trailing zeros."""
        x = np.asarray(x, dtype=np.float64)
        if tail > 0:
            x = np.concatenate([x, np.zeros(int(tail), dtype=np.float64)])
        if self.sos is None:
            return x.copy()
        return signal.sosfilt(self.sos, x)


def apply_weight(sample: Sample, weighting: Weighting | str) -> Sample:
    flt = WeightingFilter(weighting, sample.sample_rate)
    out = Sample.allocate(sample.channels, sample.length, sample.sample_rate)
    for i in range(sample.channels):
        out.channel(i)[:] = flt.process(sample.channel(i))
    return out
