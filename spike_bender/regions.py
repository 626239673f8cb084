from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numba import njit

from .errors import BadArguments

LOG = logging.getLogger(__name__)

SQRT1_2 = 0.7071067811865476


@dataclass(frozen=True)
class Region:
    """Span ``[first, last)`` between two zero crossings with its strongest sample."""

    first: int
    last: int
    peak: int
    gain: float

    @property
    def magnitude(self) -> float:
        return abs(self.gain)


@njit(cache=True)
def _abs_max_index(buf, first, last):
    best = first
    value = -1.0
    for k in range(first, last):
        a = abs(buf[k])
        if a > value:
            value = a
            best = k
    return best


@njit(cache=True)
def _scan_regions(buf, rms, threshold, firsts, lasts, peaks):
    count = buf.shape[0]
    n = 0

    first = 0
    peak = 0
    mag = 0.0
    s_prev = 0.0
    d_prev = 0.0
    flips = 0
    last_flip = -1

    for i in range(count):
        s = buf[i]
        d = s - s_prev

        # Derivative changed sign: buf[i-1] is a local extremum
        if (d_prev < 0.0 and d >= 0.0) or (d_prev > 0.0 and d <= 0.0):
            g = abs(buf[i - 1])
            if mag < g:
                mag = g
                peak = i - 1

        # Sample changed sign: zero crossing
        if (s_prev < 0.0 and s >= 0.0) or (s_prev > 0.0 and s <= 0.0):
            flips += 1
            thresh = max(rms[peak] * SQRT1_2, threshold)
            if mag >= thresh:
                if flips > 1:
                    firsts[n] = first
                    lasts[n] = last_flip
                    peaks[n] = _abs_max_index(buf, first, last_flip)
                    n += 1
                    first = last_flip
                    if peak < first:
                        peak = _abs_max_index(buf, first, i)

                firsts[n] = first
                lasts[n] = i
                peaks[n] = peak
                n += 1

                first = i
                peak = i
                mag = 0.0
                flips = 0

            last_flip = i

        s_prev = s
        d_prev = d

    if first < count:
        firsts[n] = first
        lasts[n] = count
        peaks[n] = peak
        n += 1
    return n


def find_peaks(signal: np.ndarray, reference_rms: np.ndarray, threshold: float) -> tuple[Region, ...]:
    """Split ``signal`` at zero crossings into regions that tile ``[0, len(signal))``.

    A region is closed at a crossing once its strongest local extremum reaches
    ``max(reference_rms[peak] / sqrt(2), threshold)``. Crossings seen before that
    happens are folded into a separate leading region.
    """
    buf = np.asarray(signal, dtype=np.float32)
    rms = np.asarray(reference_rms, dtype=np.float32)
    count = buf.shape[0]
    if rms.shape[0] < count:
        raise BadArguments(f"Reference RMS is shorter than the signal ({rms.shape[0]} < {count})")

    firsts = np.empty(count + 1, dtype=np.int64)
    lasts = np.empty(count + 1, dtype=np.int64)
    peaks = np.empty(count + 1, dtype=np.int64)
    n = _scan_regions(buf, rms, float(threshold), firsts, lasts, peaks)

    regions = tuple(
        Region(int(firsts[k]), int(lasts[k]), int(peaks[k]), float(buf[peaks[k]])) for k in range(n)
    )
    LOG.debug("find_peaks: %d regions over %d samples", len(regions), count)
    return regions


def apply_region_gain(signal: np.ndarray, regions: tuple[Region, ...] | list[Region], threshold: float) -> np.ndarray:
    """Scale every region whose peak reaches ``threshold`` down to unit peak."""
    out = np.array(signal, dtype=np.float32, copy=True)
    for r in regions:
        if r.magnitude < threshold:
            continue
        span = out[r.first : r.last]
        peak = float(np.max(np.abs(span))) if span.size else 0.0
        if peak > 0.0:
            span /= peak
    return out


def region_map(regions: tuple[Region, ...] | list[Region], length: int) -> np.ndarray:
    image = np.zeros(int(length) + 1, dtype=np.float32)
    for r in regions:
        image[r.first] = -1.0
        image[r.peak] = r.gain
        image[r.last] = -1.0
    return image
