from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .dsp_utils import blend
from .errors import BadArguments
from .sample import Sample
from .statistics import median_gain

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Peak:
    index: int
    gain: float


def find_extrema(x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Indices of every positive local maximum and negative local minimum.

    Samples outside the buffer count as zero. Returns ``(maxima, minima)``.
    """
    x = np.asarray(x, dtype=np.float32)
    if x.size == 0:
        empty = np.zeros(0, dtype=np.int64)
        return empty, empty
    prev = np.concatenate([[0.0], x[:-1]]).astype(np.float32)
    nxt = np.concatenate([x[1:], [0.0]]).astype(np.float32)
    ds_prev = x - prev
    ds_next = nxt - x
    is_max = (ds_next < 0.0) & (ds_prev >= 0.0) & (x > 0.0)
    is_min = (ds_next > 0.0) & (ds_prev <= 0.0) & (x < 0.0)
    return np.flatnonzero(is_max), np.flatnonzero(is_min)


def _dominant_per_block(idx: np.ndarray, magnitude: np.ndarray, block: int) -> np.ndarray:
    if idx.size == 0:
        return idx
    blocks = idx // block
    # Ties keep the earliest index.
    order = np.lexsort((-magnitude, blocks))
    sorted_blocks = blocks[order]
    keep = np.ones(sorted_blocks.size, dtype=bool)
    keep[1:] = sorted_blocks[1:] != sorted_blocks[:-1]
    return idx[order][keep]


def block_extrema(x: np.ndarray, maxima: np.ndarray, minima: np.ndarray, block: int) -> tuple[list[Peak], list[Peak]]:
    """Strongest maximum and strongest minimum of every ``block``-sample block."""
    x = np.asarray(x, dtype=np.float32)
    pos = _dominant_per_block(maxima, x[maxima], block)
    neg = _dominant_per_block(minima, -x[minima], block)
    return (
        [Peak(int(i), float(x[i])) for i in pos],
        [Peak(int(i), float(x[i])) for i in neg],
    )


def smash_gain_curve(x: np.ndarray, threshold: float, block: int) -> np.ndarray:
    """Per-sample multiplier that pulls outlying peaks down to ``threshold`` times the typical peak."""
    if threshold <= 0.0:
        raise BadArguments(f"Smash threshold must be positive, got {threshold}")
    x = np.asarray(x, dtype=np.float32)
    n = x.shape[0]
    if n == 0:
        return np.ones(0, dtype=np.float32)
    block = max(int(block), 1)

    maxima, minima = find_extrema(x)
    p_blocks, n_blocks = block_extrema(x, maxima, minima, block)
    p_avg = median_gain(p_blocks)
    n_avg = median_gain(n_blocks)

    # The buffer end is a full-scale positive peak and goes through the same rule.
    idx = np.concatenate([np.sort(np.concatenate([maxima, minima])), [n]])
    gains = np.concatenate([x[idx[:-1]].astype(np.float64), [1.0]])
    avg = np.where(gains > 0.0, p_avg, n_avg)
    limit = threshold * np.abs(avg)
    over = np.abs(gains) > limit
    targets = np.ones_like(gains)
    targets[over] = avg[over] * threshold / gains[over]

    xs = np.concatenate([[0], idx])
    gs = np.concatenate([[1.0], targets])

    k = np.arange(n)
    seg = np.searchsorted(xs, k, side="right") - 1
    x0 = xs[seg]
    x1 = xs[seg + 1]
    g0 = gs[seg]
    g1 = gs[seg + 1]
    curve = blend(g0, g1, (k - x0) / (x1 - x0))

    LOG.debug(
        "smash: %d extrema, median +%.4f / %.4f, %d over threshold",
        idx.size - 1,
        p_avg,
        n_avg,
        int(np.count_nonzero(over)),
    )
    return curve.astype(np.float32)


def smash_amplitude(sample: Sample, threshold: float) -> Sample:
    """Suppress peaks louder than ``threshold`` times the typical peak of each channel."""
    block = max(sample.sample_rate // 100, 1)
    out = sample.copy()
    for i in range(sample.channels):
        out.channel(i)[:] = sample.channel(i) * smash_gain_curve(sample.channel(i), threshold, block)
    return out
