from __future__ import annotations

from typing import Iterable, Protocol


class HasGain(Protocol):
    gain: float


def median_gain(items: Iterable[HasGain]) -> float:
    """Robust median of the ``gain`` attribute of ``items``.

    Even counts take the upper middle element; odd counts take the middle one.
    The source collection is left as is.
    """
    ordered = sorted((float(item.gain) for item in items))
    size = len(ordered)
    if size == 0:
        return 0.0
    return ordered[size // 2]
