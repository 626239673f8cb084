from __future__ import annotations

import numpy as np

# Magnitudes at or below this are treated as silence by gain computations.
PRECISION = 2.5e-8


def lin_to_db(x: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    return 20.0 * np.log10(np.maximum(x, eps))


def db_to_gain(db: float) -> float:
    return float(10.0 ** (float(db) / 20.0))


def gain_to_db(gain: float, eps: float = 1e-12) -> float:
    return float(20.0 * np.log10(max(float(gain), eps)))


def millis_to_samples(sr: int, ms: float) -> int:
    return int(float(sr) * float(ms) / 1000.0)


def odd_period(sr: int, ms: float) -> int:
    """Window length for ``ms`` milliseconds, forced odd so it has a center sample."""
    return millis_to_samples(sr, ms) | 1


def smoothstep(x: np.ndarray) -> np.ndarray:
    x = np.clip(x, 0.0, 1.0)
    return x * x * (3.0 - 2.0 * x)


def blend(a: float, b: float, x: np.ndarray) -> np.ndarray:
    """Zero-slope cubic transition from ``a`` at x=0 to ``b`` at x=1."""
    return a + (b - a) * smoothstep(x)


def rms(x: np.ndarray, eps: float = 1e-12) -> float:
    return float(np.sqrt(np.mean(x * x) + eps))


def peak_dbfs(x: np.ndarray, eps: float = 1e-12) -> float:
    peak = float(np.max(np.abs(x)) + eps)
    return float(20.0 * np.log10(peak))


def format_duration(seconds: float) -> str:
    millis = int(round(max(float(seconds), 0.0) * 1000.0))
    hours, rem = divmod(millis, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"
