from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from .dsp_utils import peak_dbfs
from .errors import BadArguments
from .sample import Sample

LOG = logging.getLogger(__name__)


DEFAULT_PRESETS: dict[str, dict[str, Any]] = {
    "Default": {
        "passes": 1,
        "reactivity_ms": 40.0,
        "range_db": 6.0,
        "knee_db": 3.0,
        "weighting": "none",
        "normalize": "none",
        "norm_gain_db": 0.0,
        "peak_threshold_db": 1.0,
    },
    "Gentle": {
        "passes": 1,
        "reactivity_ms": 80.0,
        "range_db": 3.0,
        "knee_db": 3.0,
        "weighting": "k",
        "normalize": "above",
        "norm_gain_db": -1.0,
        "peak_threshold_db": 3.0,
    },
    "Leveler": {
        "passes": 2,
        "reactivity_ms": 40.0,
        "range_db": 8.0,
        "knee_db": 1.0,
        "weighting": "a",
        "normalize": "always",
        "norm_gain_db": -1.0,
        "peak_threshold_db": 1.0,
    },
    "Podcast": {
        "passes": 3,
        "reactivity_ms": 20.0,
        "range_db": 10.0,
        "knee_db": 3.0,
        "weighting": "k",
        "normalize": "always",
        "norm_gain_db": -1.0,
        "peak_threshold_db": 0.5,
    },
}


class ConfigManager:
    """Load named presets for the dynamics engine."""

    def __init__(self, presets_path: str | Path | None = None):
        self.presets_path = Path(presets_path) if presets_path else None

    def load_presets(self) -> dict[str, dict[str, Any]]:
        merged = {name: dict(values) for name, values in DEFAULT_PRESETS.items()}
        if self.presets_path is not None and self.presets_path.exists():
            user = json.loads(self.presets_path.read_text(encoding="utf-8"))
            if not isinstance(user, dict):
                raise BadArguments(f"Presets file must hold a JSON object: {self.presets_path}")
            for name, values in user.items():
                merged.setdefault(name, {}).update(values)
        return merged

    def list_presets(self) -> list[str]:
        return sorted(self.load_presets().keys())

    def get_preset(self, name: str) -> dict[str, Any]:
        presets = self.load_presets()
        if name not in presets:
            raise BadArguments(f"Unknown preset '{name}' (available: {', '.join(sorted(presets))})")
        return dict(presets[name])


class TimeTracker:
    """Collect named timing sections for a single processing run."""

    class _Section:
        def __init__(self, tracker: "TimeTracker", label: str):
            self._tracker = tracker
            self._label = str(label)
            self._start = 0.0

        def __enter__(self):
            self._start = time.perf_counter()
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self._tracker.add(self._label, time.perf_counter() - self._start)

    def __init__(self, name: str = "process"):
        self.name = str(name)
        self._sections: list[tuple[str, float]] = []
        self._t0 = time.perf_counter()
        self._t1: float | None = None

    def section(self, label: str) -> "TimeTracker._Section":
        return TimeTracker._Section(self, label)

    def add(self, label: str, duration: float) -> None:
        self._sections.append((str(label), float(duration)))

    def stop(self) -> None:
        self._t1 = time.perf_counter()

    def total(self) -> float:
        end = self._t1 if self._t1 is not None else time.perf_counter()
        return float(end - self._t0)

    def summary(self) -> str:
        if not self._sections:
            return ""
        parts = [f"{name}={dur:.3f}s" for name, dur in self._sections]
        parts.append(f"total={self.total():.3f}s")
        return ", ".join(parts)


@dataclass
class StabilityReport:
    ok: bool
    message: str


class SignalFactory:
    """Synthetic program material for exercising the dynamics stages."""

    @staticmethod
    def tone(
        sr: int = 48000,
        seconds: float = 1.0,
        freq: float = 440.0,
        amplitude: float = 0.5,
        channels: int = 1,
    ) -> Sample:
        t = np.arange(int(sr * seconds)) / float(sr)
        mono = amplitude * np.sin(2.0 * np.pi * freq * t)
        return Sample(np.tile(mono, (channels, 1)), sr)

    @staticmethod
    def generate_example(sr: int = 48000, seconds: float = 2.0, seed: int = 1234) -> Sample:
        """Stereo tone whose level alternates between loud and quiet phrases."""
        rng = np.random.default_rng(seed)
        t = np.arange(int(sr * seconds)) / float(sr)
        level = np.where((t % 0.5) < 0.25, 0.6, 0.08)
        left = level * (0.8 * np.sin(2.0 * np.pi * 220.0 * t) + 0.2 * np.sin(2.0 * np.pi * 880.0 * t))
        right = level * (0.8 * np.sin(2.0 * np.pi * 220.0 * t + 0.15) + 0.2 * np.sin(2.0 * np.pi * 880.0 * t))
        noise = 0.002 * rng.standard_normal(t.size)
        return Sample(np.stack([left + noise, right + noise]), sr)

    @staticmethod
    def assert_stable(sample: Sample, peak_limit_dbfs: float = 3.0) -> StabilityReport:
        if not np.isfinite(sample.data).all():
            return StabilityReport(False, "Non-finite samples detected.")
        if sample.length == 0:
            return StabilityReport(True, "Empty signal.")
        peak = peak_dbfs(sample.data)
        if peak > peak_limit_dbfs:
            return StabilityReport(False, f"Peak exceeds {peak_limit_dbfs:.1f} dBFS ({peak:.2f}).")
        return StabilityReport(True, "Signal is finite and within expected peak range.")
