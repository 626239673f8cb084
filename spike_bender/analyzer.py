from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import numpy as np
import pyloudnorm as pyln

from .dsp_utils import format_duration, lin_to_db, rms
from .sample import Sample

LOG = logging.getLogger(__name__)

# pyloudnorm channel weights cover up to five channels.
_MAX_METER_CHANNELS = 5


@dataclass
class AnalysisResult:
    lufs: float
    peak_dbfs: float
    rms_db: float
    crest_factor: float
    duration_s: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)

    def describe(self) -> str:
        return (
            f"LUFS {self.lufs:.2f} | peak {self.peak_dbfs:.2f} dBFS | RMS {self.rms_db:.2f} dB"
            f" | crest {self.crest_factor:.2f} | {format_duration(self.duration_s)}"
        )


class FeatureExtractor:
    """Extracts loudness and level descriptors."""

    def lufs(self, frames: np.ndarray, sr: int) -> float:
        meter = pyln.Meter(sr)
        if frames.ndim == 2 and frames.shape[1] > _MAX_METER_CHANNELS:
            frames = np.mean(frames, axis=1)
        try:
            return float(meter.integrated_loudness(frames))
        except ValueError:
            # Shorter than one gating block
            rms_val = rms(np.asarray(frames, dtype=np.float64))
            return float(20.0 * np.log10(max(rms_val, 1e-9)))


class Analyzer:
    """Level and loudness report for a rendered sample."""

    def __init__(self):
        self.features = FeatureExtractor()

    def analyze(self, sample: Sample) -> AnalysisResult:
        if sample.length == 0 or sample.channels == 0:
            return AnalysisResult(float("-inf"), float("-inf"), float("-inf"), 0.0, 0.0)
        data = sample.data.astype(np.float64)
        peak = float(np.max(np.abs(data)))
        rms_val = float(np.sqrt(np.mean(data * data)))
        lufs = self.features.lufs(sample.to_frames().astype(np.float64), sample.sample_rate)
        return AnalysisResult(
            lufs=lufs,
            peak_dbfs=float(lin_to_db(peak)),
            rms_db=float(lin_to_db(rms_val)),
            crest_factor=float(peak / rms_val) if rms_val > 0 else 0.0,
            duration_s=sample.duration,
        )
