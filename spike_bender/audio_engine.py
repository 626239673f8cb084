from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import librosa
import numpy as np
import soundfile as sf

from .analyzer import AnalysisResult, Analyzer
from .dsp_utils import db_to_gain, format_duration
from .dynamics import NormalizeMode, normalize, run_passes
from .errors import AudioFileError, BadArguments
from .metrics_logger import MetricsLogger
from .sample import Sample
from .smasher import smash_amplitude
from .system_utils import TimeTracker
from .weighting import Weighting

LOG = logging.getLogger(__name__)


@dataclass
class SpikeBenderConfig:
    sample_rate: int | None = None
    passes: int = 1
    reactivity_ms: float = 40.0
    range_db: float = 6.0
    knee_db: float = 3.0
    weighting: Weighting = Weighting.NONE
    normalize: NormalizeMode = NormalizeMode.NONE
    norm_gain_db: float = 0.0
    peak_threshold_db: float = 1.0
    reference_window_ms: float = 400.0

    def update(self, values: dict[str, Any]) -> None:
        names = {f.name for f in fields(self)}
        for key, value in values.items():
            if key in names:
                setattr(self, key, value)
            else:
                LOG.warning("Ignoring unknown setting '%s'", key)

    def validate(self) -> "SpikeBenderConfig":
        self.weighting = Weighting.parse(self.weighting)
        self.normalize = NormalizeMode.parse(self.normalize)
        if self.sample_rate is not None and int(self.sample_rate) <= 0:
            raise BadArguments(f"Sample rate must be positive, got {self.sample_rate}")
        if int(self.passes) <= 0:
            raise BadArguments(f"Number of passes must be positive, got {self.passes}")
        if float(self.range_db) <= 0.0:
            raise BadArguments(f"Dynamic range must be positive, got {self.range_db}")
        if float(self.knee_db) < 0.0:
            raise BadArguments(f"Knee must not be negative, got {self.knee_db}")
        if float(self.reactivity_ms) < 0.0:
            raise BadArguments(f"Reactivity must not be negative, got {self.reactivity_ms}")
        if float(self.reference_window_ms) <= 0.0:
            raise BadArguments(f"Reference window must be positive, got {self.reference_window_ms}")
        return self

    @property
    def peak_threshold(self) -> float:
        """Smasher threshold as a gain; 0 when peak elimination is off."""
        if self.peak_threshold_db <= 0.0:
            return 0.0
        return db_to_gain(self.peak_threshold_db)

    def as_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["weighting"] = Weighting.parse(self.weighting).value
        out["normalize"] = NormalizeMode.parse(self.normalize).value
        return out


def load_audio(path: str | Path, sample_rate: int | None = None) -> Sample:
    """Robust loader: soundfile first, librosa for anything soundfile cannot decode."""
    path = Path(path)
    if not path.exists():
        raise AudioFileError(f"File not found: {path}")

    try:
        frames, orig_sr = sf.read(str(path), always_2d=True, dtype="float32")
        data = frames.T
    except RuntimeError as e:
        LOG.debug("SoundFile load failed for %s: %s. Trying librosa.", path, e)
        try:
            y, orig_sr = librosa.load(str(path), sr=None, mono=False)
        except Exception as exc:
            raise AudioFileError(f"Could not decode {path}: {exc}") from exc
        data = np.atleast_2d(y)

    orig_sr = int(orig_sr)
    if sample_rate and int(sample_rate) != orig_sr:
        data = librosa.resample(np.ascontiguousarray(data), orig_sr=orig_sr, target_sr=int(sample_rate))
        LOG.info("Resampled %s from %d Hz to %d Hz", path, orig_sr, sample_rate)
        orig_sr = int(sample_rate)

    sample = Sample(data, orig_sr)
    LOG.info(
        "Loaded %s: channels=%d, samples=%d, sample rate=%d, duration=%s",
        path,
        sample.channels,
        sample.length,
        sample.sample_rate,
        format_duration(sample.duration),
    )
    return sample


def save_audio(sample: Sample, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fmt = path.suffix.lstrip(".").upper() or "WAV"
    subtype = "FLOAT" if sf.check_format(fmt, "FLOAT") else None
    try:
        sf.write(str(path), sample.to_frames(), sample.sample_rate, subtype=subtype)
    except (RuntimeError, TypeError, ValueError) as exc:
        raise AudioFileError(f"Could not write {path}: {exc}") from exc
    LOG.info(
        "Saved %s: channels=%d, samples=%d, sample rate=%d, duration=%s",
        path,
        sample.channels,
        sample.length,
        sample.sample_rate,
        format_duration(sample.duration),
    )
    return path


class DynamicsEngine:
    """Leveling passes, peak smashing and normalization over a whole clip."""

    def __init__(self, config: SpikeBenderConfig, metrics: MetricsLogger | None = None):
        self.config = config
        self.analyzer = Analyzer()
        self.metrics = metrics

    def process(self, sample: Sample) -> tuple[Sample, AnalysisResult]:
        cfg = self.config.validate()
        tracker = TimeTracker("process")

        with tracker.section("passes"):
            out = run_passes(sample, cfg)

        threshold = cfg.peak_threshold
        if threshold > 1.0:
            with tracker.section("smash"):
                out = smash_amplitude(out, threshold)
            LOG.info("Eliminated peaks above %.2f dB of the typical peak level", cfg.peak_threshold_db)
        else:
            LOG.info("Peak elimination disabled")

        with tracker.section("normalize"):
            out = normalize(out, db_to_gain(cfg.norm_gain_db), cfg.normalize)

        with tracker.section("analyze"):
            analysis = self.analyzer.analyze(out)

        tracker.stop()
        LOG.info("Timing: %s", tracker.summary())
        return out, analysis

    def load_audio(self, path: str | Path) -> Sample:
        return load_audio(path, self.config.sample_rate)

    def process_file(self, input_path: str | Path, output_path: str | Path) -> AnalysisResult:
        sample = self.load_audio(input_path)
        before = self.analyzer.analyze(sample)
        LOG.info("Input:  %s", before.describe())

        processed, analysis = self.process(sample)
        LOG.info("Output: %s", analysis.describe())

        save_audio(processed, output_path)
        if self.metrics is not None:
            self.metrics.record(Path(output_path).stem, before, analysis, self.config.as_dict())
        return analysis
