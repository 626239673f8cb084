from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .audio_engine import DynamicsEngine, SpikeBenderConfig
from .errors import SpikeBenderError
from .metrics_logger import MetricsLogger
from .spike_bender import _setup_logging
from .system_utils import ConfigManager

LOG = logging.getLogger(__name__)


def find_wavs(folder: Path, recursive: bool) -> list[Path]:
    """
    Returns a sorted list of .wav files inside folder.

    If recursive=True, searches subfolders too.
    """
    if recursive:
        wavs = folder.rglob("*")
    else:
        wavs = folder.glob("*")

    return sorted(p for p in wavs if p.is_file() and p.suffix.lower() == ".wav")


def output_path_for(wav_path: Path, out_dir: Path | None, suffix: str) -> Path:
    target_dir = out_dir or wav_path.parent
    suffix = suffix or ""
    if suffix.lower().endswith(".wav"):
        return target_dir / f"{wav_path.stem}{suffix}"
    return target_dir / f"{wav_path.stem}{suffix}.wav"


def run_batch(engine: DynamicsEngine, wav_files: list[Path], out_dir: Path | None, suffix: str) -> list[Path]:
    """Process every file with one engine; returns the files that failed."""
    failures: list[Path] = []
    for n, wav_path in enumerate(wav_files, start=1):
        out_path = output_path_for(wav_path, out_dir, suffix)
        LOG.info("[%d/%d] %s -> %s", n, len(wav_files), wav_path, out_path)
        try:
            engine.process_file(wav_path, out_path)
        except SpikeBenderError as exc:
            LOG.error("Failed: %s (%s)", wav_path, exc)
            failures.append(wav_path)
    return failures


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Batch process .wav files in a folder.")
    parser.add_argument("--folder", required=True, help="Folder containing .wav files.")
    parser.add_argument("--recursive", action="store_true", help="Search subfolders too.")
    parser.add_argument("--out_dir", help="Output folder for processed files.")
    parser.add_argument("--preset", default="Default", help="Preset name applied to every file.")
    parser.add_argument("--presets-file", help="JSON file with extra presets.")
    parser.add_argument("--suffix", default="_leveled", help="Suffix appended to output file names.")
    parser.add_argument("--limit", type=int, default=0, help="Optional max files to process (0 = no limit).")
    parser.add_argument("--metrics-log", help="Append before/after metrics to this JSON file.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--log-file", default=None, help="Optional log file path.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_cli().parse_args(argv)
    _setup_logging(args.log_level, args.log_file)

    folder = Path(args.folder).expanduser().resolve()
    out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None

    if not folder.exists() or not folder.is_dir():
        LOG.error("Folder not found: %s", folder)
        return 2

    config = SpikeBenderConfig()
    try:
        config.update(ConfigManager(args.presets_file).get_preset(args.preset))
        config.validate()
    except SpikeBenderError as exc:
        LOG.error("%s", exc)
        return 2

    wav_files = find_wavs(folder, recursive=args.recursive)
    if not wav_files:
        LOG.info("No .wav files found in: %s", folder)
        return 0
    if args.limit and args.limit > 0:
        wav_files = wav_files[: args.limit]

    LOG.info("Found %d WAV files.", len(wav_files))
    metrics = MetricsLogger(args.metrics_log) if args.metrics_log else None
    failures = run_batch(DynamicsEngine(config, metrics=metrics), wav_files, out_dir, args.suffix)

    LOG.info("=== Batch Summary ===")
    LOG.info("Total: %d", len(wav_files))
    LOG.info("Failed: %d", len(failures))
    for f in failures:
        LOG.info("- %s", f)
    return 1 if failures else 0
