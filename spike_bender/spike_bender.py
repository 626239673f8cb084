from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Optional, Sequence

from .audio_engine import DynamicsEngine, SpikeBenderConfig
from .dynamics import NormalizeMode
from .errors import SpikeBenderError
from .metrics_logger import MetricsLogger
from .system_utils import ConfigManager
from .weighting import Weighting

LOG = logging.getLogger(__name__)

_UNIT_RE = re.compile(r"^\s*([-+]?[0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)\s*([a-zA-Z]*)\s*$")


def _setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure console + optional file logging (batch-friendly)."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=handlers,
        force=True,
    )


def _unit_value(unit: str):
    """argparse type: a float with an optional trailing unit, e.g. ``3``, ``3dB`` or ``40 ms``."""

    def convert(text: str) -> float:
        m = _UNIT_RE.match(text)
        if not m or (m.group(2) and m.group(2).lower() != unit.lower()):
            raise argparse.ArgumentTypeError(f"invalid value '{text}' (expected a number in {unit})")
        return float(m.group(1))

    convert.__name__ = unit
    return convert


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer '{text}'") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"value must be positive, got {value}")
    return value


def _choice(enum_cls):
    def convert(text: str):
        try:
            return enum_cls.parse(text)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from None

    convert.__name__ = enum_cls.__name__
    return convert


class _Once(argparse.Action):
    """Store an option and reject it when given twice."""

    def __call__(self, parser, namespace, values, option_string=None):
        given = getattr(namespace, "_given", None)
        if given is None:
            given = set()
            setattr(namespace, "_given", given)
        if self.dest in given:
            parser.error(f"duplicate option: {option_string}")
        given.add(self.dest)
        setattr(namespace, self.dest, values)


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spike-bender",
        description="Level the dynamics of an audio clip: upward leveling, peak smashing and normalization.",
        allow_abbrev=False,
    )
    db = _unit_value("dB")
    ms = _unit_value("ms")

    files = parser.add_argument_group("files")
    files.add_argument("-if", "--in-file", dest="in_file", required=True, action=_Once, help="Input audio file.")
    files.add_argument("-of", "--out-file", dest="out_file", required=True, action=_Once, help="Output audio file.")
    files.add_argument("-sr", "--srate", dest="sample_rate", type=_positive_int, action=_Once,
                      help="Resample the input to this rate (Hz) before processing.")

    dyn = parser.add_argument_group("dynamics")
    dyn.add_argument("-dr", "--dynamic-range", dest="range_db", type=db, action=_Once,
                     help="Dynamic range around the reference level in dB (default 6).")
    dyn.add_argument("-k", "--knee", dest="knee_db", type=db, action=_Once,
                     help="Soft knee width in dB (default 3).")
    dyn.add_argument("-np", "--num-passes", dest="passes", type=_positive_int, action=_Once,
                     help="Number of leveling passes (default 1).")
    dyn.add_argument("-r", "--reactivity", dest="reactivity_ms", type=ms, action=_Once,
                     help="Short-term RMS window in ms (default 40).")
    dyn.add_argument("-wf", "--weighting", dest="weighting", type=_choice(Weighting), action=_Once,
                     metavar="{none,a,b,c,d,k}", help="Weighting curve for level estimation.")
    dyn.add_argument("-ep", "--eliminate-peaks", dest="peak_threshold_db", type=db, action=_Once,
                     help="Smash peaks this many dB above the typical peak; 0 or less disables (default 1).")

    norm = parser.add_argument_group("normalization")
    norm.add_argument("-n", "--normalize", dest="normalize", type=_choice(NormalizeMode), action=_Once,
                      metavar="{none,above,below,always}", help="Peak normalization mode.")
    norm.add_argument("-ng", "--norm-gain", dest="norm_gain_db", type=db, action=_Once,
                      help="Normalization target peak in dBFS (default 0).")

    misc = parser.add_argument_group("misc")
    misc.add_argument("--preset", action=_Once, help="Start from a named preset.")
    misc.add_argument("--presets-file", action=_Once, help="JSON file with extra presets.")
    misc.add_argument("--metrics-log", action=_Once, help="Append before/after metrics to this JSON file.")
    misc.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    misc.add_argument("--log-file", default=None, help="Optional log file path.")
    return parser


_CONFIG_OPTIONS = (
    "sample_rate",
    "range_db",
    "knee_db",
    "passes",
    "reactivity_ms",
    "weighting",
    "peak_threshold_db",
    "normalize",
    "norm_gain_db",
)


def parse_config(argv: Sequence[str] | None = None) -> tuple[SpikeBenderConfig, argparse.Namespace]:
    """Parse the command line into a validated config; usage errors exit with status 2."""
    parser = build_cli()
    args = parser.parse_args(argv)

    config = SpikeBenderConfig()
    if args.preset:
        try:
            config.update(ConfigManager(args.presets_file).get_preset(args.preset))
        except (SpikeBenderError, OSError, ValueError) as exc:
            parser.error(str(exc))

    given = getattr(args, "_given", set())
    for name in _CONFIG_OPTIONS:
        if name in given:
            setattr(config, name, getattr(args, name))

    try:
        config.validate()
    except SpikeBenderError as exc:
        parser.error(str(exc))
    return config, args


def main(argv: Sequence[str] | None = None) -> int:
    config, args = parse_config(argv)
    _setup_logging(args.log_level, args.log_file)

    metrics = MetricsLogger(args.metrics_log) if args.metrics_log else None
    engine = DynamicsEngine(config, metrics=metrics)
    try:
        analysis = engine.process_file(args.in_file, args.out_file)
    except SpikeBenderError as exc:
        LOG.error("%s", exc)
        return 1

    LOG.info("Exported: %s", args.out_file)
    LOG.info("LUFS: %.2f | Peak: %.2f dBFS | Crest: %.2f", analysis.lufs, analysis.peak_dbfs, analysis.crest_factor)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
