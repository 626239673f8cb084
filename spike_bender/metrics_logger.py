from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from .analyzer import AnalysisResult

LOG = logging.getLogger(__name__)


class MetricsLogger:
    """Collects and stores before/after metrics for each render."""

    def __init__(self, log_path: str | Path = "spike_bender_log.json"):
        self.log_path = Path(log_path)
        self.logs = self._load()

    def _load(self) -> list[dict]:
        if not self.log_path.exists():
            return []
        try:
            logs = json.loads(self.log_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOG.warning("Ignoring unreadable metrics log %s: %s", self.log_path, exc)
            return []
        return logs if isinstance(logs, list) else []

    def _write(self) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path.write_text(json.dumps(self.logs, indent=2), encoding="utf-8")

    def record(
        self,
        name: str,
        before: AnalysisResult,
        after: AnalysisResult,
        settings: dict[str, Any] | None = None,
    ) -> dict:
        entry = {
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
            "render_name": name,
            "settings": dict(settings or {}),
            "input": before.as_dict(),
            "output": after.as_dict(),
        }
        self.logs.append(entry)
        self._write()
        return entry
