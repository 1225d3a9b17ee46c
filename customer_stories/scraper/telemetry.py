"""Run telemetry for asset download outcomes."""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .utils import save_json_file


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class RunTelemetry:
    """Collect per-run asset outcomes for the end-of-run summary."""

    def __init__(self, base_url: str, runs_dir: Optional[Path] = None) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.base_url = base_url
        self.runs_dir = Path(runs_dir) if runs_dir is not None else config.RUNS_DIR
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, int] = defaultdict(int)
        self.fail_reasons: Dict[str, int] = defaultdict(int)

    def add(self, status: str, reason: str, meta: Dict[str, Any]) -> None:
        self.entries.append(
            {
                "status": status,
                "reason": reason,
                **meta,
            }
        )
        self.summary[f"count_{status}"] += 1
        if status == "failed":
            self.fail_reasons[reason] += 1

    def count(self, status: str) -> int:
        return self.summary.get(f"count_{status}", 0)

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "base_url": self.base_url,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "fail_reasons": dict(self.fail_reasons),
            "entries": self.entries,
            **(extra or {}),
        }
        path = self.runs_dir / f"run_{self.run_id}.json"
        save_json_file(path, payload)
        return path


__all__ = ["RunTelemetry"]
