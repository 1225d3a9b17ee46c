from __future__ import annotations

from typing import Any

from .utils import log_line

# Playwright errors carry a multi-line call log; one event stays on one line.
_MAX_VALUE_CHARS = 300


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        first_line = value.strip().splitlines()[0] if value.strip() else value
        if len(first_line) > _MAX_VALUE_CHARS:
            first_line = first_line[:_MAX_VALUE_CHARS] + "..."
        return repr(first_line)
    return repr(value)


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured ``[SCRAPER][LABEL] key=value`` log line.

    ``phase`` may stand in for the label. When both are given, ``phase`` goes
    into the payload instead. Logging failures are swallowed.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={_format_value(v)}" for k, v in sorted(fields.items()))
        log_line(f"[SCRAPER][{phase_label.upper()}] {payload}")
    except Exception:  # noqa: BLE001
        return


__all__ = ["_scraper_event"]
