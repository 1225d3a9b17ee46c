from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from . import config

LOGGER = logging.getLogger("customer_stories")
_LOGGER_INITIALISED = False

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED

    log_path.parent.mkdir(parents=True, exist_ok=True)

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False

    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return

    _configure_logger(config.LOG_FILE)


def setup_run_logger(log_dir: Path | None = None) -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = Path(log_dir or config.LOG_DIR) / f"extract_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def ensure_dirs(data_dir: Path | None = None) -> Path:
    """Ensure the data and media directories exist; return the media directory."""

    root = Path(data_dir) if data_dir is not None else config.DATA_DIR
    media_dir = root / config.MEDIA_DIRNAME
    root.mkdir(parents=True, exist_ok=True)
    media_dir.mkdir(parents=True, exist_ok=True)
    return media_dir


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string with milliseconds."""

    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def sanitize_token(value: str) -> str:
    """Lowercase ``value`` and replace every non-alphanumeric character with ``_``."""

    return _NON_ALNUM.sub("_", value).lower()


def save_json_file(path: Path, payload: Any) -> None:
    """Persist ``payload`` as JSON at ``path`` atomically."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        tmp_path.replace(path)
    finally:
        tmp_path.unlink(missing_ok=True)


__all__ = [
    "LOGGER",
    "ensure_dirs",
    "setup_run_logger",
    "log_line",
    "utc_now_iso",
    "sanitize_token",
    "save_json_file",
]
