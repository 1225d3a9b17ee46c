from __future__ import annotations

from typing import Literal, NoReturn, Optional

from . import config
from .error_codes import ConfigError, ErrorCode
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["cli", "tests", "library"]


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, error_code: str = ErrorCode.INVALID_CONFIG
) -> NoReturn:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ConfigError(error_code, message)


def _report_below_one(field_name: str, *, entrypoint: Entrypoint) -> None:
    """Report a knob below 1; its consumer treats it as 1 without touching ``config``."""

    value = getattr(config, field_name)
    if value >= 1:
        return
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field_name,
        value=value,
        adjusted=1,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field_name}={value} < 1; treating it as 1 for this run.")


def validate_runtime_config(
    entrypoint: Entrypoint,
    *,
    base_url: Optional[str] = None,
    max_pages: Optional[int] = None,
) -> str:
    """Validate runtime configuration and return the seed URL for the run.

    Raises ``ConfigError`` when a blocking misconfiguration is detected.
    Parallelism and attempt knobs below 1 are logged but left as set;
    ``DownloadExecutor`` and ``fetch_asset`` treat them as 1.
    """

    seed = (base_url if base_url is not None else config.BASE_URL) or ""
    seed = seed.strip()
    if not seed:
        _raise_config_error(
            "BASE_URL is required. Set BASE_URL or pass --base-url with a customer stories search URL.",
            entrypoint=entrypoint,
            error="missing_base_url",
            error_code=ErrorCode.MISSING_BASE_URL,
        )
    if not seed.lower().startswith(("http://", "https://")):
        _raise_config_error(
            f"BASE_URL must be an http(s) URL, got {seed!r}.",
            entrypoint=entrypoint,
            error="invalid_base_url",
        )

    pages = config.MAX_PAGES if max_pages is None else max_pages
    if pages < 1:
        _raise_config_error(
            "MAX_PAGES must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_max_pages",
        )

    if config.ASSET_MAX_REDIRECTS < 0:
        _raise_config_error(
            "ASSET_MAX_REDIRECTS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_max_redirects",
        )

    _report_below_one("MAX_PARALLEL_DOWNLOADS", entrypoint=entrypoint)
    _report_below_one("ASSET_MAX_ATTEMPTS", entrypoint=entrypoint)

    timeout_fields = [
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("CONTENT_TIMEOUT_SECONDS", config.CONTENT_TIMEOUT_SECONDS),
        ("ASSET_TIMEOUT_SECONDS", config.ASSET_TIMEOUT_SECONDS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    return seed


__all__ = ["validate_runtime_config", "Entrypoint"]
