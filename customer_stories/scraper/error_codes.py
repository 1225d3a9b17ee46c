from __future__ import annotations

"""Centralised error code taxonomy for scraper failures.

Asset codes end up in the run telemetry and in structured log lines so a run
summary can explain why an image is missing. Fatal codes accompany the
exceptions that abort a run.
"""


class ErrorCode:
    NETWORK = "network_error"
    TIMEOUT = "timeout"
    HTTP_4XX = "http_4xx"
    HTTP_403 = "http_403_forbidden"
    HTTP_404 = "http_404_not_found"
    HTTP_5XX = "http_5xx"
    RATE_LIMITED = "rate_limited"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    WRITE_FAILED = "write_failed"
    INTERNAL = "internal_error"

    # Run-aborting
    MISSING_BASE_URL = "missing_base_url"
    INVALID_CONFIG = "invalid_config"
    CONTENT_TIMEOUT = "content_timeout"
    NAVIGATION_FAILED = "navigation_failed"
    BROWSER_LAUNCH_FAILED = "browser_launch_failed"


class ScrapeError(Exception):
    """Base class for errors that abort a whole run."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class ConfigError(ScrapeError, ValueError):
    """Blocking misconfiguration detected before any page is visited."""


class ContentTimeoutError(ScrapeError):
    """A listing page never rendered its content anchor within the bound."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(ErrorCode.CONTENT_TIMEOUT, message)
        self.url = url


__all__ = ["ErrorCode", "ScrapeError", "ConfigError", "ContentTimeoutError"]
