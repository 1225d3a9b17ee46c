from __future__ import annotations

from typing import Optional

from .error_codes import ErrorCode
from .logging_utils import _scraper_event

RETRYABLE_ERROR_CODES = {
    ErrorCode.NETWORK,
    ErrorCode.TIMEOUT,
    ErrorCode.HTTP_5XX,
    ErrorCode.RATE_LIMITED,
}

NON_RETRYABLE_ERROR_CODES = {
    ErrorCode.HTTP_403,
    ErrorCode.HTTP_404,
    ErrorCode.HTTP_4XX,
    ErrorCode.TOO_MANY_REDIRECTS,
    # Local disk problems will not fix themselves between attempts.
    ErrorCode.WRITE_FAILED,
}


def compute_backoff_seconds(attempt_index: int) -> float:
    """Return a capped exponential backoff for the given attempt (1-based)."""

    return float(min(2 ** max(0, attempt_index - 1), 30))


def _classify(code: str, http_status: Optional[int]) -> str:
    if code in NON_RETRYABLE_ERROR_CODES:
        return "non_retryable"
    if code in RETRYABLE_ERROR_CODES:
        return "retryable"
    if http_status is not None and http_status >= 500:
        return "retryable"
    return "unknown" if code else "missing_error_code"


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
    http_status: Optional[int] = None,
) -> bool:
    """Decide whether a failed asset attempt should be retried.

    Only transient failures (network, timeout, 5xx, 429) are retried, and
    never past ``max_attempts``. Unknown codes are not retried.
    """

    code = (error_code or "").strip()
    if attempt_index >= max_attempts:
        kind = "capped"
    else:
        kind = _classify(code, http_status)
    will_retry = kind == "retryable"

    fields = {
        "kind": kind,
        "attempt": attempt_index,
        "max_attempts": max_attempts,
        "error_code": code or None,
        "http_status": http_status,
        "will_retry": will_retry,
    }
    if kind in {"unknown", "missing_error_code"}:
        fields["error_repr"] = repr(error) if error is not None else None

    _scraper_event("state", phase="retry_decision", **fields)
    return will_retry


__all__ = [
    "decide_retry",
    "compute_backoff_seconds",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
]
