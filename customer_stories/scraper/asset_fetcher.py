from __future__ import annotations

import re
import time
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple

import requests

from . import config
from .error_codes import ErrorCode
from .logging_utils import _scraper_event
from .retry_policy import compute_backoff_seconds, decide_retry
from .utils import log_line

REDIRECT_STATUSES = {301, 302, 303, 307, 308}
KNOWN_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "svg")
DEFAULT_IMAGE_EXTENSION = "jpg"

_URL_EXTENSION = re.compile(
    r"\.(" + "|".join(KNOWN_IMAGE_EXTENSIONS) + r")$", re.IGNORECASE
)
# Checked in order; "svg+xml" must not be mistaken for anything else.
_CONTENT_TYPE_HINTS = (
    ("jpeg", "jpg"),
    ("jpg", "jpg"),
    ("png", "png"),
    ("gif", "gif"),
    ("webp", "webp"),
    ("svg", "svg"),
)


@dataclass
class AssetFetchResult:
    ok: bool
    path: Optional[Path] = None
    skipped: bool = False
    status_code: Optional[int] = None
    bytes_written: int = 0
    final_url: Optional[str] = None
    redirects: int = 0
    content_type: str = ""


class AssetFetchError(Exception):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


def is_fetchable(url: Optional[str]) -> bool:
    """Return ``False`` for empty URLs and inline ``data:`` URIs."""

    if not url or not url.strip():
        return False
    return not url.strip().lower().startswith("data:")


def url_extension(url: str) -> Optional[str]:
    """Return the known image extension in the URL path, if any."""

    try:
        path = urllib.parse.urlparse(url).path
    except ValueError:
        path = url.split("?", 1)[0]
    match = _URL_EXTENSION.search(path or "")
    if not match:
        return None
    return match.group(1).lower()


def image_extension(url: str, content_type: str = "") -> str:
    """Pick a file extension from the URL, then the content type, then a default."""

    from_url = url_extension(url or "")
    if from_url:
        return from_url

    lowered = (content_type or "").lower()
    for hint, extension in _CONTENT_TYPE_HINTS:
        if hint in lowered:
            return extension
    return DEFAULT_IMAGE_EXTENSION


def build_http_session() -> requests.Session:
    session = requests.Session()
    session.headers.update(config.COMMON_HEADERS)
    return session


def _redact_url(url: str) -> str:
    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed._replace(query=""))
    except Exception:  # noqa: BLE001
        return url


def _classify_http_status(status: Optional[int]) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if status == 403:
        return ErrorCode.HTTP_403
    if status == 404:
        return ErrorCode.HTTP_404
    if status == 429:
        return ErrorCode.RATE_LIMITED
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


def _check_deadline(deadline: float, timeout: float) -> None:
    if time.monotonic() > deadline:
        raise AssetFetchError(ErrorCode.TIMEOUT, f"Download timeout after {timeout}s")


def _open_following_redirects(
    session: Any,
    url: str,
    *,
    timeout: float,
    deadline: float,
    max_redirects: int,
) -> Tuple[Any, str, int]:
    """Issue GETs until a non-redirect response arrives.

    Returns the open response, the URL that produced it, and the hop count.
    """

    current = url
    hops = 0
    while True:
        _check_deadline(deadline, timeout)
        response = session.get(
            current, stream=True, timeout=timeout, allow_redirects=False
        )
        status = int(response.status_code)
        if status not in REDIRECT_STATUSES:
            return response, current, hops

        location = (response.headers or {}).get("Location") or (response.headers or {}).get("location")
        response.close()
        if not location:
            raise AssetFetchError(
                ErrorCode.HTTP_4XX if status < 500 else ErrorCode.HTTP_5XX,
                f"HTTP {status} redirect without Location header",
                http_status=status,
            )
        if hops >= max_redirects:
            raise AssetFetchError(
                ErrorCode.TOO_MANY_REDIRECTS,
                f"Exceeded {max_redirects} redirects",
                http_status=status,
            )
        hops += 1
        current = urllib.parse.urljoin(current, location)


def _write_body(response: Any, dest_path: Path, *, deadline: float, timeout: float) -> int:
    written = 0
    try:
        with dest_path.open("wb") as handle:
            for chunk in response.iter_content(chunk_size=8192):
                _check_deadline(deadline, timeout)
                if not chunk:
                    continue
                handle.write(chunk)
                written += len(chunk)
    except requests.RequestException:
        # requests errors subclass IOError; only local disk errors are write failures.
        raise
    except OSError as exc:
        raise AssetFetchError(ErrorCode.WRITE_FAILED, f"Write failed: {exc}") from exc
    return written


def fetch_asset(
    url: str,
    dest_path: Path,
    *,
    session: Optional[Any] = None,
    timeout: Optional[float] = None,
    max_redirects: Optional[int] = None,
    max_attempts: Optional[int] = None,
    infer_suffix: bool = False,
    token: Optional[str] = None,
) -> AssetFetchResult:
    """Download ``url`` verbatim into ``dest_path``.

    Empty and ``data:`` URLs are a no-op success. Redirects are followed by
    re-issuing the request up to ``max_redirects`` hops. Each attempt has an
    overall ``timeout``. Failures raise :class:`AssetFetchError` and never leave
    a partial file behind. With ``infer_suffix`` the file extension is taken
    from the response when the URL carries none.
    """

    if not is_fetchable(url):
        return AssetFetchResult(ok=True, skipped=True)

    timeout = float(timeout if timeout is not None else config.ASSET_TIMEOUT_SECONDS)
    max_redirects = config.ASSET_MAX_REDIRECTS if max_redirects is None else max_redirects
    attempts = max(1, config.ASSET_MAX_ATTEMPTS if max_attempts is None else max_attempts)
    client = session if session is not None else build_http_session()

    dest_path = Path(dest_path)
    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log_line(f"[ASSET] Cannot create {dest_path.parent}: {exc}")
        raise AssetFetchError(ErrorCode.WRITE_FAILED, f"Write failed: {exc}") from exc

    safe_url = _redact_url(url)
    label = token or safe_url
    last_error: Optional[AssetFetchError] = None

    for attempt in range(1, attempts + 1):
        target = dest_path
        status: Optional[int] = None
        deadline = time.monotonic() + timeout
        try:
            response, final_url, hops = _open_following_redirects(
                client,
                url,
                timeout=timeout,
                deadline=deadline,
                max_redirects=max_redirects,
            )
            try:
                status = int(response.status_code)
                if not 200 <= status < 300:
                    raise AssetFetchError(
                        _classify_http_status(status),
                        f"Failed to download image: {status}",
                        http_status=status,
                    )
                content_type = str((response.headers or {}).get("Content-Type") or "")
                if infer_suffix:
                    target = dest_path.with_suffix(
                        "." + image_extension(final_url, content_type)
                    )
                written = _write_body(response, target, deadline=deadline, timeout=timeout)
            finally:
                response.close()

            _scraper_event(
                "asset",
                phase="download",
                token=label,
                status="ok",
                http_status=status,
                bytes=written,
                redirects=hops,
            )
            return AssetFetchResult(
                ok=True,
                path=target,
                status_code=status,
                bytes_written=written,
                final_url=final_url,
                redirects=hops,
                content_type=content_type,
            )
        except AssetFetchError as exc:
            last_error = exc
            status = status or exc.http_status
        except requests.Timeout as exc:
            last_error = AssetFetchError(ErrorCode.TIMEOUT, f"Download timeout: {exc}", http_status=status)
        except requests.RequestException as exc:
            last_error = AssetFetchError(ErrorCode.NETWORK, str(exc), http_status=status)
        except OSError as exc:
            last_error = AssetFetchError(ErrorCode.WRITE_FAILED, str(exc), http_status=status)

        target.unlink(missing_ok=True)
        should_retry = decide_retry(
            attempt_index=attempt,
            max_attempts=attempts,
            error=last_error,
            error_code=last_error.error_code,
            http_status=status,
        )
        backoff = compute_backoff_seconds(attempt)
        _scraper_event(
            "state",
            phase="download_retry",
            token=label,
            attempt=attempt,
            max_attempts=attempts,
            error_code=last_error.error_code,
            http_status=status,
            will_retry=should_retry,
            backoff_seconds=backoff if should_retry else None,
            error_message=str(last_error),
        )
        log_line(
            f"[ASSET] Download attempt {attempt} for {safe_url} failed: {last_error}"
        )
        if not should_retry:
            break
        time.sleep(backoff)

    assert last_error is not None
    raise last_error


__all__ = [
    "AssetFetchResult",
    "AssetFetchError",
    "KNOWN_IMAGE_EXTENSIONS",
    "build_http_session",
    "fetch_asset",
    "image_extension",
    "is_fetchable",
    "url_extension",
]
