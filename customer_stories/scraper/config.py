"""Configuration constants for the customer stories scraper."""
from __future__ import annotations

import os
from pathlib import Path


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _parse_float(env_var: str, default: float) -> float:
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


def _parse_int(env_var: str, default: int) -> int:
    try:
        return int(os.getenv(env_var, str(default)))
    except ValueError:
        return default


# Output locations. ``*Local`` paths in the dataset are relative to DATA_DIR.
DATA_DIR: Path = Path(os.getenv("STORIES_DATA_DIR", "."))
MEDIA_DIRNAME: str = "media"
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
RUNS_DIR: Path = DATA_DIR / "runs"
OUTPUT_FILENAME: str = os.getenv("OUTPUT_FILENAME", "microsoft-customer-stories.json")

# Seed listing URL. No default; a run without one is a configuration error.
BASE_URL: str = os.getenv("BASE_URL", "").strip()

# Hard upper bound on listing pages visited per run.
MAX_PAGES: int = _parse_int("MAX_PAGES", 10)

# Playwright timeouts (seconds)
# Navigation timeout for page.goto calls.
NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds("NAV_TIMEOUT_SECONDS", 60)
# Wait for the listing content anchor to appear.
CONTENT_TIMEOUT_SECONDS: int = _parse_timeout_seconds("CONTENT_TIMEOUT_SECONDS", 60)

# Pacing (seconds)
SETTLE_DELAY_SECONDS: float = _parse_float("SETTLE_DELAY_SECONDS", 3.0)
INTER_PAGE_DELAY_SECONDS: float = _parse_float("INTER_PAGE_DELAY_SECONDS", 2.0)

# Asset downloads
ASSET_TIMEOUT_SECONDS: int = _parse_timeout_seconds("ASSET_TIMEOUT_SECONDS", 30)
ASSET_MAX_REDIRECTS: int = _parse_int("ASSET_MAX_REDIRECTS", 5)
# One attempt per asset unless raised; retries follow retry_policy.
ASSET_MAX_ATTEMPTS: int = _parse_int("ASSET_MAX_ATTEMPTS", 1)

# Concurrency controls
# Max number of asset downloads in flight at once. 1 keeps downloads sequential.
MAX_PARALLEL_DOWNLOADS: int = _parse_int("MAX_PARALLEL_DOWNLOADS", 1)

HEADLESS: bool = os.getenv("HEADLESS", "true").strip().lower() not in {"0", "false"}

USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}
