"""Playwright page rendering for the listing pages.

The rest of the pipeline only sees :class:`RenderedPage` HTML, so tests drive
it with fixture documents through any object offering ``render(url)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PWError,
    Page,
    Playwright,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .error_codes import ContentTimeoutError, ErrorCode, ScrapeError
from .logging_utils import _scraper_event
from .selectors import CUSTOMER_STORY_SELECTORS
from .utils import log_line


@dataclass
class RenderedPage:
    url: str
    html: str
    final_url: str = ""


class PageRenderer(Protocol):
    def render(self, url: str) -> RenderedPage: ...


def wait_seconds(page: Optional[Page], seconds: float) -> None:
    """Wait safely for ``seconds`` only if *page* remains open."""

    if page is None:
        return

    if seconds is None or seconds <= 0:
        return

    if not page.is_closed():
        page.wait_for_timeout(int(seconds * 1000))


class PlaywrightRenderer:
    """Chromium-backed renderer; use as a context manager."""

    def __init__(
        self,
        *,
        headless: Optional[bool] = None,
        content_selector: str = CUSTOMER_STORY_SELECTORS.content_anchor,
        nav_timeout_seconds: Optional[int] = None,
        content_timeout_seconds: Optional[int] = None,
        settle_seconds: Optional[float] = None,
    ) -> None:
        self.headless = config.HEADLESS if headless is None else headless
        self.content_selector = content_selector
        self.nav_timeout_seconds = nav_timeout_seconds or config.NAV_TIMEOUT_SECONDS
        self.content_timeout_seconds = content_timeout_seconds or config.CONTENT_TIMEOUT_SECONDS
        self.settle_seconds = (
            config.SETTLE_DELAY_SECONDS if settle_seconds is None else settle_seconds
        )
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    def __enter__(self) -> "PlaywrightRenderer":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def open(self) -> None:
        """Start Chromium; a launch failure is a fatal ``browser_launch_failed``."""

        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=self.headless)
            self._context = self._browser.new_context(
                user_agent=config.USER_AGENT,
                locale="en-US",
                viewport={"width": 1366, "height": 900},
            )
            self._page = self._context.new_page()
        except PWError as exc:
            log_line(f"[SCRAPER][ERROR][RENDER] Browser launch failed: {exc}")
            _scraper_event("error", phase="render", step="launch", error=str(exc))
            self.close()
            raise ScrapeError(
                ErrorCode.BROWSER_LAUNCH_FAILED, f"Unable to start the browser: {exc}"
            ) from exc
        self._page.set_default_navigation_timeout(self.nav_timeout_seconds * 1000)

    def close(self) -> None:
        for closer in (self._context, self._browser):
            if closer is None:
                continue
            try:
                closer.close()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[RENDER][WARN] Error closing browser resources: {exc}")
        if self._pw is not None:
            self._pw.stop()
        self._pw = self._browser = self._context = self._page = None

    def _goto(self, page: Page, url: str) -> None:
        _scraper_event("nav", step="goto", url=url)
        try:
            page.goto(url, wait_until="domcontentloaded")
        except PWTimeout as exc:
            log_line(f"[SCRAPER][ERROR][NAV] goto({url!r}) timed out: {exc}")
            _scraper_event("error", phase="nav", step="goto_timeout", url=url, error=str(exc))
            raise ScrapeError(ErrorCode.NAVIGATION_FAILED, f"Navigation to {url} timed out") from exc
        except PWError as exc:
            log_line(f"[SCRAPER][ERROR][NAV] goto({url!r}) failed: {exc}")
            _scraper_event("error", phase="nav", step="goto_error", url=url, error=str(exc))
            raise ScrapeError(ErrorCode.NAVIGATION_FAILED, f"Navigation to {url} failed: {exc}") from exc

        try:
            page.wait_for_load_state("networkidle", timeout=self.nav_timeout_seconds * 1000)
        except PWTimeout:
            log_line("Initial networkidle timeout; continuing.")

    def _wait_for_content(self, page: Page, url: str) -> None:
        try:
            _scraper_event("render", step="wait_for_content", selector=self.content_selector)
            page.wait_for_selector(
                self.content_selector, timeout=self.content_timeout_seconds * 1000
            )
        except PWTimeout as exc:
            log_line(
                f"[SCRAPER][ERROR][RENDER] Content selector {self.content_selector!r} "
                f"not found within {self.content_timeout_seconds}s on {url}"
            )
            _scraper_event(
                "error",
                phase="render",
                step="wait_for_content_timeout",
                url=url,
                error=str(exc),
            )
            raise ContentTimeoutError(
                url,
                f"Page content did not render within {self.content_timeout_seconds}s: {url}",
            ) from exc

    def render(self, url: str) -> RenderedPage:
        """Load ``url``, wait for the listing content, settle, and return the HTML."""

        if self._page is None:
            raise RuntimeError("PlaywrightRenderer.render() called before open()")
        page = self._page
        self._goto(page, url)
        self._wait_for_content(page, url)
        wait_seconds(page, self.settle_seconds)
        return RenderedPage(url=url, html=page.content(), final_url=page.url)


__all__ = ["RenderedPage", "PageRenderer", "PlaywrightRenderer", "wait_seconds"]
