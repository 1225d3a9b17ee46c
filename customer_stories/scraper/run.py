"""Playwright-based extractor for customer story listings.

Workflow:

- Render the seed search URL (page 1), then ``page=N`` variants, one at a time.
- Wait for the dynamic content container, settle, and read the HTML.
- Extract story cards from each page and ask the pagination oracle whether
  another page exists. A page with no cards ends the loop.
- After the loop, download every logo, header image and product icon into
  ``media/`` and record the local paths on each story.
- Write ``{metadata, stories}`` to the dataset file in one go.

A page whose content never renders aborts the run without writing anything,
since it cannot be told apart from "no more stories". A failed image never
aborts the run.
"""

from __future__ import annotations

import argparse
import time
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config
from .asset_fetcher import (
    DEFAULT_IMAGE_EXTENSION,
    AssetFetchError,
    AssetFetchResult,
    build_http_session,
    fetch_asset,
    url_extension,
)
from .config_validation import Entrypoint, validate_runtime_config
from .dataset import build_dataset, build_metadata, summarize_stories, write_dataset
from .download_executor import DownloadExecutor
from .error_codes import ErrorCode, ScrapeError
from .extractor import count_candidates, extract_stories, parse_document
from .logging_utils import _scraper_event
from .models import StoryRecord
from .pagination import PaginationDecision, PaginationReason, evaluate_page
from .renderer import PageRenderer, PlaywrightRenderer
from .selectors import CUSTOMER_STORY_SELECTORS, CustomerStorySelectors
from .telemetry import RunTelemetry
from .utils import ensure_dirs, log_line, sanitize_token, setup_run_logger

LOGO_ROLE = "logo"
HEADER_ROLE = "header"

FetchFn = Callable[..., AssetFetchResult]


@dataclass
class RunContext:
    """Mutable state of one run, owned by the orchestrator."""

    base_url: str
    max_pages: int
    pages_visited: int = 0
    stories: List[StoryRecord] = field(default_factory=list)
    last_decision: Optional[PaginationDecision] = None
    stop_reason: str = ""


@dataclass
class AssetJob:
    """One file to fetch for a story, plus where its local path goes."""

    story_index: int
    global_id: str
    role: str
    url: str
    product_indexes: List[int] = field(default_factory=list)

    @property
    def token(self) -> str:
        return f"{self.global_id}:{self.role}"


@dataclass
class AssetOutcome:
    job: AssetJob
    status: str
    reason: str = ""
    local_path: Optional[str] = None
    http_status: Optional[int] = None


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------


def page_url(base_url: str, page_number: int) -> str:
    """Return the listing URL for ``page_number`` (1-based)."""

    if page_number <= 1:
        return base_url
    parts = urllib.parse.urlsplit(base_url)
    param = f"page={page_number}"
    query = f"{parts.query}&{param}" if parts.query else param
    return urllib.parse.urlunsplit(parts._replace(query=query))


def product_role(name: str) -> str:
    return f"product_{sanitize_token(name)}"


def asset_filename(global_id: str, role: str, extension: str) -> str:
    return f"{global_id}_{role}.{extension}"


# ---------------------------------------------------------------------------
# Page loop
# ---------------------------------------------------------------------------


def _log_decision(page_number: int, decision: PaginationDecision, showing: str) -> None:
    _scraper_event(
        "pagination",
        page=page_number,
        has_next=decision.should_continue,
        reason=decision.reason.value,
        current_page=decision.current_page,
        total_pages=decision.total_pages,
        showing=showing,
    )
    if decision.reason is PaginationReason.SINGLE_PAGE:
        log_line(f"Single page detected ({decision.reason.value}): {showing}")
    elif not decision.should_continue and decision.total_pages:
        log_line(f"Reached last page ({decision.total_pages}): {showing}")
    elif not decision.should_continue:
        log_line(f"No more pages available ({decision.reason.value}): {showing}")
    else:
        log_line(f"Navigating to page {page_number + 1}... ({showing})")


def collect_stories(
    renderer: PageRenderer,
    context: RunContext,
    *,
    selectors: CustomerStorySelectors = CUSTOMER_STORY_SELECTORS,
    inter_page_delay: Optional[float] = None,
) -> RunContext:
    """Walk the listing pages, accumulating validated stories on ``context``."""

    delay = config.INTER_PAGE_DELAY_SECONDS if inter_page_delay is None else inter_page_delay
    page_number = 1

    while page_number <= context.max_pages:
        if page_number > 1 and delay > 0:
            time.sleep(delay)

        url = page_url(context.base_url, page_number)
        log_line(f"Processing page {page_number}: {url}")
        rendered = renderer.render(url)
        context.pages_visited = page_number

        soup = parse_document(rendered.html)
        if count_candidates(soup, selectors=selectors) == 0:
            log_line("No stories found on this page. Stopping pagination.")
            context.stop_reason = "no_cards"
            break

        page_stories = extract_stories(soup, page_number, selectors=selectors)
        context.stories.extend(page_stories)
        log_line(f"Found {len(page_stories)} stories on page {page_number}")

        state, decision = evaluate_page(soup, selectors=selectors)
        context.last_decision = decision
        _log_decision(page_number, decision, state.showing)
        if not decision.should_continue:
            context.stop_reason = decision.reason.name.lower()
            break
        page_number += 1
    else:
        context.stop_reason = "page_cap"
        log_line(f"Reached page cap of {context.max_pages}; stopping pagination.")

    return context


# ---------------------------------------------------------------------------
# Asset downloads
# ---------------------------------------------------------------------------


def plan_asset_jobs(stories: Sequence[StoryRecord]) -> List[AssetJob]:
    """List the assets to fetch in accumulated-record order.

    Products whose sanitised names collide on one card share a single file.
    """

    jobs: List[AssetJob] = []
    for story_index, story in enumerate(stories):
        gid = story.global_id
        if story.logo:
            jobs.append(AssetJob(story_index, gid, LOGO_ROLE, story.logo))
        if story.header_image:
            jobs.append(AssetJob(story_index, gid, HEADER_ROLE, story.header_image))

        by_role: Dict[str, AssetJob] = {}
        for product_index, product in enumerate(story.products):
            if not product.icon:
                continue
            role = product_role(product.name)
            existing = by_role.get(role)
            if existing is not None:
                existing.product_indexes.append(product_index)
                continue
            job = AssetJob(story_index, gid, role, product.icon, [product_index])
            by_role[role] = job
            jobs.append(job)
    return jobs


def _run_asset_job(
    job: AssetJob,
    media_dir: Path,
    *,
    fetch: FetchFn,
    session: Any,
) -> AssetOutcome:
    extension = url_extension(job.url)
    dest = media_dir / asset_filename(
        job.global_id, job.role, extension or DEFAULT_IMAGE_EXTENSION
    )
    try:
        result = fetch(
            job.url,
            dest,
            session=session,
            infer_suffix=extension is None,
            token=job.token,
        )
    except AssetFetchError as exc:
        log_line(f"  Failed to download {job.role} for story {job.global_id}: {exc}")
        return AssetOutcome(job, "failed", exc.error_code, http_status=exc.http_status)
    except Exception as exc:  # noqa: BLE001
        log_line(f"  Error downloading {job.role} for story {job.global_id}: {exc}")
        return AssetOutcome(job, "failed", ErrorCode.INTERNAL)

    if result.skipped or result.path is None:
        return AssetOutcome(job, "skipped", "not_fetchable")

    local = f"{config.MEDIA_DIRNAME}/{Path(result.path).name}"
    log_line(f"  Downloaded {job.role}: {Path(result.path).name}")
    return AssetOutcome(job, "downloaded", "ok", local_path=local, http_status=result.status_code)


def _apply_outcome(story: StoryRecord, outcome: AssetOutcome) -> None:
    if outcome.local_path is None:
        return
    role = outcome.job.role
    if role == LOGO_ROLE:
        story.logo_local = outcome.local_path
    elif role == HEADER_ROLE:
        story.header_image_local = outcome.local_path
    else:
        for product_index in outcome.job.product_indexes:
            story.products[product_index].icon_local = outcome.local_path


def download_story_assets(
    stories: Sequence[StoryRecord],
    media_dir: Path,
    *,
    fetch: Optional[FetchFn] = None,
    session: Optional[Any] = None,
    executor: Optional[DownloadExecutor] = None,
    telemetry: Optional[RunTelemetry] = None,
) -> Dict[str, int]:
    """Fetch every asset referenced by ``stories`` and fill their local paths.

    Failures leave the matching ``*_local`` field unset; this never raises for
    a download problem.
    """

    fetch_fn = fetch or fetch_asset
    http_session = session if session is not None else build_http_session()
    jobs = plan_asset_jobs(stories)
    log_line(f"=== DOWNLOADING IMAGES === ({len(jobs)} assets for {len(stories)} stories)")

    runner = executor or DownloadExecutor(1)
    try:
        outcomes = runner.run_all(
            [
                (lambda job=job: _run_asset_job(job, media_dir, fetch=fetch_fn, session=http_session))
                for job in jobs
            ]
        )
    finally:
        if executor is None:
            runner.shutdown()

    counts = {"downloaded": 0, "failed": 0, "skipped": 0}
    for outcome in outcomes:
        _apply_outcome(stories[outcome.job.story_index], outcome)
        counts[outcome.status] = counts.get(outcome.status, 0) + 1
        if telemetry is not None:
            telemetry.add(
                outcome.status,
                outcome.reason,
                {
                    "global_id": outcome.job.global_id,
                    "role": outcome.job.role,
                    "url": outcome.job.url,
                    "local_path": outcome.local_path,
                    "http_status": outcome.http_status,
                },
            )

    _scraper_event("state", phase="assets", kind="summary", **counts)
    return counts


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def _decision_summary(decision: Optional[PaginationDecision]) -> Optional[Dict[str, Any]]:
    if decision is None:
        return None
    return {
        "should_continue": decision.should_continue,
        "reason": decision.reason.name.lower(),
        "current_page": decision.current_page,
        "total_pages": decision.total_pages,
    }


def _log_run_summary(stories: Sequence[StoryRecord], context: RunContext) -> None:
    log_line("=== PAGINATION EXTRACTION COMPLETE ===")
    log_line(f"Total stories across {context.pages_visited} pages: {len(stories)}")
    stats = summarize_stories(stories)
    if stats["industries"]:
        log_line(f"Stories per industry: {stats['industries']}")
    if stats["products"]:
        log_line(f"Product mentions: {stats['products']}")


def run_extraction(
    base_url: Optional[str] = None,
    *,
    renderer: Optional[PageRenderer] = None,
    fetch: Optional[FetchFn] = None,
    session: Optional[Any] = None,
    max_pages: Optional[int] = None,
    data_dir: Optional[Path] = None,
    output_file: Optional[Path] = None,
    max_parallel_downloads: Optional[int] = None,
    skip_downloads: bool = False,
    inter_page_delay: Optional[float] = None,
    headless: Optional[bool] = None,
    entrypoint: Entrypoint = "library",
) -> Dict[str, Any]:
    """Run one full extraction and return the dataset that was written.

    Raises ``ConfigError`` before any page is visited when the seed URL is
    missing, and ``ContentTimeoutError`` when a page never renders; in both
    cases no dataset is written.
    """

    root = Path(data_dir) if data_dir is not None else config.DATA_DIR
    log_path = setup_run_logger(root / "logs")
    seed = validate_runtime_config(entrypoint, base_url=base_url, max_pages=max_pages)
    log_line(f"Using base URL: {seed}")

    context = RunContext(
        base_url=seed,
        max_pages=config.MAX_PAGES if max_pages is None else max_pages,
    )

    try:
        if renderer is None:
            with PlaywrightRenderer(headless=headless) as live_renderer:
                collect_stories(live_renderer, context, inter_page_delay=inter_page_delay)
        else:
            collect_stories(renderer, context, inter_page_delay=inter_page_delay)
    except ScrapeError as exc:
        _scraper_event(
            "error",
            phase="run",
            error_code=exc.error_code,
            pages_visited=context.pages_visited,
            error=str(exc),
        )
        log_line(f"[RUN][FATAL] {exc}")
        raise

    stories = context.stories
    if not stories:
        log_line("[RUN][WARN] No stories were extracted.")

    media_dir = ensure_dirs(root)
    telemetry = RunTelemetry(seed, runs_dir=root / "runs")
    if skip_downloads:
        log_line("Skipping image downloads.")
    else:
        with DownloadExecutor(max_parallel_downloads) as executor:
            download_story_assets(
                stories,
                media_dir,
                fetch=fetch,
                session=session,
                executor=executor,
                telemetry=telemetry,
            )
            executor.log_summary()

    metadata = build_metadata(stories, pages_visited=context.pages_visited, base_url=seed)
    dataset = build_dataset(stories, metadata)
    target = Path(output_file) if output_file is not None else root / config.OUTPUT_FILENAME
    write_dataset(target, dataset)

    _log_run_summary(stories, context)
    log_line(f"Stories per page breakdown: {dataset['metadata']['storiesPerPage']}")
    log_line(f"Results saved to: {target}")

    try:
        telemetry.finalize(
            {
                "pages_visited": context.pages_visited,
                "stop_reason": context.stop_reason,
                "last_decision": _decision_summary(context.last_decision),
                "total_stories": len(stories),
                "output_file": str(target),
                "log_file": str(log_path),
            }
        )
    except OSError as exc:
        log_line(f"[RUN][WARN] Unable to write run telemetry: {exc}")

    return dataset


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract customer stories and their images from a listing search URL.",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Customer stories search URL (defaults to the BASE_URL environment variable).",
    )
    parser.add_argument("--max-pages", type=int, default=config.MAX_PAGES)
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=config.DATA_DIR,
        help="Directory receiving the dataset file, media/ and logs/.",
    )
    parser.add_argument("--output", type=Path, default=None, help="Dataset file path.")
    parser.add_argument(
        "--max-parallel-downloads",
        type=int,
        default=config.MAX_PARALLEL_DOWNLOADS,
    )
    parser.add_argument("--skip-downloads", action="store_true")
    parser.add_argument("--headed", action="store_true", help="Show the browser window.")
    return parser


def _cli_entrypoint(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        dataset = run_extraction(
            base_url=args.base_url,
            max_pages=args.max_pages,
            data_dir=args.data_dir,
            output_file=args.output,
            max_parallel_downloads=args.max_parallel_downloads,
            skip_downloads=args.skip_downloads,
            headless=False if args.headed else None,
            entrypoint="cli",
        )
    except ScrapeError as exc:
        log_line(f"Error: {exc}")
        return 1

    log_line(f"[OK] Extracted {dataset['metadata']['totalStories']} stories")
    return 0


def main() -> None:  # pragma: no cover - CLI entry
    raise SystemExit(_cli_entrypoint())


__all__ = [
    "RunContext",
    "AssetJob",
    "AssetOutcome",
    "page_url",
    "product_role",
    "asset_filename",
    "collect_stories",
    "plan_asset_jobs",
    "download_story_assets",
    "run_extraction",
    "_cli_entrypoint",
]


if __name__ == "__main__":  # pragma: no cover
    main()
