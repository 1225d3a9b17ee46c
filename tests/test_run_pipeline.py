from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest

from customer_stories.scraper import config, run
from customer_stories.scraper.asset_fetcher import AssetFetchError, AssetFetchResult
from customer_stories.scraper.error_codes import (
    ConfigError,
    ContentTimeoutError,
    ErrorCode,
)
from customer_stories.scraper.renderer import RenderedPage
from story_pages import IMG_HOST, listing_page, pagination_markup, promo_card, story_card

BASE_URL = "https://www.example.com/en-us/customers/search?sort-key=newest"


class FakeRenderer:
    """Serves fixture HTML per URL; a missing URL renders an empty listing."""

    def __init__(self, pages: Dict[str, Union[str, Exception]]) -> None:
        self.pages = pages
        self.calls: List[str] = []

    def render(self, url: str) -> RenderedPage:
        self.calls.append(url)
        page = self.pages.get(url, listing_page([]))
        if isinstance(page, Exception):
            raise page
        return RenderedPage(url=url, html=page, final_url=url)


class FakeFetch:
    """Writes a small file for every asset unless the URL is listed as failing."""

    def __init__(self, failing: Optional[set] = None) -> None:
        self.failing = failing or set()
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def __call__(self, url, dest, *, session=None, infer_suffix=False, token=None):  # noqa: ANN001, ANN204
        with self._lock:
            self.calls.append((url, Path(dest).name, infer_suffix, token))
        if url.startswith("data:"):
            return AssetFetchResult(ok=True, skipped=True)
        if url in self.failing:
            raise AssetFetchError(ErrorCode.HTTP_404, "Failed to download image: 404", http_status=404)
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"img")
        return AssetFetchResult(ok=True, path=dest, status_code=200, bytes_written=3)


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    messages: list[str] = []
    monkeypatch.setattr(run, "log_line", lambda msg: messages.append(str(msg)))
    return messages


def _page_cards(page: int, count: int) -> List[str]:
    return [
        story_card(
            f"Story {page}.{index}",
            href=f"https://www.example.com/en-us/customers/story/{page}{index}-story",
            industry="Industry: Retail" if index % 2 else "Industry: Banking",
            logo=f"{IMG_HOST}/logo-{page}-{index}.png",
            header=f"{IMG_HOST}/header-{page}-{index}.jpg",
            products=(("Azure", f"{IMG_HOST}/azure.svg"), ("Microsoft 365", f"{IMG_HOST}/m365.png")),
        )
        for index in range(1, count + 1)
    ]


def _run(tmp_path: Path, renderer: FakeRenderer, **kwargs):  # noqa: ANN003, ANN202
    kwargs.setdefault("fetch", FakeFetch())
    kwargs.setdefault("session", object())
    return run.run_extraction(
        BASE_URL,
        renderer=renderer,
        data_dir=tmp_path,
        inter_page_delay=0,
        entrypoint="tests",
        **kwargs,
    )


def test_page_url_appends_page_parameter() -> None:
    assert run.page_url(BASE_URL, 1) == BASE_URL
    assert run.page_url(BASE_URL, 3) == f"{BASE_URL}&page=3"
    assert run.page_url("https://www.example.com/search", 2) == "https://www.example.com/search?page=2"


def test_asset_naming() -> None:
    assert run.product_role("Azure AI Foundry") == "product_azure_ai_foundry"
    assert run.product_role("Microsoft 365 Copilot") == "product_microsoft_365_copilot"
    assert run.asset_filename("p2_3", "logo", "png") == "p2_3_logo.png"


def test_two_pages_end_to_end(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {
            BASE_URL: listing_page(_page_cards(1, 3), pagination_markup(announcement="Page 1 of 2")),
            f"{BASE_URL}&page=2": listing_page(
                _page_cards(2, 3), pagination_markup(announcement="Page 2 of 2")
            ),
        }
    )
    fetch = FakeFetch()

    dataset = _run(tmp_path, renderer, fetch=fetch)

    assert renderer.calls == [BASE_URL, f"{BASE_URL}&page=2"]
    metadata = dataset["metadata"]
    assert metadata["totalPages"] == 2
    assert metadata["totalStories"] == 6
    assert metadata["baseUrl"] == BASE_URL
    assert metadata["storiesPerPage"] == {"1": 3, "2": 3}

    stories = dataset["stories"]
    assert [s["globalId"] for s in stories] == ["p1_1", "p1_2", "p1_3", "p2_1", "p2_2", "p2_3"]
    first = stories[0]
    assert first["company"]["logoLocal"] == "media/p1_1_logo.png"
    assert first["media"]["headerImageLocal"] == "media/p1_1_header.jpg"
    assert [p["iconLocal"] for p in first["microsoftProducts"]] == [
        "media/p1_1_product_azure.svg",
        "media/p1_1_product_microsoft_365.png",
    ]
    assert (tmp_path / "media" / "p2_3_product_microsoft_365.png").is_file()
    assert len(fetch.calls) == 6 * 4

    written = json.loads((tmp_path / config.OUTPUT_FILENAME).read_text(encoding="utf-8"))
    assert written == dataset
    assert list(tmp_path.glob("runs/run_*.json"))


def test_zero_card_page_stops_and_still_counts(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {BASE_URL: listing_page(_page_cards(1, 3), pagination_markup(next_control="enabled"))}
    )

    dataset = _run(tmp_path, renderer)

    assert renderer.calls == [BASE_URL, f"{BASE_URL}&page=2"]
    assert dataset["metadata"]["totalPages"] == 2
    assert dataset["metadata"]["totalStories"] == 3
    assert dataset["metadata"]["storiesPerPage"] == {"1": 3}


def test_single_page_signal_stops_after_first_page(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {
            BASE_URL: listing_page(
                _page_cards(1, 2), pagination_markup(hidden=True, shown=2, total=2)
            )
        }
    )

    dataset = _run(tmp_path, renderer)

    assert renderer.calls == [BASE_URL]
    assert dataset["metadata"]["totalPages"] == 1


def test_page_cap_bounds_the_loop(tmp_path: Path) -> None:
    always_more = pagination_markup(next_control="enabled")
    renderer = FakeRenderer(
        {run.page_url(BASE_URL, n): listing_page(_page_cards(n, 1), always_more) for n in range(1, 6)}
    )

    dataset = _run(tmp_path, renderer, max_pages=3, skip_downloads=True)

    assert len(renderer.calls) == 3
    assert dataset["metadata"]["totalPages"] == 3
    assert dataset["metadata"]["storiesPerPage"] == {"1": 1, "2": 1, "3": 1}


def test_page_of_only_non_story_tiles_keeps_going(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {
            BASE_URL: listing_page([promo_card()], pagination_markup(announcement="Page 1 of 2")),
            f"{BASE_URL}&page=2": listing_page(
                _page_cards(2, 1), pagination_markup(announcement="Page 2 of 2")
            ),
        }
    )

    dataset = _run(tmp_path, renderer, skip_downloads=True)

    assert dataset["metadata"]["totalPages"] == 2
    assert dataset["metadata"]["storiesPerPage"] == {"2": 1}
    assert [s["globalId"] for s in dataset["stories"]] == ["p2_1"]


def test_failed_downloads_leave_local_paths_unset(tmp_path: Path) -> None:
    cards = _page_cards(1, 2)
    renderer = FakeRenderer({BASE_URL: listing_page(cards, pagination_markup(announcement="Page 1 of 1"))})
    failing = {f"{IMG_HOST}/logo-1-1.png", f"{IMG_HOST}/header-1-1.jpg", f"{IMG_HOST}/azure.svg",
               f"{IMG_HOST}/m365.png", f"{IMG_HOST}/logo-1-2.png", f"{IMG_HOST}/header-1-2.jpg"}

    dataset = _run(tmp_path, renderer, fetch=FakeFetch(failing))

    assert dataset["metadata"]["totalStories"] == 2
    for story in dataset["stories"]:
        assert "logoLocal" not in story["company"]
        assert "headerImageLocal" not in story["media"]
        assert all("iconLocal" not in p for p in story["microsoftProducts"])
        assert story["company"]["logo"].startswith(IMG_HOST)
    assert (tmp_path / config.OUTPUT_FILENAME).is_file()


def test_unexpected_fetch_error_is_contained(tmp_path: Path) -> None:
    renderer = FakeRenderer({BASE_URL: listing_page(_page_cards(1, 1), pagination_markup(announcement="Page 1 of 1"))})

    def exploding_fetch(url, dest, **kwargs):  # noqa: ANN001, ANN003, ANN202
        raise RuntimeError("disk on fire")

    dataset = _run(tmp_path, renderer, fetch=exploding_fetch)

    assert dataset["metadata"]["totalStories"] == 1
    assert "logoLocal" not in dataset["stories"][0]["company"]


def test_content_timeout_aborts_without_writing(tmp_path: Path) -> None:
    page_two = f"{BASE_URL}&page=2"
    renderer = FakeRenderer(
        {
            BASE_URL: listing_page(_page_cards(1, 3), pagination_markup(announcement="Page 1 of 2")),
            page_two: ContentTimeoutError(page_two, "Page content did not render within 60s"),
        }
    )
    fetch = FakeFetch()

    with pytest.raises(ContentTimeoutError) as excinfo:
        _run(tmp_path, renderer, fetch=fetch)

    assert excinfo.value.error_code == ErrorCode.CONTENT_TIMEOUT
    assert excinfo.value.url == page_two
    assert not (tmp_path / config.OUTPUT_FILENAME).exists()
    assert fetch.calls == []


def test_missing_base_url_fails_before_rendering(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(config, "BASE_URL", "")
    renderer = FakeRenderer({})

    with pytest.raises(ConfigError) as excinfo:
        run.run_extraction(renderer=renderer, data_dir=tmp_path, entrypoint="tests")

    assert excinfo.value.error_code == ErrorCode.MISSING_BASE_URL
    assert renderer.calls == []
    assert not (tmp_path / config.OUTPUT_FILENAME).exists()


def test_base_url_taken_from_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "BASE_URL", BASE_URL)
    renderer = FakeRenderer({})

    dataset = run.run_extraction(
        renderer=renderer, data_dir=tmp_path, inter_page_delay=0, entrypoint="tests"
    )

    assert renderer.calls == [BASE_URL]
    assert dataset["metadata"]["totalPages"] == 1
    assert dataset["stories"] == []


def test_duplicate_sanitized_product_names_share_one_file(tmp_path: Path) -> None:
    card = story_card(
        products=(
            ("Azure AI", f"{IMG_HOST}/azure-ai.svg"),
            ("Azure-AI", f"{IMG_HOST}/azure-ai-alt.svg"),
            ("Power BI", "data:image/png;base64,AAAA"),
        ),
    )
    renderer = FakeRenderer({BASE_URL: listing_page([card], pagination_markup(announcement="Page 1 of 1"))})
    fetch = FakeFetch()

    dataset = _run(tmp_path, renderer, fetch=fetch)

    product_calls = [call for call in fetch.calls if "_product_" in call[1]]
    assert [call[1] for call in product_calls] == [
        "p1_1_product_azure_ai.svg",
        "p1_1_product_power_bi.jpg",
    ]
    products = dataset["stories"][0]["microsoftProducts"]
    assert products[0]["iconLocal"] == "media/p1_1_product_azure_ai.svg"
    assert products[1]["iconLocal"] == "media/p1_1_product_azure_ai.svg"
    assert "iconLocal" not in products[2]


def test_extensionless_url_requests_suffix_inference(tmp_path: Path) -> None:
    card = story_card(logo=f"{IMG_HOST}/render?id=7", header=None, products=())
    renderer = FakeRenderer({BASE_URL: listing_page([card], pagination_markup(announcement="Page 1 of 1"))})
    fetch = FakeFetch()

    _run(tmp_path, renderer, fetch=fetch)

    assert fetch.calls == [(f"{IMG_HOST}/render?id=7", "p1_1_logo.jpg", True, "p1_1:logo")]


def test_parallel_downloads_keep_record_mapping(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {BASE_URL: listing_page(_page_cards(1, 4), pagination_markup(announcement="Page 1 of 1"))}
    )

    dataset = _run(tmp_path, renderer, max_parallel_downloads=4)

    for story in dataset["stories"]:
        gid = story["globalId"]
        assert story["company"]["logoLocal"] == f"media/{gid}_logo.png"
        assert story["media"]["headerImageLocal"] == f"media/{gid}_header.jpg"


def test_download_story_assets_records_telemetry(tmp_path: Path) -> None:
    from customer_stories.scraper.extractor import extract_stories
    from customer_stories.scraper.telemetry import RunTelemetry

    stories = extract_stories(listing_page(_page_cards(1, 1)), 1)
    telemetry = RunTelemetry(BASE_URL, runs_dir=tmp_path / "runs")
    fetch = FakeFetch({f"{IMG_HOST}/azure.svg"})

    counts = run.download_story_assets(
        stories, tmp_path / "media", fetch=fetch, session=object(), telemetry=telemetry
    )

    assert counts == {"downloaded": 3, "failed": 1, "skipped": 0}
    assert telemetry.count("downloaded") == 3
    assert telemetry.fail_reasons == {ErrorCode.HTTP_404: 1}
    assert stories[0].products[0].icon_local is None
    assert stories[0].products[1].icon_local == "media/p1_1_product_microsoft_365.png"


def test_cli_reports_config_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "BASE_URL", "")

    assert run._cli_entrypoint(["--data-dir", str(tmp_path)]) == 1


def test_cli_passes_arguments(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: dict = {}

    def fake_run_extraction(**kwargs):  # noqa: ANN003, ANN202
        seen.update(kwargs)
        return {"metadata": {"totalStories": 0}, "stories": []}

    monkeypatch.setattr(run, "run_extraction", fake_run_extraction)

    code = run._cli_entrypoint(
        [
            "--base-url",
            BASE_URL,
            "--max-pages",
            "4",
            "--data-dir",
            str(tmp_path),
            "--skip-downloads",
            "--headed",
        ]
    )

    assert code == 0
    assert seen["base_url"] == BASE_URL
    assert seen["max_pages"] == 4
    assert seen["data_dir"] == tmp_path
    assert seen["skip_downloads"] is True
    assert seen["headless"] is False
    assert seen["entrypoint"] == "cli"


def test_run_summary_records_stop_decision_and_log_file(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {
            BASE_URL: listing_page(_page_cards(1, 1), pagination_markup(announcement="Page 1 of 2")),
            f"{BASE_URL}&page=2": listing_page(
                _page_cards(2, 1), pagination_markup(announcement="Page 2 of 2")
            ),
        }
    )

    _run(tmp_path, renderer, skip_downloads=True)

    (run_file,) = list(tmp_path.glob("runs/run_*.json"))
    summary = json.loads(run_file.read_text(encoding="utf-8"))
    assert summary["stop_reason"] == "announcement"
    assert summary["last_decision"] == {
        "should_continue": False,
        "reason": "announcement",
        "current_page": 2,
        "total_pages": 2,
    }
    log_file = Path(summary["log_file"])
    assert log_file.parent == tmp_path / "logs"
    assert log_file.is_file()


def test_run_summary_without_decision_on_empty_first_page(tmp_path: Path) -> None:
    _run(tmp_path, FakeRenderer({}), skip_downloads=True)

    (run_file,) = list(tmp_path.glob("runs/run_*.json"))
    summary = json.loads(run_file.read_text(encoding="utf-8"))
    assert summary["stop_reason"] == "no_cards"
    assert summary["last_decision"] is None


def test_cli_reports_browser_launch_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from playwright.sync_api import Error as PWError

    from customer_stories.scraper import renderer

    class _Chromium:
        def launch(self, headless=True):  # noqa: ANN001, ANN202
            raise PWError("Executable doesn't exist")

    class _Playwright:
        chromium = _Chromium()

        def stop(self) -> None:
            return None

    class _Starter:
        def start(self) -> _Playwright:
            return _Playwright()

    monkeypatch.setattr(renderer, "sync_playwright", lambda: _Starter())
    monkeypatch.setattr(renderer, "log_line", lambda msg: None)

    code = run._cli_entrypoint(["--base-url", BASE_URL, "--data-dir", str(tmp_path)])

    assert code == 1
    assert not (tmp_path / config.OUTPUT_FILENAME).exists()
