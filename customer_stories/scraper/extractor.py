"""HTML extraction of customer story cards from a rendered listing page."""
from __future__ import annotations

from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .logging_utils import _scraper_event
from .models import ProductRef, StoryRecord, global_id_for
from .selectors import CUSTOMER_STORY_SELECTORS, CustomerStorySelectors
from .utils import log_line, utc_now_iso


def parse_document(document: "str | BeautifulSoup") -> BeautifulSoup:
    """Parse rendered page HTML into a queryable tree; parsed trees pass through."""

    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document or "", "html5lib")


def _text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return node.get_text().strip()


def _attr(node: Optional[Tag], name: str) -> str:
    if node is None:
        return ""
    value = node.get(name)
    if not value:
        return ""
    return str(value)


def _extract_products(card: Tag, selectors: CustomerStorySelectors) -> List[ProductRef]:
    products: List[ProductRef] = []
    for element in card.select(selectors.product):
        label = element.select_one(selectors.product_label)
        if label is None:
            continue
        name = _text(label)
        if not name:
            continue
        icon = element.select_one(selectors.product_icon)
        # Repeated product names on one card are kept as listed.
        products.append(
            ProductRef(
                name=name,
                icon=_attr(icon, "src"),
                icon_alt=_attr(icon, "alt"),
            )
        )
    return products


def _extract_card(
    card: Tag,
    *,
    page_number: int,
    position: int,
    selectors: CustomerStorySelectors,
    extracted_at: str,
) -> Optional[StoryRecord]:
    """Build a record from one card, or ``None`` when it is not a story."""

    title_node = card.select_one(selectors.title)
    link_node = card.select_one(selectors.story_link)
    if title_node is None or link_node is None:
        return None

    title = _text(title_node)
    story_url = _attr(link_node, "href")
    if not title or not story_url:
        return None

    industry = _text(card.select_one(selectors.industry))
    if selectors.industry_prefix:
        industry = industry.replace(selectors.industry_prefix, "", 1).strip()

    header = card.select_one(selectors.header_image)

    return StoryRecord(
        page=page_number,
        position_on_page=position,
        title=title,
        story_url=story_url,
        extracted_at=extracted_at,
        industry=industry,
        logo=_attr(card.select_one(selectors.logo), "src"),
        header_image=_attr(header, "src"),
        header_image_alt=_attr(header, "alt"),
        products=_extract_products(card, selectors),
    )


def count_candidates(
    html: "str | BeautifulSoup", *, selectors: CustomerStorySelectors = CUSTOMER_STORY_SELECTORS
) -> int:
    """Return the number of card-like candidates on the page."""

    return len(parse_document(html).select(selectors.card))


def extract_stories(
    html: "str | BeautifulSoup",
    page_number: int,
    *,
    selectors: CustomerStorySelectors = CUSTOMER_STORY_SELECTORS,
    extracted_at: Optional[str] = None,
) -> List[StoryRecord]:
    """Extract story records from a rendered listing page in document order.

    Positions count every candidate card, so a skipped promotional tile still
    occupies its slot and ``globalId`` values stay tied to the page layout.
    Failures local to one card are logged and that card is skipped.
    """

    soup = parse_document(html)
    stamp = extracted_at or utc_now_iso()
    stories: List[StoryRecord] = []

    for index, card in enumerate(soup.select(selectors.card), start=1):
        try:
            record = _extract_card(
                card,
                page_number=page_number,
                position=index,
                selectors=selectors,
                extracted_at=stamp,
            )
        except Exception as exc:  # noqa: BLE001
            log_line(
                f"[EXTRACT] Error extracting story on page {page_number}, position {index}: {exc}"
            )
            _scraper_event(
                "error",
                phase="extract",
                page=page_number,
                position=index,
                error=str(exc),
            )
            continue

        if record is None:
            _scraper_event(
                "extract",
                step="skip_candidate",
                global_id=global_id_for(page_number, index),
                reason="missing_title_or_link",
            )
            continue
        stories.append(record)

    return stories


__all__ = ["parse_document", "count_candidates", "extract_stories"]
