from __future__ import annotations

"""Selectors and label hints for the customer stories listing markup."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CustomerStorySelectors:
    """CSS selectors making up the listing page's markup contract.

    Cards share their class with promotional tiles, so a card only counts as a
    story when both ``title`` and ``story_link`` resolve inside it. The
    pagination widget is not always trustworthy on its own; the selectors for
    every signal the oracle reads are kept here together.
    """

    content_anchor: str = ".dynamic-content__content"
    card: str = ".card--style-customer-story"
    title: str = ".block-feature__title"
    industry: str = ".block-feature__eyebrow .block-feature__label"
    industry_prefix: str = "Industry: "
    story_link: str = 'a[href*="/customers/story/"]'
    logo: str = ".media__slot img"
    header_image: str = ".card__media .ocr-img img"
    product: str = ".related-products__product"
    product_label: str = ".label"
    product_icon: str = "img"

    pagination_container: str = '[data-mount="oc-pagination"]'
    pagination_hidden_class: str = "d-none"
    show_value: str = ".dynamic-content__show-value"
    show_total: str = ".dynamic-content__show-total"
    announcement: str = "#pagination-announcement"
    next_control: str = "#right-arrow"
    next_disabled_class: str = "disabled"


CUSTOMER_STORY_SELECTORS = CustomerStorySelectors()

__all__ = [
    "CustomerStorySelectors",
    "CUSTOMER_STORY_SELECTORS",
]
