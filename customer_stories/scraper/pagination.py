"""Pagination continuation decisions for the listing pages.

No single pagination signal on the listing site can be trusted across every
markup variant: the widget is sometimes present but hidden, sometimes absent,
and sometimes stale. The raw signals are read once into a
:class:`PaginationState`, then a fixed sequence of signal functions is
evaluated; the first conclusive one decides. The orchestrator's zero-card stop
and page cap back this up.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from bs4 import BeautifulSoup

from .extractor import parse_document
from .selectors import CUSTOMER_STORY_SELECTORS, CustomerStorySelectors

ANNOUNCEMENT_PATTERN = re.compile(r"Page (\d+) of (\d+)")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class PaginationReason(str, Enum):
    SINGLE_PAGE = "pagination hidden and all results shown"
    ANNOUNCEMENT = "pagination announcement"
    NEXT_CONTROL = "next button state"
    NO_SIGNAL = "no conclusive pagination signal"


@dataclass(frozen=True)
class PaginationState:
    """Raw pagination signals read from one rendered page."""

    container_present: bool = False
    container_hidden: bool = False
    shown_count: Optional[int] = None
    total_count: Optional[int] = None
    announcement_text: str = ""
    next_control_present: bool = False
    next_control_disabled: bool = False

    @property
    def showing(self) -> str:
        return f"{self.shown_count or 0} of {self.total_count or 0}"


@dataclass(frozen=True)
class PaginationDecision:
    should_continue: bool
    reason: PaginationReason
    current_page: Optional[int] = None
    total_pages: Optional[int] = None


Signal = Callable[[PaginationState], Optional[PaginationDecision]]


def _parse_leading_int(text: str) -> Optional[int]:
    match = _LEADING_INT.match(text or "")
    if not match:
        return None
    return int(match.group(1))


def _has_class(node, class_name: str) -> bool:
    classes = node.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return class_name in classes


def read_pagination_state(
    document: "str | BeautifulSoup",
    *,
    selectors: CustomerStorySelectors = CUSTOMER_STORY_SELECTORS,
) -> PaginationState:
    """Collect the pagination signals from rendered HTML or a parsed tree."""

    soup = parse_document(document)

    container = soup.select_one(selectors.pagination_container)
    show_value = soup.select_one(selectors.show_value)
    show_total = soup.select_one(selectors.show_total)
    announcement = soup.select_one(selectors.announcement)
    next_control = soup.select_one(selectors.next_control)

    next_disabled = False
    if next_control is not None:
        next_disabled = (
            _has_class(next_control, selectors.next_disabled_class)
            or str(next_control.get("aria-disabled") or "").strip().lower() == "true"
        )

    return PaginationState(
        container_present=container is not None,
        container_hidden=(
            container is not None
            and _has_class(container, selectors.pagination_hidden_class)
        ),
        shown_count=_parse_leading_int(show_value.get_text()) if show_value is not None else None,
        total_count=_parse_leading_int(show_total.get_text()) if show_total is not None else None,
        announcement_text=announcement.get_text() if announcement is not None else "",
        next_control_present=next_control is not None,
        next_control_disabled=next_disabled,
    )


def hidden_pagination_signal(state: PaginationState) -> Optional[PaginationDecision]:
    """Hidden widget plus every result already shown means a single page."""

    if not state.container_hidden:
        return None
    if state.shown_count is None or state.total_count is None:
        return None
    if state.total_count > 0 and state.shown_count == state.total_count:
        return PaginationDecision(
            should_continue=False,
            reason=PaginationReason.SINGLE_PAGE,
            current_page=1,
            total_pages=1,
        )
    return None


def announcement_signal(state: PaginationState) -> Optional[PaginationDecision]:
    """Parse the screen-reader ``Page X of Y`` announcement."""

    match = ANNOUNCEMENT_PATTERN.search(state.announcement_text or "")
    if not match:
        return None
    current_page = int(match.group(1))
    total_pages = int(match.group(2))
    return PaginationDecision(
        should_continue=current_page < total_pages,
        reason=PaginationReason.ANNOUNCEMENT,
        current_page=current_page,
        total_pages=total_pages,
    )


def next_control_signal(state: PaginationState) -> Optional[PaginationDecision]:
    if not state.next_control_present:
        return None
    return PaginationDecision(
        should_continue=not state.next_control_disabled,
        reason=PaginationReason.NEXT_CONTROL,
    )


SIGNALS: Sequence[Signal] = (
    hidden_pagination_signal,
    announcement_signal,
    next_control_signal,
)


def decide_continuation(
    state: PaginationState, *, signals: Sequence[Signal] = SIGNALS
) -> PaginationDecision:
    """Return the first conclusive decision; continue when none is conclusive."""

    for signal in signals:
        decision = signal(state)
        if decision is not None:
            return decision
    return PaginationDecision(should_continue=True, reason=PaginationReason.NO_SIGNAL)


def evaluate_page(
    document: "str | BeautifulSoup",
    *,
    selectors: CustomerStorySelectors = CUSTOMER_STORY_SELECTORS,
) -> tuple[PaginationState, PaginationDecision]:
    state = read_pagination_state(document, selectors=selectors)
    return state, decide_continuation(state)


__all__ = [
    "PaginationReason",
    "PaginationState",
    "PaginationDecision",
    "read_pagination_state",
    "hidden_pagination_signal",
    "announcement_signal",
    "next_control_signal",
    "SIGNALS",
    "decide_continuation",
    "evaluate_page",
]
