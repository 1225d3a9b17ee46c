"""Assembly and persistence of the extracted dataset."""
from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .models import RunMetadata, StoryRecord
from .utils import save_json_file, utc_now_iso


def stories_per_page(stories: Sequence[StoryRecord]) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for story in stories:
        counts[story.page] = counts.get(story.page, 0) + 1
    return counts


def build_metadata(
    stories: Sequence[StoryRecord],
    *,
    pages_visited: int,
    base_url: str,
    extraction_date: Optional[str] = None,
) -> RunMetadata:
    """Summarise a run from its accumulated records and visited page count."""

    return RunMetadata(
        total_pages=pages_visited,
        total_stories=len(stories),
        extraction_date=extraction_date or utc_now_iso(),
        base_url=base_url,
        stories_per_page=stories_per_page(stories),
    )


def build_dataset(stories: Sequence[StoryRecord], metadata: RunMetadata) -> Dict[str, Any]:
    return {
        "metadata": metadata.to_dict(),
        "stories": [story.to_dict() for story in stories],
    }


def write_dataset(path: Path, dataset: Dict[str, Any]) -> Path:
    """Write the whole dataset in one go, replacing any previous output."""

    path = Path(path)
    save_json_file(path, dataset)
    return path


def summarize_stories(stories: Sequence[StoryRecord]) -> Dict[str, Dict[str, int]]:
    """Count stories per industry and product mentions per product name."""

    industries: Counter[str] = Counter()
    products: Counter[str] = Counter()
    for story in stories:
        if story.industry:
            industries[story.industry] += 1
        for product in story.products:
            products[product.name] += 1
    return {
        "industries": dict(industries.most_common()),
        "products": dict(products.most_common()),
    }


__all__ = [
    "stories_per_page",
    "build_metadata",
    "build_dataset",
    "write_dataset",
    "summarize_stories",
]
