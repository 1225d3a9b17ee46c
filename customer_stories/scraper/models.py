"""Records produced by the extraction pipeline and their persisted JSON form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def global_id_for(page: int, position: int) -> str:
    """Return the run-stable identifier ``p{page}_{position}``."""

    return f"p{page}_{position}"


@dataclass
class ProductRef:
    """A named product integration listed on a story card."""

    name: str
    icon: str = ""
    icon_alt: str = ""
    icon_local: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "icon": self.icon,
            "iconAlt": self.icon_alt,
        }
        if self.icon_local is not None:
            data["iconLocal"] = self.icon_local
        return data


@dataclass
class StoryRecord:
    """One customer story card found on a listing page.

    ``*_local`` fields stay ``None`` until the matching asset has been
    downloaded; ``None`` is omitted from the JSON form rather than written.
    """

    page: int
    position_on_page: int
    title: str
    story_url: str
    extracted_at: str
    industry: str = ""
    logo: str = ""
    logo_local: Optional[str] = None
    header_image: str = ""
    header_image_alt: str = ""
    header_image_local: Optional[str] = None
    products: List[ProductRef] = field(default_factory=list)

    @property
    def global_id(self) -> str:
        return global_id_for(self.page, self.position_on_page)

    def to_dict(self) -> Dict[str, Any]:
        company: Dict[str, Any] = {"logo": self.logo}
        if self.logo_local is not None:
            company["logoLocal"] = self.logo_local

        media: Dict[str, Any] = {
            "headerImage": self.header_image,
            "headerImageAlt": self.header_image_alt,
        }
        if self.header_image_local is not None:
            media["headerImageLocal"] = self.header_image_local

        return {
            "page": self.page,
            "positionOnPage": self.position_on_page,
            "globalId": self.global_id,
            "title": self.title,
            "industry": self.industry,
            "storyUrl": self.story_url,
            "company": company,
            "media": media,
            "microsoftProducts": [product.to_dict() for product in self.products],
            "extractedAt": self.extracted_at,
        }


@dataclass
class RunMetadata:
    """Summary of one extraction run."""

    total_pages: int
    total_stories: int
    extraction_date: str
    base_url: str
    stories_per_page: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPages": self.total_pages,
            "totalStories": self.total_stories,
            "extractionDate": self.extraction_date,
            "baseUrl": self.base_url,
            "storiesPerPage": {
                str(page): count for page, count in sorted(self.stories_per_page.items())
            },
        }


__all__ = ["ProductRef", "StoryRecord", "RunMetadata", "global_id_for"]
