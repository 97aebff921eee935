from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.news_items import ArticleItem, NewsSection


class NewsItem(BaseModel):
    """Public-facing article payload."""

    id: str
    title: str
    url: str
    source: str
    image: Optional[str] = None

    @classmethod
    def from_article(cls, item: ArticleItem) -> "NewsItem":
        return cls(id=item.id, title=item.title, url=item.url, source=item.source, image=item.image)


class NewsSectionPayload(BaseModel):
    title: str
    items: List[NewsItem] = Field(default_factory=list)

    @classmethod
    def from_section(cls, section: NewsSection) -> "NewsSectionPayload":
        return cls(title=section.title, items=[NewsItem.from_article(it) for it in section.items])


class NewsResponse(BaseModel):
    """Response for GET /news."""

    sections: List[NewsSectionPayload]
    error: Optional[str] = None
    # Only populated in "mark" mode: ids of items the classifier flagged.
    sponsored: Optional[List[str]] = Field(
        default=None,
        description="Ids of sponsored items (mark mode only).",
    )


class ResolveImageResponse(BaseModel):
    image: Optional[str] = None
