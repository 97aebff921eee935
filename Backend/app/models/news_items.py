from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ArticleItem:
    """
    Internal article representation used between extraction, sponsor
    classification and image enrichment.

    `sponsored` starts as the upstream's explicit flag (if any) and is set by
    the classifier; it never reaches the public payload.
    """

    id: str
    title: str
    url: str
    source: str
    image: Optional[str] = None
    sponsored: bool = False
    explicit_sponsor: bool = False


@dataclass
class NewsSection:
    title: str
    items: List[ArticleItem] = field(default_factory=list)
