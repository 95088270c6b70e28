"""Data models for the news automation pipeline."""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Sentiment = Literal["positive", "negative", "neutral"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RawItem(BaseModel):
    """A news item as fetched from a source, before any scoring."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    source: str
    url: str
    image_url: Optional[str] = None
    fetched_at: datetime = Field(default_factory=utc_now)
    published_at: Optional[datetime] = Field(
        None, description="Feed publication timestamp; recency falls back to fetched_at."
    )

    @property
    def timestamp(self) -> datetime:
        """The moment recency is measured from."""
        return self.published_at or self.fetched_at


class ProcessedItem(RawItem):
    """A raw item annotated with category, sentiment, relevance and keywords."""

    category: str
    relevance_score: float = Field(..., ge=0, le=100)
    sentiment: Sentiment = "neutral"
    extracted_keywords: List[str] = Field(default_factory=list)


class GeneratedArticle(BaseModel):
    """Article synthesized from one or more processed items."""

    title: str
    excerpt: str
    content: str
    category: str
    author: str
    image_url: Optional[str] = None
    source_urls: List[str] = Field(default_factory=list)


class StoredArticle(GeneratedArticle):
    """Article as persisted by an article store."""

    id: int
    is_featured: bool = False
    published_at: datetime = Field(default_factory=utc_now)
    views: int = 0
