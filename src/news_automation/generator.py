"""Turn processed items into publishable articles."""

from __future__ import annotations

import html
import logging
import re
from collections import Counter
from typing import List, Optional, Sequence

from .config import Settings
from .images import ImageResolver, NullImageResolver
from .lexicons import SENTIMENT_LABELS
from .models import GeneratedArticle, ProcessedItem

logger = logging.getLogger(__name__)

SINGLE_TITLE_LIMIT = 100
ROUNDUP_TITLE_LIMIT = 70
EXCERPT_LIMIT = 160
MAX_SECONDARY_ITEMS = 3

SENTIMENT_VALUES = {"positive": 1, "neutral": 0, "negative": -1}

# (lower bound, wording), checked top to bottom against the average sentiment.
OUTLOOK_WORDING = (
    (0.5, "Coverage across these stories is strongly positive."),
    (0.1, "Coverage across these stories leans positive."),
    (-0.1, "Coverage across these stories is broadly neutral."),
    (-0.5, "Coverage across these stories leans negative."),
)
STRONGLY_NEGATIVE_WORDING = "Coverage across these stories is strongly negative."

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n|\r?\n")


def truncate_title(title: str, limit: int) -> str:
    title = title.strip()
    if len(title) <= limit:
        return title
    return title[: limit - 3].rstrip() + "..."


def make_excerpt(content: str, limit: int = EXCERPT_LIMIT) -> str:
    """
    Shorten `content` for list views.

    Cuts at the last sentence end inside the first `limit` characters when that
    falls past the midpoint; otherwise hard-cuts and appends "...".
    """
    content = content.strip()
    if len(content) <= limit:
        return content
    truncated = content[:limit]
    last_end = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))
    if last_end > limit // 2:
        return truncated[: last_end + 1]
    return truncated.rstrip() + "..."


def _paragraphs(text: str) -> List[str]:
    return [
        f"<p>{html.escape(part.strip())}</p>"
        for part in _PARAGRAPH_BREAK.split(text)
        if part.strip()
    ]


def _attribution(item: ProcessedItem) -> str:
    return (
        f'<p class="source">Source: <a href="{html.escape(item.url, quote=True)}">'
        f"{html.escape(item.source)}</a></p>"
    )


def outlook_sentence(items: Sequence[ProcessedItem]) -> str:
    average = sum(SENTIMENT_VALUES[item.sentiment] for item in items) / len(items)
    for bound, wording in OUTLOOK_WORDING:
        if average > bound:
            return wording
    return STRONGLY_NEGATIVE_WORDING


def batch_category(primary: ProcessedItem, items: Sequence[ProcessedItem]) -> str:
    """Primary's category unless another category holds a strict majority."""
    category, count = Counter(item.category for item in items).most_common(1)[0]
    if count * 2 > len(items):
        return category
    return primary.category


def unique_urls(items: Sequence[ProcessedItem]) -> List[str]:
    seen: List[str] = []
    for item in items:
        if item.url and item.url not in seen:
            seen.append(item.url)
    return seen


class ContentGenerator:
    """
    Builds one `GeneratedArticle` from one or more processed items.

    One item produces a single-story article; several items produce a roundup
    led by the most relevant one.
    """

    def __init__(
        self,
        image_resolver: Optional[ImageResolver] = None,
        *,
        author: str = "AI News Bot",
    ) -> None:
        self.image_resolver = image_resolver or NullImageResolver()
        self.author = author

    @classmethod
    def from_settings(
        cls, settings: Settings, image_resolver: Optional[ImageResolver] = None
    ) -> "ContentGenerator":
        return cls(image_resolver, author=settings.author)

    def generate(self, items: Sequence[ProcessedItem]) -> GeneratedArticle:
        if not items:
            raise ValueError("Cannot generate an article from an empty item list.")

        # sorted() is stable, so equal scores keep their input order.
        ranked = sorted(items, key=lambda item: item.relevance_score, reverse=True)
        primary = ranked[0]
        roundup = len(ranked) > 1

        title = truncate_title(
            primary.title, ROUNDUP_TITLE_LIMIT if roundup else SINGLE_TITLE_LIMIT
        )
        excerpt = make_excerpt(primary.content)
        category = batch_category(primary, ranked)
        if roundup:
            content = self._roundup_body(primary, ranked[1:], category, ranked)
        else:
            content = self._single_body(primary, excerpt)

        image_url = self.image_resolver.get_image_for_article(
            title,
            primary.extracted_keywords,
            [item.image_url for item in ranked],
        )

        logger.debug("Generated %r from %d item(s)", title, len(ranked))
        return GeneratedArticle(
            title=title,
            excerpt=excerpt,
            content=content,
            category=category,
            author=self.author,
            image_url=image_url,
            source_urls=unique_urls(ranked),
        )

    def _single_body(self, item: ProcessedItem, excerpt: str) -> str:
        parts = [f'<p class="lead"><strong>{html.escape(excerpt)}</strong></p>']
        parts.extend(_paragraphs(item.content))
        parts.append("<h2>Analysis</h2>")
        analysis = (
            f"This report from {item.source} carries "
            f"{SENTIMENT_LABELS.get(item.sentiment, item.sentiment)}."
        )
        if item.extracted_keywords:
            analysis += f" Key topics: {', '.join(item.extracted_keywords[:5])}."
        parts.append(f"<p>{html.escape(analysis)}</p>")
        parts.append(_attribution(item))
        return "\n".join(parts)

    def _roundup_body(
        self,
        primary: ProcessedItem,
        secondary: Sequence[ProcessedItem],
        category: str,
        everything: Sequence[ProcessedItem],
    ) -> str:
        parts = [f"<h2>{html.escape(primary.title)}</h2>"]
        parts.extend(_paragraphs(primary.content))
        parts.append(_attribution(primary))

        others = list(secondary[:MAX_SECONDARY_ITEMS])
        if others:
            parts.append(f"<h2>More on {html.escape(category)}</h2>")
            for item in others:
                parts.append(f"<h3>{html.escape(item.title)}</h3>")
                parts.append(f"<p>{html.escape(make_excerpt(item.content))}</p>")
                parts.append(_attribution(item))

        parts.append("<h2>Outlook</h2>")
        parts.append(f"<p>{html.escape(outlook_sentence(everything))}</p>")
        return "\n".join(parts)
