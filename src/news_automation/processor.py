"""Keyword heuristics that turn raw items into scored, categorized items.

Nothing here is a model: keyword frequency, trigger-word counting and small
fixed bonuses. The functions are pure so they can be checked in isolation;
`Processor` binds them to one configuration.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections import Counter
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from .lexicons import (
    CATEGORY_KEYWORDS,
    HIGH_PRIORITY_CATEGORIES,
    NEGATIVE_WORDS,
    POSITIVE_WORDS,
    STOP_WORDS,
    TRUSTED_SOURCES,
)
from .models import ProcessedItem, RawItem, Sentiment

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
BASE_RELEVANCE = 50
FRESH_BONUS = 20  # under 6 hours old
RECENT_BONUS = 10  # under 24 hours old
STALE_PENALTY = 10  # older than 72 hours
TRUSTED_SOURCE_BONUS = 10
PRIORITY_CATEGORY_BONUS = 5

# Anything that is neither a letter, a digit nor whitespace ("_" counts as \w).
_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation (Unicode-aware) and collapse whitespace."""
    text = unicodedata.normalize("NFC", text or "").lower()
    text = _NON_WORD.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


@lru_cache(maxsize=None)
def _term_pattern(term: str) -> re.Pattern[str]:
    # Word-ish boundaries that also work for multi-word and accented terms.
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)")


def count_occurrences(term: str, text: str) -> int:
    """Count word-bounded occurrences of a lowercase term in lowercase text."""
    return len(_term_pattern(term).findall(text))


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Return the most frequent meaningful tokens of `text`.

    Tokens of length <= 2 and stop words are dropped. Ordering is by count,
    descending; equal counts keep the order in which the words first appeared.
    """
    tokens = [
        token
        for token in normalize_text(text).split(" ")
        if len(token) > 2 and token not in STOP_WORDS
    ]
    # Counter keeps insertion order and most_common sorts stably.
    return [word for word, _ in Counter(tokens).most_common(limit)]


def category_scores(
    title: str,
    content: str,
    keywords: Sequence[str],
    categories: Dict[str, Tuple[str, ...]] = CATEGORY_KEYWORDS,
) -> Dict[str, int]:
    """Score each category by trigger occurrences; title hits count double."""
    title_text = unicodedata.normalize("NFC", title or "").lower()
    body_text = " ".join(
        [unicodedata.normalize("NFC", content or "").lower(), " ".join(keywords)]
    )
    scores: Dict[str, int] = {}
    for category, triggers in categories.items():
        scores[category] = sum(
            count_occurrences(trigger, body_text) + 2 * count_occurrences(trigger, title_text)
            for trigger in triggers
        )
    return scores


def detect_category(
    title: str,
    content: str,
    keywords: Sequence[str],
    default: str = "general",
    categories: Dict[str, Tuple[str, ...]] = CATEGORY_KEYWORDS,
) -> str:
    """Pick the strictly highest-scoring category, or `default` when nothing matched."""
    best_category = default
    best_score = 0
    for category, score in category_scores(title, content, keywords, categories).items():
        if score > best_score:
            best_category = category
            best_score = score
    return best_category


def sentiment_counts(title: str, content: str) -> Tuple[int, int]:
    """Return weighted (positive, negative) lexicon hits; title hits weigh double."""
    title_text = unicodedata.normalize("NFC", title or "").lower()
    body_text = unicodedata.normalize("NFC", content or "").lower()

    def _weighted(words: Iterable[str]) -> int:
        return sum(
            count_occurrences(word, body_text) + 2 * count_occurrences(word, title_text)
            for word in words
        )

    return _weighted(POSITIVE_WORDS), _weighted(NEGATIVE_WORDS)


def analyze_sentiment(title: str, content: str, margin: int = 3) -> Sentiment:
    """Three-way classification: one side must lead the other by more than `margin`."""
    positive, negative = sentiment_counts(title, content)
    if positive > negative + margin:
        return "positive"
    if negative > positive + margin:
        return "negative"
    return "neutral"


def _as_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def is_trusted_source(source: str, trusted_sources: Iterable[str]) -> bool:
    """Case-insensitive substring match in either direction against the allow-list."""
    name = (source or "").strip().lower()
    if not name:
        return False
    for trusted in trusted_sources:
        candidate = trusted.strip().lower()
        if candidate and (candidate in name or name in candidate):
            return True
    return False


def relevance_score(
    item: RawItem,
    category: str,
    *,
    now: datetime | None = None,
    trusted_sources: Iterable[str] = TRUSTED_SOURCES,
    high_priority_categories: Iterable[str] = HIGH_PRIORITY_CATEGORIES,
) -> float:
    """
    Heuristic 0-100 relevance.

    Base 50, +20 when under 6h old, +10 under 24h, -10 beyond 72h, +10 for a
    trusted source, +5 for a high-priority category. Timestamps in the future
    count as fresh.
    """
    current = _as_aware(now or datetime.now(timezone.utc))
    age = current - _as_aware(item.timestamp)

    score = BASE_RELEVANCE
    if age < timedelta(hours=6):
        score += FRESH_BONUS
    elif age < timedelta(hours=24):
        score += RECENT_BONUS
    elif age > timedelta(hours=72):
        score -= STALE_PENALTY

    if is_trusted_source(item.source, trusted_sources):
        score += TRUSTED_SOURCE_BONUS

    priority = {c.lower() for c in high_priority_categories}
    if category.lower() in priority:
        score += PRIORITY_CATEGORY_BONUS

    return float(max(0, min(100, score)))


# --- Deduplication ------------------------------------------------------------


def title_fingerprint(title: str) -> str:
    """Normalized title used for duplicate detection."""
    return normalize_text(title)


def jaccard_similarity(first: str, second: str) -> float:
    """Token-set Jaccard similarity of two fingerprints (0 when both are empty)."""
    tokens_a = set(first.split())
    tokens_b = set(second.split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def _same_story(fp_a: str, fp_b: str, threshold: float) -> bool:
    return fp_a == fp_b or jaccard_similarity(fp_a, fp_b) >= threshold


def is_duplicate_title(first: str, second: str, threshold: float = 0.8) -> bool:
    return _same_story(title_fingerprint(first), title_fingerprint(second), threshold)


def deduplicate(
    items: Sequence[ProcessedItem],
    *,
    threshold: float = 0.8,
    existing: Iterable[RawItem] = (),
) -> List[ProcessedItem]:
    """
    Drop near-duplicate titles, keeping the first occurrence.

    Items in `existing` (for example, items already queued) seed the kept set
    and are never returned themselves. Pairwise comparison is quadratic, which
    is fine for the handful of items one crawl produces.
    """
    kept_fingerprints: List[str] = [title_fingerprint(item.title) for item in existing]
    unique: List[ProcessedItem] = []
    for item in items:
        fingerprint = title_fingerprint(item.title)
        if any(_same_story(fingerprint, seen, threshold) for seen in kept_fingerprints):
            logger.debug("Duplicate item skipped: %s", item.title)
            continue
        kept_fingerprints.append(fingerprint)
        unique.append(item)
    return unique


# --- Processor ----------------------------------------------------------------


class Processor:
    """Applies the heuristics above with one deployment's configuration."""

    def __init__(
        self,
        *,
        default_category: str = "general",
        trusted_sources: Iterable[str] = TRUSTED_SOURCES,
        high_priority_categories: Iterable[str] = HIGH_PRIORITY_CATEGORIES,
        sentiment_margin: int = 3,
        duplicate_threshold: float = 0.8,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.default_category = default_category
        self.trusted_sources = list(trusted_sources)
        self.high_priority_categories = list(high_priority_categories)
        self.sentiment_margin = sentiment_margin
        self.duplicate_threshold = duplicate_threshold
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "Processor":
        return cls(
            default_category=settings.default_category,
            trusted_sources=settings.trusted_source_names(),
            high_priority_categories=settings.high_priority_categories,
            sentiment_margin=settings.sentiment_margin,
            duplicate_threshold=settings.duplicate_threshold,
            **kwargs,
        )

    def process(self, item: RawItem) -> ProcessedItem:
        keywords = extract_keywords(f"{item.title} {item.content}")
        category = detect_category(
            item.title, item.content, keywords, default=self.default_category
        )
        sentiment = analyze_sentiment(item.title, item.content, margin=self.sentiment_margin)
        score = relevance_score(
            item,
            category,
            now=self._now(),
            trusted_sources=self.trusted_sources,
            high_priority_categories=self.high_priority_categories,
        )
        return ProcessedItem(
            **item.model_dump(include=set(RawItem.model_fields)),
            category=category,
            relevance_score=score,
            sentiment=sentiment,
            extracted_keywords=keywords,
        )

    def process_all(self, items: Iterable[RawItem]) -> List[ProcessedItem]:
        """Process every item; one that fails is logged and left out."""
        processed: List[ProcessedItem] = []
        for item in items:
            try:
                processed.append(self.process(item))
            except Exception as exc:
                logger.error("Processing failed for %r: %s", getattr(item, "title", item), exc)
        return processed

    def deduplicate(
        self, items: Sequence[ProcessedItem], existing: Iterable[RawItem] = ()
    ) -> List[ProcessedItem]:
        return deduplicate(items, threshold=self.duplicate_threshold, existing=existing)
