"""Fetch raw items from the configured news feeds."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import feedparser
import httpx
from bs4 import BeautifulSoup

from .config import Settings, SourceConfig
from .models import RawItem, utc_now

logger = logging.getLogger(__name__)

FetchFn = Callable[[SourceConfig], List[RawItem]]

USER_AGENT = "news-automation/0.1 (+https://github.com/news-automation)"
_WHITESPACE = re.compile(r"\s+")


def html_to_text(markup: str) -> str:
    """Reduce an HTML fragment to plain text with collapsed whitespace."""
    if not markup:
        return ""
    text = BeautifulSoup(markup, "html.parser").get_text(" ", strip=True)
    return _WHITESPACE.sub(" ", text).strip()


def _entry_published_at(entry: Dict[str, Any]) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    # feedparser normalizes struct_time values to UTC.
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def _entry_content(entry: Dict[str, Any]) -> str:
    blocks = entry.get("content") or []
    for block in blocks:
        value = block.get("value")
        if value:
            return html_to_text(value)
    return html_to_text(entry.get("summary") or entry.get("description") or "")


def _entry_image(entry: Dict[str, Any]) -> Optional[str]:
    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            url = media.get("url")
            if url:
                return url
    for enclosure in entry.get("enclosures") or []:
        if str(enclosure.get("type", "")).startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    return None


def parse_feed(text: str, source: SourceConfig, limit: int) -> List[RawItem]:
    """
    Parse RSS/Atom text into raw items for `source`.

    At most `limit` entries are read, in feed order. Entries without a title or
    link are skipped. Raises ValueError when the document is not a feed at all.
    """
    feed = feedparser.parse(text)
    if feed.bozo and not feed.entries:
        raise ValueError(f"{source.name}: unreadable feed ({feed.get('bozo_exception')})")

    fetched_at = utc_now()
    items: List[RawItem] = []
    for entry in feed.entries[:limit]:
        title = html_to_text(entry.get("title", ""))
        link = entry.get("link") or ""
        if not title or not link:
            logger.debug("Skipping entry without title/link from %s", source.name)
            continue
        items.append(
            RawItem(
                title=title,
                content=_entry_content(entry),
                source=source.name,
                url=link,
                image_url=_entry_image(entry),
                fetched_at=fetched_at,
                published_at=_entry_published_at(entry),
            )
        )
    return items


class Crawler:
    """Fetches every configured source in parallel; failing sources are skipped."""

    def __init__(
        self,
        *,
        max_items_per_source: int = 5,
        timeout: float = 5.0,
        max_workers: int = 4,
        fetch_fn: Optional[FetchFn] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.max_items_per_source = max_items_per_source
        self.timeout = timeout
        self.max_workers = max_workers
        self._fetch_fn = fetch_fn
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "Crawler":
        return cls(
            max_items_per_source=settings.max_items_per_source,
            timeout=settings.http_timeout_seconds,
            max_workers=settings.fetch_workers,
            **kwargs,
        )

    def _download(self, url: str) -> str:
        headers = {"User-Agent": USER_AGENT}
        if self._client is not None:
            response = self._client.get(url, headers=headers, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                response = client.get(url, headers=headers)
        response.raise_for_status()
        return response.text

    def fetch_source(self, source: SourceConfig) -> List[RawItem]:
        """Fetch one source; errors propagate to the caller."""
        if self._fetch_fn is not None:
            items = list(self._fetch_fn(source))
        else:
            items = parse_feed(self._download(str(source.url)), source, self.max_items_per_source)
        return items[: self.max_items_per_source]

    def fetch_all(self, sources: Sequence[SourceConfig]) -> List[RawItem]:
        """
        Fetch all sources and return their items in configured source order.

        A source that raises (network error, timeout, bad feed) is logged and
        contributes nothing; the remaining sources are unaffected.
        """
        if not sources:
            return []

        per_source: List[List[RawItem]] = [[] for _ in sources]
        worker_count = max(1, min(self.max_workers, len(sources)))
        with ThreadPoolExecutor(max_workers=worker_count) as executor:
            future_map = {
                executor.submit(self.fetch_source, source): idx
                for idx, source in enumerate(sources)
            }
            for future in as_completed(future_map):
                idx = future_map[future]
                source = sources[idx]
                try:
                    per_source[idx] = future.result()
                except Exception as exc:
                    logger.warning("Fetching %s (%s) failed: %s", source.name, source.url, exc)
                    continue
                logger.info("Fetched %d items from %s", len(per_source[idx]), source.name)

        return [item for items in per_source for item in items]
