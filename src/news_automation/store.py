"""Article persistence: the narrow store interface plus a JSONL implementation."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Protocol

from .config import Settings
from .models import GeneratedArticle, StoredArticle
from .schema import RecordValidator

logger = logging.getLogger(__name__)

# Stores opened on the same file share one writer lock.
_FILE_LOCKS: Dict[Path, Lock] = {}
_FILE_LOCKS_GUARD = Lock()


def _shared_lock(path: Path) -> Lock:
    with _FILE_LOCKS_GUARD:
        return _FILE_LOCKS.setdefault(path.resolve(), Lock())


class ArticleStore(Protocol):
    def create_article(
        self, article: GeneratedArticle, *, featured: bool = False
    ) -> StoredArticle:
        """Persist `article` and return the stored record."""


class JsonlArticleStore:
    """
    Appends one validated JSON record per article to a JSONL file.

    Ids are sequential per file. When `footer` is set it is appended to every
    article's content before storing.
    """

    def __init__(self, path: Path | str, *, footer: Optional[str] = None) -> None:
        self.path = Path(path)
        self.footer = footer
        self._lock = _shared_lock(self.path)
        self._validator = RecordValidator()

    @classmethod
    def from_settings(cls, settings: Settings) -> "JsonlArticleStore":
        return cls(settings.store_path, footer=settings.referral_footer)

    def _next_id(self) -> int:
        if not self.path.exists():
            return 1
        with self.path.open("r", encoding="utf-8") as handle:
            return sum(1 for line in handle if line.strip()) + 1

    def create_article(
        self, article: GeneratedArticle, *, featured: bool = False
    ) -> StoredArticle:
        content = article.content
        if self.footer:
            content = f"{content}\n{self.footer}"

        with self._lock:
            stored = StoredArticle(
                **article.model_dump(exclude={"content"}),
                content=content,
                id=self._next_id(),
                is_featured=featured,
            )
            record = self._validator.validate(stored.model_dump(mode="json"))
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(record, ensure_ascii=False))
                    handle.write("\n")
            except OSError as exc:
                raise RuntimeError(f"Could not write article to {self.path}: {exc}") from exc

        logger.info("Stored article %d: %s", stored.id, stored.title)
        return stored

    def list_articles(self) -> List[StoredArticle]:
        """Read back every stored article, oldest first."""
        if not self.path.exists():
            return []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        return [StoredArticle.model_validate_json(line) for line in lines if line.strip()]
