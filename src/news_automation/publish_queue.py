"""Thread-safe queue of processed items waiting to be published."""

from __future__ import annotations

from threading import Lock
from typing import Iterable, List

from .models import ProcessedItem


class PublishQueue:
    """
    Ordered collection guarded by a single lock.

    Selection never reorders the queue; items leave only through `discard`.
    """

    def __init__(self, items: Iterable[ProcessedItem] = ()) -> None:
        self._lock = Lock()
        self._items: List[ProcessedItem] = list(items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def extend(self, items: Iterable[ProcessedItem]) -> int:
        """Append items in order; return the new queue length."""
        with self._lock:
            self._items.extend(items)
            return len(self._items)

    def snapshot(self) -> List[ProcessedItem]:
        with self._lock:
            return list(self._items)

    def select(self, limit: int, *, prioritize: bool = True) -> List[ProcessedItem]:
        """
        Return up to `limit` items to publish.

        With `prioritize`, items are taken by descending relevance (ties keep
        queue order); otherwise in queue order.
        """
        with self._lock:
            candidates = list(self._items)
        if prioritize:
            candidates = sorted(candidates, key=lambda item: item.relevance_score, reverse=True)
        return candidates[: max(0, limit)]

    def discard(self, items: Iterable[ProcessedItem]) -> int:
        """Remove exactly these objects (by identity); return how many were removed."""
        doomed = {id(item) for item in items}
        with self._lock:
            before = len(self._items)
            self._items = [item for item in self._items if id(item) not in doomed]
            return before - len(self._items)
