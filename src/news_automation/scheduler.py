"""Recurring fetch and daily publish cycles."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .config import Settings, get_settings, parse_time_of_day
from .crawler import Crawler
from .generator import ContentGenerator
from .images import DefaultImageResolver
from .models import ProcessedItem, StoredArticle
from .processor import Processor
from .publish_queue import PublishQueue
from .store import ArticleStore, JsonlArticleStore

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def next_publish_time(now: datetime, time_of_day: str) -> datetime:
    """
    Next wall-clock occurrence of "HH:MM" at or after `now`.

    Today when that time has not passed yet, otherwise tomorrow.
    """
    hour, minute = parse_time_of_day(time_of_day)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate < now:
        candidate += timedelta(days=1)
    return candidate


@dataclass
class FetchCycleResult:
    fetched: int = 0
    processed: int = 0
    eligible: int = 0
    queued: int = 0
    queue_size: int = 0
    skipped: bool = False


@dataclass
class PublishCycleResult:
    selected: int = 0
    published: List[StoredArticle] = field(default_factory=list)
    failed: int = 0


class Scheduler:
    """
    Owns the publish queue and the two timers.

    State is either stopped or running. `start()` runs one fetch cycle right
    away, then keeps fetching every `fetch_interval_ms` and publishes once a
    day at `daily_publish_time` (local time). Collaborators are injected so
    tests can drive cycles without network or wall-clock waits.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        crawler: Crawler,
        processor: Processor,
        generator: ContentGenerator,
        store: ArticleStore,
        queue: Optional[PublishQueue] = None,
        timer_factory: TimerFactory = threading.Timer,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.crawler = crawler
        self.processor = processor
        self.generator = generator
        self.store = store
        self.queue = queue if queue is not None else PublishQueue()
        self._timer_factory = timer_factory
        self._now = now_fn or datetime.now

        self._state_lock = threading.Lock()
        self._running = False
        # Bumped by every start(); timers from an earlier run see a mismatch and stand down.
        self._generation = 0
        self._fetch_timer: Optional[threading.Timer] = None
        self._publish_timer: Optional[threading.Timer] = None
        self._next_publish_at: Optional[datetime] = None

        self._fetch_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._idle = threading.Condition()
        self._active_cycles = 0

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    @property
    def next_publish_at(self) -> Optional[datetime]:
        with self._state_lock:
            return self._next_publish_at

    # --- Lifecycle -----------------------------------------------------------

    def start(self) -> bool:
        """Start the schedule; returns False when it was already running."""
        with self._state_lock:
            if self._running:
                logger.info("Scheduler already running; start ignored")
                return False
            self._running = True
            self._generation += 1
            generation = self._generation

        logger.info(
            "Scheduler starting: fetch every %.0fs, publish daily at %s",
            self.settings.fetch_interval_seconds,
            self.settings.daily_publish_time,
        )
        # Waits out a manual fetch in flight rather than skipping the first cycle.
        self._guarded(partial(self.run_fetch_cycle, blocking=True), "initial fetch")

        with self._state_lock:
            if self._is_current(generation):
                self._arm_fetch_timer(generation)
                self._arm_publish_timer(generation, self._now())
        return True

    def stop(self) -> bool:
        """Cancel both timers; returns False when already stopped. In-flight cycles finish."""
        with self._state_lock:
            if not self._running:
                logger.info("Scheduler already stopped; stop ignored")
                return False
            self._running = False
            timers = (self._fetch_timer, self._publish_timer)
            self._fetch_timer = None
            self._publish_timer = None
            self._next_publish_at = None

        for timer in timers:
            if timer is not None:
                timer.cancel()
        logger.info("Scheduler stopped")
        return True

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is running; False if `timeout` expired first."""
        with self._idle:
            return self._idle.wait_for(lambda: self._active_cycles == 0, timeout)

    # --- Timers (call with _state_lock held) ---------------------------------

    def _is_current(self, generation: int) -> bool:
        return self._running and generation == self._generation

    def _arm_fetch_timer(self, generation: int) -> None:
        timer = self._timer_factory(
            self.settings.fetch_interval_seconds, partial(self._on_fetch_timer, generation)
        )
        timer.daemon = True
        self._fetch_timer = timer
        timer.start()

    def _arm_publish_timer(self, generation: int, after: datetime) -> None:
        target = next_publish_time(after, self.settings.daily_publish_time)
        delay = max(0.0, (target - self._now()).total_seconds())
        timer = self._timer_factory(delay, partial(self._on_publish_timer, generation))
        timer.daemon = True
        self._publish_timer = timer
        self._next_publish_at = target
        timer.start()
        logger.info("Next publish cycle at %s", target.isoformat(timespec="minutes"))

    def _on_fetch_timer(self, generation: int) -> None:
        with self._state_lock:
            if not self._is_current(generation):
                return
            self._arm_fetch_timer(generation)
        self._guarded(self.run_fetch_cycle, "scheduled fetch")

    def _on_publish_timer(self, generation: int) -> None:
        with self._state_lock:
            if not self._is_current(generation):
                return
            scheduled = self._next_publish_at or self._now()

        self._guarded(self.run_publish_cycle, "scheduled publish")

        with self._state_lock:
            if self._is_current(generation):
                # Step past the slot that just fired so it is not picked again.
                self._arm_publish_timer(
                    generation, max(self._now(), scheduled) + timedelta(seconds=1)
                )

    def _guarded(self, cycle: Callable[[], object], label: str) -> None:
        try:
            cycle()
        except Exception:
            logger.exception("Unexpected error in %s cycle", label)

    @contextmanager
    def _track_cycle(self) -> Iterator[None]:
        with self._idle:
            self._active_cycles += 1
        try:
            yield
        finally:
            with self._idle:
                self._active_cycles -= 1
                self._idle.notify_all()

    # --- Fetch ---------------------------------------------------------------

    def run_manual_fetch_cycle(self) -> FetchCycleResult:
        """Run one fetch cycle now, whatever the scheduler state; timers are untouched."""
        return self.run_fetch_cycle(blocking=True)

    def run_fetch_cycle(self, *, blocking: bool = False) -> FetchCycleResult:
        """
        Crawl, score, filter, deduplicate and enqueue.

        A non-blocking call returns a skipped result while another fetch is in
        flight.
        """
        if not self._fetch_lock.acquire(blocking=blocking):
            logger.warning("Fetch cycle already in progress; skipping this tick")
            return FetchCycleResult(skipped=True, queue_size=len(self.queue))
        try:
            with self._track_cycle():
                return self._fetch_cycle()
        finally:
            self._fetch_lock.release()

    def _is_eligible(self, item: ProcessedItem) -> bool:
        return (
            item.relevance_score >= self.settings.min_relevance_score
            and len(item.content) >= self.settings.min_content_length
        )

    def _fetch_cycle(self) -> FetchCycleResult:
        raw_items = self.crawler.fetch_all(self.settings.sources)
        result = FetchCycleResult(fetched=len(raw_items))
        if not raw_items:
            logger.info("Fetch cycle: no items fetched")
            result.queue_size = len(self.queue)
            return result

        processed = self.processor.process_all(raw_items)
        result.processed = len(processed)

        eligible = [item for item in processed if self._is_eligible(item)]
        result.eligible = len(eligible)

        unique = self.processor.deduplicate(eligible)
        fresh = self.processor.deduplicate(unique, existing=self.queue.snapshot())
        result.queue_size = self.queue.extend(fresh)
        result.queued = len(fresh)

        logger.info(
            "Fetch cycle: fetched=%d processed=%d eligible=%d queued=%d queue_size=%d",
            result.fetched,
            result.processed,
            result.eligible,
            result.queued,
            result.queue_size,
        )
        return result

    # --- Publish -------------------------------------------------------------

    def run_publish_cycle(self) -> PublishCycleResult:
        """
        Publish up to `articles_per_day` queued items.

        Every selected item leaves the queue afterwards, published or not. The
        first article stored in the cycle is featured.
        """
        with self._publish_lock, self._track_cycle():
            return self._publish_cycle()

    def _batches(self, selected: Sequence[ProcessedItem]) -> List[List[ProcessedItem]]:
        if self.settings.publish_mode == "roundup":
            groups: Dict[str, List[ProcessedItem]] = {}
            for item in selected:
                groups.setdefault(item.category, []).append(item)
            return list(groups.values())
        return [[item] for item in selected]

    def _publish_cycle(self) -> PublishCycleResult:
        if len(self.queue) == 0:
            logger.info("Publish cycle: queue is empty")
            return PublishCycleResult()

        selected = self.queue.select(
            self.settings.articles_per_day, prioritize=self.settings.auto_prioritize
        )
        result = PublishCycleResult(selected=len(selected))
        try:
            for batch in self._batches(selected):
                try:
                    article = self.generator.generate(batch)
                    stored = self.store.create_article(article, featured=not result.published)
                except Exception as exc:
                    result.failed += 1
                    logger.error("Publishing %r failed: %s", batch[0].title, exc)
                    continue
                result.published.append(stored)
        finally:
            self.queue.discard(selected)

        logger.info(
            "Publish cycle: selected=%d published=%d failed=%d remaining=%d",
            result.selected,
            len(result.published),
            result.failed,
            len(self.queue),
        )
        return result


def build_scheduler(settings: Optional[Settings] = None, **kwargs) -> Scheduler:
    """Wire the default crawler, processor, generator and JSONL store."""
    settings = settings or get_settings()
    resolver = DefaultImageResolver.from_settings(settings)
    return Scheduler(
        settings,
        crawler=Crawler.from_settings(settings),
        processor=Processor.from_settings(settings),
        generator=ContentGenerator.from_settings(settings, resolver),
        store=JsonlArticleStore.from_settings(settings),
        **kwargs,
    )
