import threading
from datetime import datetime, timedelta, timezone

import pytest

from news_automation.config import get_settings
from news_automation.generator import ContentGenerator
from news_automation.models import ProcessedItem, RawItem, StoredArticle
from news_automation.processor import Processor
from news_automation.publish_queue import PublishQueue
from news_automation.scheduler import Scheduler, build_scheduler, next_publish_time

FETCHED_AT = datetime(2025, 1, 6, 6, 0, tzinfo=timezone.utc)
LOCAL_NOW = datetime(2025, 1, 6, 7, 0)

DEFI_CONTENT = (
    "The Aave DAO approved a new lending pool for stablecoins. "
    "Liquidity providers can supply stablecoins and earn yield from borrowers."
)


class FakeTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer


class FakeCrawler:
    def __init__(self, items=(), error=None):
        self.items = list(items)
        self.error = error
        self.calls = 0

    def fetch_all(self, sources):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.items)


class FakeStore:
    def __init__(self, fail_titles=()):
        self.fail_titles = set(fail_titles)
        self.articles = []

    def create_article(self, article, *, featured=False):
        if article.title in self.fail_titles:
            raise RuntimeError("database unavailable")
        stored = StoredArticle(
            **article.model_dump(), id=len(self.articles) + 1, is_featured=featured
        )
        self.articles.append(stored)
        return stored


def _settings(tmp_path, monkeypatch, **overrides):
    monkeypatch.chdir(tmp_path)
    defaults = {"sources": [], "daily_publish_time": "08:00", "min_content_length": 50}
    defaults.update(overrides)
    return get_settings(**defaults)


def _scheduler(settings, crawler=None, store=None, queue=None, timers=None):
    return Scheduler(
        settings,
        crawler=crawler or FakeCrawler(),
        processor=Processor(
            trusted_sources=["SourceA"], now_fn=lambda: FETCHED_AT + timedelta(hours=1)
        ),
        generator=ContentGenerator(),
        store=store or FakeStore(),
        queue=queue,
        timer_factory=timers or TimerRecorder(),
        now_fn=lambda: LOCAL_NOW,
    )


def _queued(title, score, category="general"):
    return ProcessedItem(
        title=title,
        content=DEFI_CONTENT,
        source="Demo",
        url=f"https://example.com/{score}",
        fetched_at=FETCHED_AT,
        category=category,
        relevance_score=score,
    )


def test_next_publish_time_today_or_tomorrow():
    assert next_publish_time(datetime(2025, 1, 6, 7, 0), "08:00") == datetime(2025, 1, 6, 8, 0)
    assert next_publish_time(datetime(2025, 1, 6, 9, 0), "08:00") == datetime(2025, 1, 7, 8, 0)
    assert next_publish_time(datetime(2025, 1, 6, 8, 0), "08:00") == datetime(2025, 1, 6, 8, 0)
    assert next_publish_time(datetime(2025, 12, 31, 23, 30), "00:15") == datetime(2026, 1, 1, 0, 15)


def test_next_publish_time_rejects_malformed_time():
    with pytest.raises(ValueError):
        next_publish_time(LOCAL_NOW, "8am")


def test_fetch_cycle_end_to_end_dedups_and_scores(tmp_path, monkeypatch):
    items = [
        RawItem(
            title="Aave DAO approves new lending pool for stablecoins",
            content=DEFI_CONTENT,
            source="SourceA",
            url="https://a.example/1",
            fetched_at=FETCHED_AT,
        ),
        RawItem(
            title="Aave DAO approves a new lending pool for stablecoins!",
            content=DEFI_CONTENT,
            source="SourceA",
            url="https://a.example/2",
            fetched_at=FETCHED_AT,
        ),
        RawItem(
            title="Old rumor resurfaces",
            content=DEFI_CONTENT,
            source="Unknown Blog",
            url="https://blog.example/old",
            fetched_at=FETCHED_AT,
            published_at=FETCHED_AT - timedelta(days=5),
        ),
    ]
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=FakeCrawler(items))

    result = scheduler.run_manual_fetch_cycle()

    assert (result.fetched, result.processed, result.eligible, result.queued) == (3, 3, 2, 1)
    queued = scheduler.queue.snapshot()
    assert len(queued) == 1
    assert queued[0].url == "https://a.example/1"
    assert queued[0].category == "defi"
    assert queued[0].relevance_score == 80

    again = scheduler.run_manual_fetch_cycle()
    assert again.queued == 0
    assert len(scheduler.queue) == 1


def test_fetch_cycle_filters_short_content(tmp_path, monkeypatch):
    item = RawItem(
        title="Tiny", content="Too short", source="SourceA", url="u", fetched_at=FETCHED_AT
    )
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=FakeCrawler([item]))

    result = scheduler.run_manual_fetch_cycle()

    assert result.eligible == 0
    assert len(scheduler.queue) == 0


def test_fetch_cycle_with_nothing_fetched(tmp_path, monkeypatch):
    scheduler = _scheduler(_settings(tmp_path, monkeypatch))
    result = scheduler.run_manual_fetch_cycle()
    assert result.fetched == 0
    assert result.queue_size == 0


def test_publish_cycle_prioritizes_and_features_first(tmp_path, monkeypatch):
    queue = PublishQueue([_queued(f"Story {score}", score) for score in (90, 40, 70, 10, 55)])
    store = FakeStore()
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch, articles_per_day=2), store=store, queue=queue
    )

    result = scheduler.run_publish_cycle()

    assert result.selected == 2
    assert [article.title for article in result.published] == ["Story 90", "Story 70"]
    assert [article.is_featured for article in result.published] == [True, False]
    assert [item.relevance_score for item in queue.snapshot()] == [40, 10, 55]


def test_publish_cycle_in_queue_order_without_priority(tmp_path, monkeypatch):
    queue = PublishQueue([_queued(f"Story {score}", score) for score in (90, 40, 70)])
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch, articles_per_day=2, auto_prioritize=False),
        queue=queue,
    )

    result = scheduler.run_publish_cycle()

    assert [article.title for article in result.published] == ["Story 90", "Story 40"]
    assert [item.relevance_score for item in queue.snapshot()] == [70]


def test_publish_failures_are_dropped_without_retry(tmp_path, monkeypatch):
    queue = PublishQueue([_queued(f"Story {score}", score) for score in (90, 70, 50)])
    store = FakeStore(fail_titles={"Story 90"})
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch, articles_per_day=2), store=store, queue=queue
    )

    result = scheduler.run_publish_cycle()

    assert result.failed == 1
    assert [article.title for article in result.published] == ["Story 70"]
    assert result.published[0].is_featured is True
    assert [item.title for item in queue.snapshot()] == ["Story 50"]


def test_publish_cycle_roundup_groups_by_category(tmp_path, monkeypatch):
    queue = PublishQueue(
        [
            _queued("Bitcoin one", 90, "bitcoin"),
            _queued("Market one", 80, "market"),
            _queued("Bitcoin two", 70, "bitcoin"),
        ]
    )
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch, articles_per_day=3, publish_mode="roundup"),
        queue=queue,
    )

    result = scheduler.run_publish_cycle()

    assert [article.category for article in result.published] == ["bitcoin", "market"]
    assert "<h3>Bitcoin two</h3>" in result.published[0].content
    assert len(queue) == 0


def test_publish_cycle_on_empty_queue_is_noop(tmp_path, monkeypatch):
    store = FakeStore()
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), store=store)

    result = scheduler.run_publish_cycle()

    assert result.selected == 0
    assert store.articles == []


def test_start_twice_arms_one_fetch_and_one_publish_timer(tmp_path, monkeypatch):
    timers = TimerRecorder()
    crawler = FakeCrawler()
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch, fetch_interval_ms=60_000), crawler=crawler, timers=timers
    )

    assert scheduler.start() is True
    assert scheduler.start() is False

    assert crawler.calls == 1
    assert len(timers.timers) == 2
    fetch_timer, publish_timer = timers.timers
    assert fetch_timer.interval == 60
    assert publish_timer.interval == 3600
    assert all(timer.started and timer.daemon for timer in timers.timers)
    assert scheduler.next_publish_at == datetime(2025, 1, 6, 8, 0)

    assert scheduler.stop() is True
    assert scheduler.stop() is False
    assert fetch_timer.cancelled and publish_timer.cancelled
    assert scheduler.is_running is False


def test_fetch_timer_rearms_and_runs_cycle(tmp_path, monkeypatch):
    timers = TimerRecorder()
    crawler = FakeCrawler()
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=crawler, timers=timers)
    scheduler.start()

    timers.timers[0].function()

    assert crawler.calls == 2
    assert len(timers.timers) == 3


def test_publish_timer_rearms_for_next_day(tmp_path, monkeypatch):
    timers = TimerRecorder()
    queue = PublishQueue([_queued("Story 90", 90)])
    store = FakeStore()
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch), store=store, queue=queue, timers=timers
    )
    scheduler.start()

    timers.timers[1].function()

    assert [article.title for article in store.articles] == ["Story 90"]
    assert scheduler.next_publish_at == datetime(2025, 1, 7, 8, 0)
    assert len(timers.timers) == 3


def test_timers_do_nothing_after_stop(tmp_path, monkeypatch):
    timers = TimerRecorder()
    crawler = FakeCrawler()
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=crawler, timers=timers)
    scheduler.start()
    scheduler.stop()

    timers.timers[0].function()
    timers.timers[1].function()

    assert crawler.calls == 1
    assert len(timers.timers) == 2


def _live(timers):
    return [timer for timer in timers.timers if timer.started and not timer.cancelled]


def test_stale_publish_timer_does_not_rearm_after_restart(tmp_path, monkeypatch):
    timers = TimerRecorder()
    store = FakeStore()
    queue = PublishQueue([_queued("Story 90", 90)])
    scheduler = _scheduler(
        _settings(tmp_path, monkeypatch), store=store, queue=queue, timers=timers
    )
    scheduler.start()
    stale_publish = timers.timers[1].function
    scheduler.stop()
    scheduler.start()

    stale_publish()

    assert store.articles == []
    assert len(timers.timers) == 4
    live = _live(timers)
    assert len(live) == 2
    assert live == timers.timers[2:]


def test_stale_fetch_timer_does_not_rearm_after_restart(tmp_path, monkeypatch):
    timers = TimerRecorder()
    crawler = FakeCrawler()
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=crawler, timers=timers)
    scheduler.start()
    stale_fetch = timers.timers[0].function
    scheduler.stop()
    scheduler.start()

    stale_fetch()

    assert crawler.calls == 2
    assert len(timers.timers) == 4
    assert len(_live(timers)) == 2

    timers.timers[2].function()
    assert crawler.calls == 3
    assert len(_live(timers)) == 3


def test_start_waits_for_manual_fetch_then_runs_its_own(tmp_path, monkeypatch):
    entered = threading.Event()
    release = threading.Event()

    class BlockingCrawler(FakeCrawler):
        def fetch_all(self, sources):
            if self.calls == 0:
                entered.set()
                release.wait(timeout=5)
            return super().fetch_all(sources)

    timers = TimerRecorder()
    crawler = BlockingCrawler()
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=crawler, timers=timers)
    manual = threading.Thread(target=scheduler.run_manual_fetch_cycle)
    manual.start()
    assert entered.wait(timeout=5)

    starter = threading.Thread(target=scheduler.start)
    starter.start()
    starter.join(timeout=0.1)
    assert starter.is_alive()
    assert timers.timers == []

    release.set()
    manual.join(timeout=5)
    starter.join(timeout=5)
    assert crawler.calls == 2
    assert len(timers.timers) == 2
    assert scheduler.stop() is True


def test_start_survives_failing_initial_fetch(tmp_path, monkeypatch):
    timers = TimerRecorder()
    crawler = FakeCrawler(error=RuntimeError("boom"))
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=crawler, timers=timers)

    assert scheduler.start() is True
    assert len(timers.timers) == 2
    assert scheduler.wait_until_idle(timeout=1) is True


def test_overlapping_fetch_tick_is_skipped(tmp_path, monkeypatch):
    entered = threading.Event()
    release = threading.Event()

    class BlockingCrawler(FakeCrawler):
        def fetch_all(self, sources):
            entered.set()
            release.wait(timeout=5)
            return super().fetch_all(sources)

    crawler = BlockingCrawler()
    scheduler = _scheduler(_settings(tmp_path, monkeypatch), crawler=crawler)
    worker = threading.Thread(target=scheduler.run_manual_fetch_cycle)
    worker.start()
    assert entered.wait(timeout=5)

    skipped = scheduler.run_fetch_cycle()
    assert scheduler.wait_until_idle(timeout=0.05) is False

    release.set()
    worker.join(timeout=5)
    assert skipped.skipped is True
    assert crawler.calls == 1
    assert scheduler.wait_until_idle(timeout=1) is True


def test_build_scheduler_wires_defaults(tmp_path, monkeypatch):
    settings = _settings(tmp_path, monkeypatch, store_path=str(tmp_path / "articles.jsonl"))

    scheduler = build_scheduler(settings)

    assert scheduler.is_running is False
    assert scheduler.store.path == tmp_path / "articles.jsonl"
    assert len(scheduler.queue) == 0
