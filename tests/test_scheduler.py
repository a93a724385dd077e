import asyncio
import json

import pytest

from conftest import BARE_HTML, DEMO_HTML, FakeFetcher, page_html
from seoagent.config import Settings
from seoagent.errors import ConfigError, FetchError
from seoagent.events import EventChannel
from seoagent.scheduler import HISTORY_KEY, CrawlScheduler, History, RunEntry, discover_links
from seoagent.store import MemorySessionStore

ROOT = "https://site.test/"
LONG = 1000.0


def links_page(count):
    anchors = "".join(f'<a href="/p{i}">page {i}</a>' for i in range(count))
    return page_html(body=f"<p>Hello world, this is a tiny page.</p>{anchors}")


def drain(queue):
    out = []
    while not queue.empty():
        out.append(queue.get_nowait())
    return out


def entry(n):
    return RunEntry(id=n, timestamp="2024-01-01T00:00:00+00:00", url=ROOT)


def test_history_is_newest_first_and_bounded():
    history = History(capacity=3)
    for n in range(1, 5):
        history.add(entry(n))
    assert [e.id for e in history] == [4, 3, 2]
    assert history.latest.id == 4
    assert [e.id for e in history.entries(2)] == [4, 3]
    assert len(history) == 3


def test_discover_links_resolves_same_host_pages():
    html = '<a href="/a">a</a><a href="https://site.test/b?x=1">b</a><a href="https://else.test/">c</a><a href="/a#x">d</a>'
    assert discover_links(html, ROOT) == ["https://site.test/a", "https://site.test/b"]


@pytest.mark.asyncio
async def test_start_runs_immediately_and_reports_progress():
    channel = EventChannel()
    queue = channel.subscribe()
    fetcher = FakeFetcher({ROOT: links_page(2)}, default=BARE_HTML)
    scheduler = CrawlScheduler(fetcher, events=channel)
    try:
        result = await scheduler.start("site.test", LONG)
        assert result.id == 1
        assert result.url == ROOT
        assert result.pages_audited == 3
        events = drain(queue)
        assert [e.kind for e in events] == [
            "started",
            "running",
            "progress",
            "progress",
            "progress",
            "progress",
            "completed",
            "scheduled",
        ]
        phases = [e.data["phase"] for e in events if e.kind == "progress"]
        assert phases[0] == "Discovered 2 page(s)"
        assert phases[1] == "Auditing page 1/3: https://site.test/"
        assert phases[3] == "Auditing page 3/3: https://site.test/p1"
        assert "next_run" in events[0].data
        assert events[-1].data["last_score"] == result.avg_score
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_run_audits_at_most_ten_pages_root_first():
    fetcher = FakeFetcher({ROOT: links_page(15)}, default=BARE_HTML)
    scheduler = CrawlScheduler(fetcher)
    try:
        result = await scheduler.start(ROOT, LONG)
        assert result.pages_audited == 10
        assert result.pages[0].url == ROOT
        assert [p.url for p in result.pages[1:]] == [f"https://site.test/p{i}" for i in range(9)]
        assert fetcher.calls.count(ROOT) == 1
        assert len(fetcher.calls) == 10
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_aggregates_scores_and_counts():
    root_html = page_html(body='<p>Hello world, this is a tiny page.</p><a href="/x">x</a>')
    fetcher = FakeFetcher({ROOT: root_html, "https://site.test/x": DEMO_HTML})
    ticks = iter([10.0, 11.26])
    scheduler = CrawlScheduler(fetcher, clock=lambda: next(ticks))
    try:
        result = await scheduler.start(ROOT, LONG)
        assert [p.score for p in result.pages] == [30, 14]
        assert result.avg_score == 22
        assert result.total_issues == 18
        assert result.auto_fixed == 13
        assert result.escalated == 5
        assert result.elapsed == 1.3
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_failing_subpages_are_skipped():
    fetcher = FakeFetcher(
        {
            ROOT: links_page(3),
            "https://site.test/p1": FetchError("https://site.test/p1", "Fetch failed: 404", 404),
        },
        default=BARE_HTML,
    )
    scheduler = CrawlScheduler(fetcher)
    try:
        result = await scheduler.start(ROOT, LONG)
        assert [p.url for p in result.pages] == [ROOT, "https://site.test/p0", "https://site.test/p2"]
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_root_failure_records_error_and_no_history():
    channel = EventChannel()
    queue = channel.subscribe()
    fetcher = FakeFetcher({ROOT: FetchError(ROOT, "Fetch failed: 500", 500)})
    scheduler = CrawlScheduler(fetcher, events=channel)
    try:
        assert await scheduler.start(ROOT, LONG) is None
        events = drain(queue)
        assert [e.kind for e in events] == ["started", "running", "error"]
        assert "500" in events[-1].data["error"]
        assert len(scheduler.history) == 0
        assert scheduler.active
        assert scheduler.run_count == 1
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_history_keeps_fifty_newest_runs():
    fetcher = FakeFetcher({ROOT: BARE_HTML})
    scheduler = CrawlScheduler(fetcher)
    try:
        await scheduler.start(ROOT, LONG)
        for _ in range(50):
            await scheduler.run_once()
        assert scheduler.run_count == 51
        assert len(scheduler.history) == 50
        assert scheduler.history.latest.id == 51
        assert scheduler.history[-1].id == 2
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_history_persists_newest_twenty_and_restores():
    store = MemorySessionStore()
    scheduler = CrawlScheduler(FakeFetcher({ROOT: BARE_HTML}), store=store)
    try:
        await scheduler.start(ROOT, LONG)
        for _ in range(24):
            await scheduler.run_once()
    finally:
        scheduler.stop()

    saved = json.loads(store.get(HISTORY_KEY))
    assert len(saved) == 20
    assert saved[0]["id"] == 25

    restored = CrawlScheduler(FakeFetcher({ROOT: BARE_HTML}), store=store)
    assert len(restored.history) == 20
    assert restored.history.latest.id == 25
    assert restored.history.latest.pages[0].score == 30
    try:
        entry_ = await restored.start(ROOT, LONG)
        assert entry_.id == 26
    finally:
        restored.stop()


@pytest.mark.asyncio
async def test_store_failure_does_not_abort_run():
    store = MemorySessionStore(quota=10)
    scheduler = CrawlScheduler(FakeFetcher({ROOT: BARE_HTML}), store=store)
    try:
        result = await scheduler.start(ROOT, LONG)
        assert result is not None
        assert len(scheduler.history) == 1
        assert store.get(HISTORY_KEY) is None
    finally:
        scheduler.stop()


def test_restore_keeps_newest_when_store_exceeds_history_limit():
    store = MemorySessionStore()
    store.set(HISTORY_KEY, json.dumps([entry(n).to_dict() for n in range(20, 0, -1)]))
    settings = Settings(history_limit=10, persisted_history=20)
    scheduler = CrawlScheduler(FakeFetcher(), store=store, settings=settings)
    assert len(scheduler.history) == 10
    assert scheduler.history.latest.id == 20
    assert [e.id for e in scheduler.history][-1] == 11
    assert scheduler.run_count == 20


def test_history_replace_takes_newest_first_prefix():
    history = History(capacity=2)
    history.replace([entry(5), entry(4), entry(3)])
    assert [e.id for e in history] == [5, 4]


def test_corrupt_stored_history_is_ignored():
    store = MemorySessionStore()
    store.set(HISTORY_KEY, "{broken")
    scheduler = CrawlScheduler(FakeFetcher(), store=store)
    assert len(scheduler.history) == 0
    assert scheduler.run_count == 0


class SlowSubpageFetcher:
    def __init__(self):
        self.gate = asyncio.Event()

    async def __call__(self, url):
        if url == ROOT:
            return links_page(1)
        await self.gate.wait()
        return BARE_HTML


@pytest.mark.asyncio
async def test_stop_during_run_discards_result():
    channel = EventChannel()
    queue = channel.subscribe()
    fetcher = SlowSubpageFetcher()
    scheduler = CrawlScheduler(fetcher, events=channel)

    started = asyncio.ensure_future(scheduler.start(ROOT, LONG))
    for _ in range(5):
        await asyncio.sleep(0)
    scheduler.stop()
    fetcher.gate.set()

    assert await started is None
    assert len(scheduler.history) == 0
    kinds = [e.kind for e in drain(queue)]
    assert "completed" not in kinds
    assert kinds[-1] == "stopped"


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped():
    channel = EventChannel()
    queue = channel.subscribe()
    fetcher = SlowSubpageFetcher()
    scheduler = CrawlScheduler(fetcher, events=channel)
    try:
        first = asyncio.ensure_future(scheduler.start(ROOT, LONG))
        for _ in range(5):
            await asyncio.sleep(0)
        assert await scheduler.run_once() is None
        fetcher.gate.set()
        assert (await first).id == 1
        assert "skipped" in [e.kind for e in drain(queue)]
        assert scheduler.run_count == 1
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_run_once_requires_active_scheduler():
    fetcher = FakeFetcher({ROOT: BARE_HTML})
    scheduler = CrawlScheduler(fetcher)
    assert await scheduler.run_once() is None
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_invalid_target_is_rejected():
    scheduler = CrawlScheduler(FakeFetcher())
    with pytest.raises(ConfigError):
        await scheduler.start("ftp://site.test/", LONG)
    with pytest.raises(ConfigError):
        await scheduler.start(ROOT, -1)
    assert not scheduler.active


@pytest.mark.asyncio
async def test_max_pages_setting_is_honoured():
    fetcher = FakeFetcher({ROOT: links_page(5)}, default=BARE_HTML)
    scheduler = CrawlScheduler(fetcher, settings=Settings(max_pages=3))
    try:
        result = await scheduler.start(ROOT, LONG)
        assert result.pages_audited == 3
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_status_payload():
    scheduler = CrawlScheduler(FakeFetcher({ROOT: BARE_HTML}))
    await scheduler.start(ROOT, 60)
    scheduler.stop()
    status = scheduler.status()
    assert status["active"] is False
    assert status["url"] == ROOT
    assert status["run_count"] == 1
    assert status["interval"] == 60.0
    assert status["history_count"] == 1
    assert status["last_run"]["id"] == 1
