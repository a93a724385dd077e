"""Recurring multi-page audits of one site.

Each run fetches the root page, discovers same-host links one hop deep,
audits up to ``max_pages`` pages (root first) and prepends a RunEntry to a
bounded, newest-first history.
"""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from itertools import islice
from typing import Any, Callable, Deque, Dict, Iterable, Iterator, List, Optional

from .audit import AuditResult, AuditSummary, Fetcher, audit_html, make_fetcher
from .config import DEFAULT_SETTINGS, Settings, validate_interval, validate_target_url
from .errors import StoreError
from .events import EventChannel, utcnow
from .extract import parse_html
from .store import SessionStore
from .timer import CancelToken, PeriodicTimer
from .utils import discover_same_host_links, round_half_up

logger = logging.getLogger(__name__)

HISTORY_KEY = "seoSchedulerHistory"


@dataclass(frozen=True)
class RunEntry:
    id: int
    timestamp: str
    url: str
    pages: List[AuditResult] = field(default_factory=list)
    avg_score: int = 0
    total_issues: int = 0
    auto_fixed: int = 0
    escalated: int = 0
    elapsed: float = 0.0

    @property
    def pages_audited(self) -> int:
        return len(self.pages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "url": self.url,
            "pages": [p.to_dict() for p in self.pages],
            "pages_audited": self.pages_audited,
            "avg_score": self.avg_score,
            "total_issues": self.total_issues,
            "auto_fixed": self.auto_fixed,
            "escalated": self.escalated,
            "elapsed": self.elapsed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunEntry":
        return cls(
            id=int(data["id"]),
            timestamp=data["timestamp"],
            url=data["url"],
            pages=[AuditResult.from_dict(p) for p in data.get("pages", [])],
            avg_score=int(data.get("avg_score", 0)),
            total_issues=int(data.get("total_issues", 0)),
            auto_fixed=int(data.get("auto_fixed", 0)),
            escalated=int(data.get("escalated", 0)),
            elapsed=float(data.get("elapsed", 0.0)),
        )


class History:
    """Newest-first ring buffer of RunEntry objects."""

    def __init__(self, capacity: int = 50) -> None:
        self.capacity = capacity
        self._entries: Deque[RunEntry] = deque(maxlen=capacity)

    def add(self, entry: RunEntry) -> None:
        self._entries.appendleft(entry)

    def replace(self, entries: Iterable[RunEntry]) -> None:
        """Load ``entries`` given newest first, keeping the newest ``capacity``."""
        self._entries.clear()
        self._entries.extend(islice(entries, self.capacity))

    @property
    def latest(self) -> Optional[RunEntry]:
        return self._entries[0] if self._entries else None

    def entries(self, limit: Optional[int] = None) -> List[RunEntry]:
        items = list(self._entries)
        return items if limit is None else items[:limit]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RunEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> RunEntry:
        return self._entries[index]


def discover_links(html: str, base_url: str) -> List[str]:
    soup = parse_html(html)
    return discover_same_host_links(base_url, (a.get("href") for a in soup.find_all("a", href=True)))


class CrawlScheduler:
    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        store: Optional[SessionStore] = None,
        settings: Settings = DEFAULT_SETTINGS,
        events: Optional[EventChannel] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher or make_fetcher(settings)
        self.store = store
        self.events = events or EventChannel()
        self.clock = clock
        self.history = History(settings.history_limit)
        self.url: Optional[str] = None
        self.interval = settings.scheduler_interval
        self.active = False
        self.run_count = 0
        self._timer: Optional[PeriodicTimer] = None
        self._token = CancelToken()
        self._busy = False
        self.restore()

    async def start(self, url: str, interval: Optional[float] = None) -> Optional[RunEntry]:
        url = validate_target_url(url)
        interval = validate_interval(interval if interval is not None else self.interval)
        if self.active:
            self.stop()

        token = self._token = CancelToken()
        self.url = url
        self.interval = interval
        self.active = True
        self._busy = False
        self.events.publish(
            "started",
            source=url,
            url=url,
            interval=interval,
            next_run=self._next_run(),
        )

        self._timer = PeriodicTimer(interval, self.run_once, on_skip=self._skipped)
        self._timer.start()
        entry = await self.run_once()
        return None if token.cancelled else entry

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._token.cancel()
        self._busy = False
        if not self.active:
            return
        self.active = False
        self.events.publish("stopped", source=self.url or "", runs=self.run_count)

    def _skipped(self) -> None:
        self.events.publish("skipped", source=self.url or "", reason="previous run still in flight")

    def _next_run(self) -> str:
        return (utcnow() + timedelta(seconds=self.interval)).isoformat()

    async def run_once(self) -> Optional[RunEntry]:
        if not self.active or self.url is None:
            return None
        if self._busy:
            self._skipped()
            return None

        token = self._token
        self._busy = True
        try:
            return await self._execute(self.url, token)
        finally:
            if token is self._token:
                self._busy = False

    async def _execute(self, root: str, token: CancelToken) -> Optional[RunEntry]:
        self.run_count += 1
        run_id = self.run_count
        started = self.clock()
        self.events.publish("running", source=root, run=run_id, url=root)

        try:
            root_html = await self.fetcher(root)
        except Exception as exc:
            if token.cancelled:
                return None
            logger.warning("Run %d: cannot fetch %s: %s", run_id, root, exc)
            self.events.publish("error", source=root, run=run_id, error=str(exc))
            return None
        if token.cancelled:
            return None

        links = discover_links(root_html, root)
        self.events.publish(
            "progress", source=root, run=run_id, phase=f"Discovered {len(links)} page(s)"
        )
        pages = [root, *links][: self.settings.max_pages]

        summary = AuditSummary()
        for index, page_url in enumerate(pages, start=1):
            self.events.publish(
                "progress",
                source=root,
                run=run_id,
                phase=f"Auditing page {index}/{len(pages)}: {page_url}",
            )
            if page_url == root:
                html = root_html
            else:
                try:
                    html = await self.fetcher(page_url)
                except Exception as exc:
                    if token.cancelled:
                        return None
                    logger.debug("Run %d: skipping %s: %s", run_id, page_url, exc)
                    continue
                if token.cancelled:
                    return None
            summary.results.append(audit_html(page_url, html))

        scores = summary.scores
        entry = RunEntry(
            id=run_id,
            timestamp=utcnow().isoformat(),
            url=root,
            pages=summary.results,
            avg_score=round_half_up(sum(scores) / len(scores)) if scores else 0,
            total_issues=summary.total_issues,
            auto_fixed=summary.auto_fixed,
            escalated=summary.escalated,
            elapsed=round(self.clock() - started, 1),
        )

        self.history.add(entry)
        self.persist()
        self.events.publish("completed", source=root, entry=entry)
        self.events.publish(
            "scheduled", source=root, next_run=self._next_run(), last_score=entry.avg_score
        )
        return entry

    def persist(self) -> None:
        if self.store is None:
            return
        entries = self.history.entries(self.settings.persisted_history)
        try:
            self.store.set(HISTORY_KEY, json.dumps([e.to_dict() for e in entries]))
        except (StoreError, TypeError, ValueError) as exc:
            logger.warning("Could not persist scheduler history: %s", exc)

    def restore(self) -> None:
        if self.store is None:
            return
        try:
            raw = self.store.get(HISTORY_KEY)
            if not raw:
                return
            entries = [RunEntry.from_dict(d) for d in json.loads(raw)]
        except (StoreError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Could not restore scheduler history: %s", exc)
            return
        self.history.replace(entries)
        self.run_count = max([self.run_count, *(e.id for e in entries)])

    def status(self) -> Dict[str, Any]:
        latest = self.history.latest
        return {
            "active": self.active,
            "url": self.url,
            "run_count": self.run_count,
            "interval": self.interval,
            "history_count": len(self.history),
            "last_run": latest.to_dict() if latest else None,
        }
