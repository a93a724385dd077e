"""Content change monitor.

Watches one URL: the first successful fetch becomes the baseline, every later
fetch is hashed and compared with it. On a hash mismatch the two documents
are diffed field by field, the baseline is replaced and a ``change`` event is
published together with a fresh audit of the new HTML.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import Fetcher, audit_html, make_fetcher
from .config import DEFAULT_SETTINGS, Settings, validate_interval, validate_target_url
from .events import EventChannel, utcnow
from .extract import extract_snapshot
from .timer import CancelToken, PeriodicTimer

logger = logging.getLogger(__name__)

HASH_SEED = 5381
WORD_DELTA_THRESHOLD = 10


class MonitorState(str, Enum):
    IDLE = "idle"
    BASELINE_PENDING = "baseline-pending"
    WATCHING = "watching"
    STOPPED = "stopped"


@dataclass
class MonitorBaseline:
    url: str
    hash: str
    html: str


@dataclass(frozen=True)
class ChangeRecord:
    type: str
    old: str
    new: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def hash_content(text: str) -> str:
    """djb2 over the characters of ``text``, modulo 2**32, as lowercase hex."""
    h = HASH_SEED
    for ch in text:
        h = ((h << 5) + h + ord(ch)) & 0xFFFFFFFF
    return format(h, "x")


def detect_changes(old_html: str, new_html: str) -> List[ChangeRecord]:
    old = extract_snapshot(old_html, "")
    new = extract_snapshot(new_html, "")
    changes: List[ChangeRecord] = []

    if old.title != new.title:
        changes.append(ChangeRecord("title", old.title, new.title))
    if old.description != new.description:
        changes.append(ChangeRecord("meta-description", old.description, new.description))

    old_h1 = ", ".join(old.h1s)
    new_h1 = ", ".join(new.h1s)
    if old_h1 != new_h1:
        changes.append(ChangeRecord("h1", old_h1, new_h1))

    if abs(old.word_count - new.word_count) > WORD_DELTA_THRESHOLD:
        changes.append(
            ChangeRecord("content-length", f"{old.word_count} words", f"{new.word_count} words")
        )
    if len(old.images) != len(new.images):
        changes.append(ChangeRecord("images", f"{len(old.images)} images", f"{len(new.images)} images"))
    if len(old.links) != len(new.links):
        changes.append(ChangeRecord("links", f"{len(old.links)} links", f"{len(new.links)} links"))
    if len(old.structured_data) != len(new.structured_data):
        changes.append(
            ChangeRecord(
                "schema",
                f"{len(old.structured_data)} schemas",
                f"{len(new.structured_data)} schemas",
            )
        )

    if not changes:
        changes.append(ChangeRecord("general", "Previous version", "Content updated"))
    return changes


class ContentMonitor:
    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        settings: Settings = DEFAULT_SETTINGS,
        events: Optional[EventChannel] = None,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher or make_fetcher(settings)
        self.events = events or EventChannel()
        self.state = MonitorState.IDLE
        self.url: Optional[str] = None
        self.interval = settings.monitor_interval
        self.baseline: Optional[MonitorBaseline] = None
        self.check_count = 0
        self.changes_detected = 0
        self._timer: Optional[PeriodicTimer] = None
        self._token = CancelToken()
        self._busy = False

    @property
    def watching(self) -> bool:
        return self.state in (MonitorState.BASELINE_PENDING, MonitorState.WATCHING)

    async def start(self, url: str, interval: Optional[float] = None) -> None:
        url = validate_target_url(url)
        interval = validate_interval(interval if interval is not None else self.interval)
        if self.watching:
            self.stop()

        token = self._token = CancelToken()
        self.url = url
        self.interval = interval
        self.baseline = None
        self.check_count = 0
        self.changes_detected = 0
        self._busy = False
        self.state = MonitorState.BASELINE_PENDING
        self.events.publish("started", source=url, url=url, interval=interval)

        await self.check()
        if token.cancelled:
            return
        self._timer = PeriodicTimer(interval, self.check, on_skip=self._skipped)
        self._timer.start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._token.cancel()
        self._busy = False
        if not self.watching:
            return
        self.state = MonitorState.STOPPED
        self.events.publish(
            "stopped",
            source=self.url or "",
            checks=self.check_count,
            changes=self.changes_detected,
        )

    def _skipped(self) -> None:
        self.events.publish("skipped", source=self.url or "", reason="previous check still running")

    async def check(self) -> Optional[List[ChangeRecord]]:
        """Fetch once and compare with the baseline.

        Returns the diff list on a change, an empty list when nothing changed
        or the baseline was just set, and ``None`` when the check did not
        complete (not watching, busy, fetch failed or stopped meanwhile).
        """
        if not self.watching or self.url is None:
            return None
        if self._busy:
            self._skipped()
            return None

        token = self._token
        url = self.url
        self._busy = True
        try:
            self.check_count += 1
            check_number = self.check_count
            self.events.publish("checking", source=url, check=check_number)
            try:
                html = await self.fetcher(url)
            except Exception as exc:
                if token.cancelled:
                    return None
                logger.warning("Monitor fetch failed for %s: %s", url, exc)
                self.events.publish("error", source=url, error=str(exc), check=check_number)
                return None
            if token.cancelled:
                logger.debug("Discarding result for %s fetched after stop", url)
                return None
            return self._compare(url, html, check_number)
        finally:
            if token is self._token:
                self._busy = False

    def _compare(self, url: str, html: str, check_number: int) -> List[ChangeRecord]:
        new_hash = hash_content(html)

        if self.baseline is None:
            self.baseline = MonitorBaseline(url=url, hash=new_hash, html=html)
            self.state = MonitorState.WATCHING
            self.events.publish("baseline", source=url, hash=new_hash)
            return []

        if new_hash == self.baseline.hash:
            self.events.publish("no-change", source=url, check=check_number)
            return []

        diff = detect_changes(self.baseline.html, html)
        prev_hash = self.baseline.hash
        self.baseline.hash = new_hash
        self.baseline.html = html
        self.changes_detected += 1
        logger.info("Content change on %s: %s", url, ", ".join(c.type for c in diff))

        self.events.publish(
            "change",
            source=url,
            url=url,
            prev_hash=prev_hash,
            new_hash=new_hash,
            diff=[c.to_dict() for c in diff],
            check_number=check_number,
            detected_at=utcnow().isoformat(),
            audit=audit_html(url, html),
        )
        return diff

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "watching": self.watching,
            "url": self.url,
            "check_count": self.check_count,
            "changes_detected": self.changes_detected,
            "interval": self.interval,
        }
