from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Tuple

import requests

from .config import DEFAULT_SETTINGS, Settings
from .errors import FetchError
from .extract import PageSnapshot, extract_snapshot
from .rules import Action, Issue, evaluate, score_issues
from .tags import TagSet, generate_tags
from .utils import normalize_url

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[str]]


@dataclass
class AuditResult:
    url: str
    issues: List[Issue]
    score: int
    snapshot: PageSnapshot
    tags: TagSet

    @property
    def auto_fix_count(self) -> int:
        return sum(1 for i in self.issues if i.action == Action.AUTO_FIX)

    @property
    def escalate_count(self) -> int:
        return sum(1 for i in self.issues if i.action == Action.ESCALATE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "score": self.score,
            "issues": [i.to_dict() for i in self.issues],
            "snapshot": self.snapshot.to_dict(),
            "tags": self.tags.to_dict(),
            "summary": {
                "total_issues": len(self.issues),
                "auto_fixed": self.auto_fix_count,
                "escalated": self.escalate_count,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditResult":
        return cls(
            url=data["url"],
            issues=[Issue.from_dict(i) for i in data.get("issues", [])],
            score=int(data.get("score", 0)),
            snapshot=PageSnapshot.from_dict(data.get("snapshot", {"url": data["url"]})),
            tags=TagSet.from_dict(data.get("tags", {})),
        )


def fetch(
    url: str, timeout: float = 15, user_agent: str = DEFAULT_SETTINGS.user_agent
) -> Tuple[int, str, Mapping[str, str]]:
    resp = requests.get(url, timeout=timeout, headers={"User-Agent": user_agent})
    return resp.status_code, resp.text, resp.headers


def fetch_page(url: str, settings: Settings = DEFAULT_SETTINGS) -> str:
    """Blocking fetch returning the page body, raising FetchError on failure."""
    try:
        status, text, _ = fetch(url, timeout=settings.fetch_timeout, user_agent=settings.user_agent)
    except requests.RequestException as exc:
        raise FetchError(url, f"Fetch failed: {exc}") from exc
    if not 200 <= status < 300:
        raise FetchError(url, f"Fetch failed: {status}", status_code=status)
    return text


async def fetch_html(url: str, settings: Settings = DEFAULT_SETTINGS) -> str:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(fetch_page, url, settings), settings.fetch_timeout
        )
    except asyncio.TimeoutError as exc:
        raise FetchError(url, f"Fetch timed out after {settings.fetch_timeout:g}s") from exc


def make_fetcher(settings: Settings = DEFAULT_SETTINGS) -> Fetcher:
    async def fetcher(url: str) -> str:
        return await fetch_html(url, settings)

    return fetcher


def audit_html(url: str, html: str) -> AuditResult:
    snapshot = extract_snapshot(html, url)
    issues = evaluate(snapshot)
    return AuditResult(
        url=url,
        issues=issues,
        score=score_issues(issues),
        snapshot=snapshot,
        tags=generate_tags(snapshot, url),
    )


def audit_url(url: str, settings: Settings = DEFAULT_SETTINGS) -> AuditResult:
    url = normalize_url(url)
    html = fetch_page(url, settings)
    logger.info("Fetched %s (%d bytes)", url, len(html))
    return audit_html(url, html)


@dataclass
class AuditSummary:
    results: List[AuditResult] = field(default_factory=list)

    @property
    def total_issues(self) -> int:
        return sum(len(r.issues) for r in self.results)

    @property
    def auto_fixed(self) -> int:
        return sum(r.auto_fix_count for r in self.results)

    @property
    def escalated(self) -> int:
        return sum(r.escalate_count for r in self.results)

    @property
    def scores(self) -> List[int]:
        return [r.score for r in self.results]
