from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:")


def normalize_url(url: str) -> str:
    cleaned = url.strip()
    parsed = urlparse(cleaned)
    scheme = (parsed.scheme or "").lower()
    netloc = parsed.netloc
    path = parsed.path
    query = parsed.query

    if not netloc:
        if scheme not in {"http", "https"}:
            scheme = "https"
        reparsed = urlparse(f"//{cleaned}", scheme=scheme)
        if reparsed.netloc:
            netloc = reparsed.netloc
            path = reparsed.path
            query = reparsed.query or query
    else:
        scheme = scheme or "https"

    if not netloc and path and not path.startswith("/"):
        netloc = path
        path = ""

    if not netloc:
        raise ValueError(f"Cannot determine host for URL: {url!r}")

    if not path:
        path = "/"
    elif not path.startswith("/"):
        path = f"/{path}"

    return urlunparse((scheme, netloc, path, "", query, ""))


def is_same_host(base: str, other: str) -> bool:
    b = urlparse(base).hostname
    o = urlparse(other).hostname
    return bool(b) and b == o


def to_absolute(base: str, maybe_rel: str) -> str:
    return urljoin(base, maybe_rel)


def strip_query_and_fragment(url: str) -> str:
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path or "/", "", "", ""))


def discover_same_host_links(base_url: str, hrefs: Iterable[Optional[str]]) -> List[str]:
    """Resolve ``hrefs`` against ``base_url`` and keep unique same-host pages.

    Query strings and fragments are dropped before deduplication, and the
    base page itself is never returned. Order of first appearance is kept.
    """
    root = urlparse(base_url)
    if root.scheme not in {"http", "https"} or not root.hostname:
        return []
    root_clean = strip_query_and_fragment(base_url)

    links: List[str] = []
    seen = set()
    for raw in hrefs:
        href = (raw or "").strip()
        if not href or href.startswith("#"):
            continue
        if href.lower().startswith(SKIPPED_SCHEMES):
            continue
        try:
            absolute = urlparse(to_absolute(base_url, href))
        except ValueError:
            continue
        if absolute.scheme not in {"http", "https"}:
            continue
        if absolute.hostname != root.hostname:
            continue
        clean = strip_query_and_fragment(absolute.geturl())
        if clean == root_clean or clean in seen:
            continue
        seen.add(clean)
        links.append(clean)
    return links


def domain_of(url: str) -> str:
    host = urlparse(url).hostname
    if host:
        return host
    return re.sub(r"https?://", "", url).split("/")[0] or "website"


def brand_of(url: str) -> str:
    """Domain with its last suffix removed, first letter upper-cased."""
    return capitalize(re.sub(r"\.[a-z]+$", "", domain_of(url)))


def capitalize(s: str) -> str:
    return s[:1].upper() + s[1:]


def title_case(s: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), s)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit - 3`` characters and append an ellipsis."""
    return text[: limit - 3] + "..."


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def round_half_up(n: float) -> int:
    return int(math.floor(n + 0.5))
