"""HTML -> PageSnapshot.

Every accessor falls back to an empty value so that any markup, including an
empty string, yields a complete snapshot.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag

from .errors import ParseError

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r"^h[1-6]$")
NON_CONTENT_PARENTS = ["head", "title", "noscript", "script", "style", "template"]


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class Image:
    src: str
    alt: str


@dataclass(frozen=True)
class PageSnapshot:
    url: str
    title: str = ""
    description: str = ""
    canonical: str = ""
    og_title: str = ""
    og_description: str = ""
    og_image: str = ""
    twitter_card: str = ""
    headings: Tuple[Heading, ...] = ()
    images: Tuple[Image, ...] = ()
    body_text: str = ""
    word_count: int = 0
    links: Tuple[str, ...] = ()
    internal_links: Tuple[str, ...] = ()
    structured_data: Tuple[Any, ...] = field(default=())

    @property
    def h1s(self) -> List[str]:
        return [h.text for h in self.headings if h.level == 1]

    @property
    def h2s(self) -> List[str]:
        return [h.text for h in self.headings if h.level == 2]

    @property
    def images_missing_alt(self) -> List[Image]:
        return [img for img in self.images if not img.alt]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["headings"] = [asdict(h) for h in self.headings]
        data["images"] = [asdict(i) for i in self.images]
        data["links"] = list(self.links)
        data["internal_links"] = list(self.internal_links)
        data["structured_data"] = list(self.structured_data)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageSnapshot":
        return cls(
            url=data.get("url", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            canonical=data.get("canonical", ""),
            og_title=data.get("og_title", ""),
            og_description=data.get("og_description", ""),
            og_image=data.get("og_image", ""),
            twitter_card=data.get("twitter_card", ""),
            headings=tuple(Heading(int(h["level"]), h["text"]) for h in data.get("headings", [])),
            images=tuple(Image(i.get("src", ""), i.get("alt", "")) for i in data.get("images", [])),
            body_text=data.get("body_text", ""),
            word_count=int(data.get("word_count", 0)),
            links=tuple(data.get("links", [])),
            internal_links=tuple(data.get("internal_links", [])),
            structured_data=tuple(data.get("structured_data", [])),
        )


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def is_internal_href(href: Optional[str]) -> bool:
    # Anything that is not an absolute http(s)/mailto/tel link counts as
    # internal, including "#top" and malformed values.
    if not href:
        return False
    return not (href.startswith("http") or href.startswith("mailto:") or href.startswith("tel:"))


def parse_json_ld(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ParseError(f"Invalid JSON-LD block: {exc}") from exc


def _attr(soup: BeautifulSoup, name: str, attrs: Dict[str, str], attr: str) -> str:
    tag = soup.find(name, attrs=attrs)
    if tag is None:
        return ""
    value = tag.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _text_content(node: Tag) -> str:
    # Comments, doctypes and script/style strings are NavigableString
    # subclasses and fail the exact type check.
    parts: List[str] = []
    for s in node.find_all(string=True):
        if type(s) is not NavigableString:
            continue
        if s.find_parent(NON_CONTENT_PARENTS) is not None:
            continue
        parts.append(str(s))
    return "".join(parts).strip()


def count_words(text: str) -> int:
    return len(text.split())


def extract_structured_data(soup: BeautifulSoup) -> List[Any]:
    blocks: List[Any] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            blocks.append(parse_json_ld(script.get_text()))
        except ParseError as exc:
            logger.debug("Dropping structured-data block: %s", exc)
    return blocks


def extract_snapshot(html: str, url: str) -> PageSnapshot:
    soup = parse_html(html)

    title_tag = soup.find("title")
    title = title_tag.get_text().strip() if title_tag is not None else ""

    headings = tuple(
        Heading(level=int(el.name[1]), text=el.get_text().strip())
        for el in soup.find_all(HEADING_RE)
    )
    images = tuple(
        Image(src=img.get("src") or "", alt=img.get("alt") or "")
        for img in soup.find_all("img")
    )

    body_text = _text_content(soup.body if soup.body is not None else soup)

    links = tuple(a.get("href") for a in soup.find_all("a", href=True))
    internal_links = tuple(href for href in links if is_internal_href(href))

    return PageSnapshot(
        url=url,
        title=title,
        description=_attr(soup, "meta", {"name": "description"}, "content"),
        canonical=_attr(soup, "link", {"rel": "canonical"}, "href"),
        og_title=_attr(soup, "meta", {"property": "og:title"}, "content"),
        og_description=_attr(soup, "meta", {"property": "og:description"}, "content"),
        og_image=_attr(soup, "meta", {"property": "og:image"}, "content"),
        twitter_card=_attr(soup, "meta", {"name": "twitter:card"}, "content"),
        headings=headings,
        images=images,
        body_text=body_text,
        word_count=count_words(body_text),
        links=links,
        internal_links=internal_links,
        structured_data=tuple(extract_structured_data(soup)),
    )
