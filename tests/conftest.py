from __future__ import annotations

from typing import Callable, Dict, List, Optional, Union

import pytest

from seoagent.demo import DEMO_HTML
from seoagent.errors import FetchError

BARE_HTML = "<html><head></head><body><p>Hello world, this is a tiny page.</p></body></html>"


def page_html(
    title: str = "",
    description: str = "",
    body: str = "",
    head_extra: str = "",
) -> str:
    head = ""
    if title:
        head += f"<title>{title}</title>"
    if description:
        head += f'<meta name="description" content="{description}">'
    return f"<html><head>{head}{head_extra}</head><body>{body}</body></html>"


Response = Union[str, Exception, Callable[[str], str]]


class FakeFetcher:
    """Async fetcher serving canned pages and recording every requested URL.

    ``pages`` maps a URL to HTML, an exception to raise, or a callable. A
    list value is consumed one item per request, the last item repeating.
    """

    def __init__(self, pages: Optional[Dict[str, Union[Response, List[Response]]]] = None, default: Optional[str] = None):
        self.pages = dict(pages or {})
        self.default = default
        self.calls: List[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        value = self.pages.get(url, self.default)
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if value is None:
            raise FetchError(url, "Fetch failed: 404", status_code=404)
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(url)
        return value


@pytest.fixture
def bare_html() -> str:
    return BARE_HTML


@pytest.fixture
def demo_html() -> str:
    return DEMO_HTML
