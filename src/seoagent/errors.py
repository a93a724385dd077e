from __future__ import annotations

from typing import Optional


class SEOAgentError(Exception):
    """Base class for errors raised by seoagent."""


class FetchError(SEOAgentError):
    """A page could not be fetched: network failure, timeout or non-2xx status."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(SEOAgentError):
    """A structured-data block is not valid JSON."""


class ConfigError(SEOAgentError, ValueError):
    """Invalid interval, URL or setting."""


class StoreError(SEOAgentError):
    """The session store could not read or write a value."""
