"""
Data models passed from the collector to its callbacks.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Optional
from urllib.parse import urlsplit

from spaider.policy import resolve_link
from spaider.utils import decode_body

if TYPE_CHECKING:  # pragma: no cover
    from spaider.crawler.collector import Collector


@dataclass(slots=True)
class Request:
    """A scheduled fetch: absolute URL and link depth (the start page is 0)."""

    url: str
    depth: int = 0
    collector: Optional["Collector"] = field(default=None, repr=False, compare=False)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    def absolute_url(self, href: str) -> Optional[str]:
        """Resolve *href* relative to this request; None if it cannot be resolved."""
        return resolve_link(self.url, href)

    def visit(self, url: str) -> bool:
        """Enqueue *url* one level deeper than this request."""
        if self.collector is None:
            raise RuntimeError("request is not bound to a collector")
        return self.collector.visit(url, self.depth + 1)


@dataclass(slots=True)
class Response:
    """A successful (2xx) fetch, body truncated to the collector's size limit."""

    request: Request
    status: int
    headers: Mapping[str, str]
    body: bytes

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    @property
    def is_html(self) -> bool:
        return "html" in self.content_type.lower()

    @property
    def text(self) -> str:
        return decode_body(self.body, self.content_type)


@dataclass(slots=True)
class Link:
    """An ``<a href>`` found on a fetched page."""

    href: str
    text: str
    request: Request

    def absolute_url(self) -> Optional[str]:
        return self.request.absolute_url(self.href)
