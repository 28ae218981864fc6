"""
Link extraction for fetched HTML pages.
"""
from __future__ import annotations

from typing import Iterator

from bs4 import BeautifulSoup
from bs4.element import Tag


def iter_hrefs(html: str) -> Iterator[tuple[str, str]]:
    """
    Yield ``(href, anchor text)`` for every ``<a href>`` in *html*, in document order.

    Hrefs are returned raw; resolution and filtering are left to the caller.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href_val = tag.get("href")
        if not isinstance(href_val, str):
            continue
        yield href_val, tag.get_text(" ", strip=True)
