"""spaider.utils: URL canonicalisation and body decoding shared by the crawler and the assembler."""

from __future__ import annotations

import codecs
from typing import Optional, Sequence, Union
from urllib.parse import urlsplit, urlunsplit

from spaider.logger import logger

__all__: Sequence[str] = ("charset_of", "decode_body", "normalize_url")


def normalize_url(url: str) -> str:
    """Canonical frontier key: lower-case scheme and host, no fragment, ``/`` for an empty path."""
    parts = urlsplit(url)
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def charset_of(content_type: Optional[str]) -> Optional[str]:
    """Return the codec named by the ``charset`` parameter of *content_type*, if Python knows it."""
    for param in (content_type or "").split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() != "charset":
            continue
        candidate = value.strip().strip("\"'")
        if not candidate:
            return None
        try:
            return codecs.lookup(candidate).name
        except LookupError:
            logger.debug("Unknown charset %r", candidate)
            return None
    return None


def decode_body(body: Union[bytes, str, None], content_type: Optional[str] = None) -> str:
    """Decode *body* with the declared charset, UTF-8 otherwise; bad bytes are replaced."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    return body.decode(charset_of(content_type) or "utf-8", errors="replace")
