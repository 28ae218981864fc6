"""URL admission policy.

Two independent gates decide what the crawl touches:

* :meth:`AdmissionPolicy.decide_link` – whether a discovered link is handed
  to the crawler frontier. Deny patterns win over allow patterns, then the
  depth bound applies.
* :meth:`AdmissionPolicy.decide_response` – whether an already fetched
  response is converted and emitted, judged by path extension and
  content type.

The policy is immutable after construction and holds only compiled
patterns and frozensets, so any number of concurrent handlers may consult
it without locking.
"""
from __future__ import annotations

import enum
import posixpath
import re
from typing import Iterable, Optional, Pattern, Sequence, Tuple, Union
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

__all__ = (
    "AdmissionPolicy",
    "DEFAULT_EXTENSIONS",
    "LinkDecision",
    "ResponseDecision",
    "default_allow_pattern",
    "extension_of",
    "resolve_link",
)

DEFAULT_EXTENSIONS: Tuple[str, ...] = ("", ".html", ".md", ".txt", ".rst")

_PatternT = Union[str, Pattern[str]]


class LinkDecision(enum.Enum):
    VISIT = "visit"
    REJECT = "reject"


class ResponseDecision(enum.Enum):
    EMIT = "emit"
    SUPPRESS = "suppress"


def default_allow_pattern(start_url: str) -> str:
    """Regex matching every URL in the same subtree as *start_url*.

    The subtree is the start URL without query and fragment; when the last
    path segment names a file (``/docs/index.html``) its directory is used
    instead, so sibling pages stay reachable. A bare host is closed off at
    the end of the authority so lookalike hosts, userinfo tricks and other
    ports do not match.
    """
    parts = urlsplit(start_url)
    origin = urlunsplit((parts.scheme, parts.netloc, "", "", ""))
    path = parts.path
    if not path:
        return "^" + re.escape(origin) + "(?:[/?#]|$)"
    if posixpath.splitext(posixpath.basename(path))[1]:
        path = path[: path.rfind("/") + 1]
    return "^" + re.escape(origin + path)


def extension_of(path: str) -> str:
    """Lower-cased dot-suffix of the final path segment (``""`` if none)."""
    return posixpath.splitext(posixpath.basename(path))[1].lower()


def resolve_link(base_url: str, href: str) -> Optional[str]:
    """Resolve *href* against *base_url*.

    Returns the absolute URL without fragment, or None when the href is
    malformed or does not point to an http(s) resource.
    """
    if not isinstance(href, str):
        return None
    href = href.strip()
    if not href:
        return None
    try:
        absolute, _ = urldefrag(urljoin(base_url, href))
        parts = urlsplit(absolute)
        _ = parts.port  # ValueError on a malformed port
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    return absolute


def _compile(patterns: Iterable[_PatternT]) -> Tuple[Pattern[str], ...]:
    return tuple(p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns)


class AdmissionPolicy:
    """Deny/allow/depth gate for links and extension/content-type gate for responses."""

    def __init__(
        self,
        start_url: str,
        allow: Sequence[_PatternT] = (),
        deny: Sequence[_PatternT] = (),
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        max_depth: Optional[int] = None,
    ) -> None:
        self.start_url = start_url
        self.deny = _compile(deny)
        self.allow = _compile(allow) or _compile([default_allow_pattern(start_url)])
        self.extensions = frozenset(e.lower() for e in extensions)
        self.max_depth = max_depth

    @classmethod
    def from_config(cls, config) -> AdmissionPolicy:
        return cls(
            start_url=config.start_url,
            allow=config.allow,
            deny=config.deny,
            extensions=config.extensions,
            max_depth=config.max_depth,
        )

    # ------------------------------------------------------------------ #
    # Link admission                                                       #
    # ------------------------------------------------------------------ #

    def decide_link(self, url: str, depth: int) -> LinkDecision:
        if any(p.search(url) for p in self.deny):
            return LinkDecision.REJECT
        if not any(p.search(url) for p in self.allow):
            return LinkDecision.REJECT
        if self.max_depth is not None and depth > self.max_depth:
            return LinkDecision.REJECT
        return LinkDecision.VISIT

    def admit_href(self, base_url: str, href: str, depth: int) -> Tuple[LinkDecision, Optional[str]]:
        """Resolve *href* found on *base_url* and decide on it.

        Unresolvable links are rejected; the resolved URL is returned
        alongside the decision so the caller can enqueue it.
        """
        url = resolve_link(base_url, href)
        if url is None:
            return LinkDecision.REJECT, None
        return self.decide_link(url, depth), url

    # ------------------------------------------------------------------ #
    # Response filtering                                                   #
    # ------------------------------------------------------------------ #

    def allows_extension(self, path: str) -> bool:
        return extension_of(path) in self.extensions

    @staticmethod
    def allows_content_type(content_type: Optional[str]) -> bool:
        return (content_type or "").strip().lower().startswith("text/")

    def decide_response(self, path: str, content_type: Optional[str]) -> ResponseDecision:
        if self.allows_extension(path) and self.allows_content_type(content_type):
            return ResponseDecision.EMIT
        return ResponseDecision.SUPPRESS

    def __repr__(self) -> str:
        return (
            f"<AdmissionPolicy allow={[p.pattern for p in self.allow]} "
            f"deny={[p.pattern for p in self.deny]} max_depth={self.max_depth}>"
        )
