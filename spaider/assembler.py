"""Turn fetched bodies into deduplicated Markdown documents."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from bs4 import BeautifulSoup
from markdownify import ATX, MarkdownConverter

from spaider.dedup import FingerprintStore, fingerprint
from spaider.logger import get_logger
from spaider.utils import decode_body

__all__: Sequence[str] = (
    "Document",
    "DocumentAssembler",
    "is_html",
    "split_paragraphs",
    "to_markdown",
)

logger = get_logger("assembler")

PARAGRAPH_SEPARATOR = "\n\n"
_HTML_SUFFIXES = (".html", ".htm")
_NON_CONTENT_TAGS = ("script", "style", "noscript", "template")


@dataclass(frozen=True, slots=True)
class Document:
    """A harvested page: canonical URL and its surviving paragraphs."""

    name: str
    body: str

    def render(self) -> str:
        return f"# {self.name}:\n\n{self.body}\n\n"


def to_markdown(html: str) -> str:
    """Convert *html* to Markdown; any failure yields an empty string."""
    try:
        soup = BeautifulSoup(html, "html.parser")
        for element in soup(list(_NON_CONTENT_TAGS)):
            element.decompose()
        return MarkdownConverter(heading_style=ATX).convert_soup(soup)
    except Exception as exc:  # conversion must never abort the crawl
        logger.warning("Markdown conversion failed: %s", exc)
        return ""


def is_html(path: str, content_type: Optional[str]) -> bool:
    return path.lower().endswith(_HTML_SUFFIXES) or "html" in (content_type or "").lower()


def split_paragraphs(text: str) -> List[str]:
    """Split *text* on blank lines into stripped, non-empty paragraphs."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return [p.strip() for p in text.split(PARAGRAPH_SEPARATOR) if p.strip()]


class DocumentAssembler:
    """Converts, splits and deduplicates page bodies against a shared store.

    A paragraph survives only if this call is the first, across the whole
    crawl, to insert its fingerprint. Paragraph order within a page is kept.
    """

    def __init__(
        self,
        store: FingerprintStore,
        converter: Callable[[str], str] = to_markdown,
    ) -> None:
        self.store = store
        self.converter = converter

    def dedup(self, text: str) -> str:
        kept = [p for p in split_paragraphs(text) if self.store.insert_if_absent(fingerprint(p))]
        return PARAGRAPH_SEPARATOR.join(kept).strip()

    def assemble(
        self,
        source_url: str,
        body: Union[bytes, str],
        content_type: Optional[str] = None,
        path: Optional[str] = None,
    ) -> Optional[Document]:
        """Build the :class:`Document` for one response, or None if nothing is new.

        *path* defaults to *source_url*; only its suffix is inspected.
        """
        text = decode_body(body or b"", content_type)
        if is_html(path if path is not None else source_url, content_type):
            try:
                text = self.converter(text)
            except Exception:
                logger.exception("Converter failed for %s", source_url)
                text = ""
        text = self.dedup(text or "")
        if not text:
            return None
        return Document(name=source_url, body=text)
