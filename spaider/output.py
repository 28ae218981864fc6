"""
Append-only document sink.

Each document is written as::

    # <name>:

    <body>

in a single ``write`` call followed by a flush, so the stream can be piped
into other tools while the crawl is still running.
"""
from __future__ import annotations

import threading
from typing import TextIO

from spaider.assembler import Document


class DocumentWriter:
    """Streams :class:`Document` objects to a text stream, one at a time."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.count = 0
        self._lock = threading.Lock()

    def write(self, document: Document) -> None:
        rendered = document.render()
        with self._lock:
            self.stream.write(rendered)
            self.stream.flush()
            self.count += 1


__all__ = ["DocumentWriter"]
