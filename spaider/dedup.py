"""Content-addressed paragraph store shared by every response handler of a crawl."""
from __future__ import annotations

import hashlib
import threading
from typing import Set

__all__ = ("Fingerprint", "FingerprintStore", "fingerprint")

Fingerprint = bytes


def fingerprint(paragraph: str) -> Fingerprint:
    """Return the 128-bit MD5 digest of the stripped *paragraph*."""
    return hashlib.md5(paragraph.strip().encode("utf-8")).digest()


class FingerprintStore:
    """Grow-only set of paragraph fingerprints.

    One lock guards the whole set; the critical section is a hash lookup and
    a conditional insert. Handlers may run as asyncio tasks or as threads.
    """

    def __init__(self) -> None:
        self._seen: Set[Fingerprint] = set()
        self._lock = threading.Lock()

    def contains(self, fp: Fingerprint) -> bool:
        with self._lock:
            return fp in self._seen

    __contains__ = contains

    def insert_if_absent(self, fp: Fingerprint) -> bool:
        """Insert *fp*; return True only for the first caller to see it."""
        with self._lock:
            if fp in self._seen:
                return False
            self._seen.add(fp)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def __repr__(self) -> str:
        return f"<FingerprintStore size={len(self)}>"
