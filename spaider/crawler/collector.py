"""
Asynchronous collector: the fetch loop the harvest runs on.

The collector owns the frontier, the HTTP session and the worker tasks. It
knows nothing about what is kept or emitted; callers register callbacks and
decide, from inside the link callback, which URLs go back into the frontier
(``link.request.visit(url)``).

Callbacks are plain functions called inside the event loop. An exception
raised by a callback is logged and the crawl continues.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Sequence, Set

from aiohttp import ClientError, ClientSession, ClientTimeout

from spaider.crawler.link_extractor import iter_hrefs
from spaider.crawler.models import Link, Request, Response
from spaider.logger import get_logger
from spaider.policy import resolve_link
from spaider.utils import normalize_url

__all__ = ("Collector",)

RequestCallback = Callable[[Request], None]
RedirectCallback = Callable[[Request, str], bool]
ResponseCallback = Callable[[Response], None]
LinkCallback = Callable[[Link], None]

_CHUNK_SIZE = 64 * 1024


class Collector:
    """Breadth-first async crawler with URL-level dedup, retries and a body size cap."""
    _RETRY_STATUS: Sequence[int] = tuple(range(500, 600)) + (429,)
    _REDIRECT_STATUS: Sequence[int] = (301, 302, 303, 307, 308)
    MAX_REDIRECTS = 10

    def __init__(self, settings) -> None:
        self.settings = settings
        self.concurrency: int = 1 if settings.synchronous else settings.concurrency
        self.session: Optional[ClientSession] = None
        self.logger = get_logger("collector")
        self.seen: Set[str] = set()
        self.pages_fetched = 0
        self.failures = 0
        self._queue: asyncio.Queue[Request] = asyncio.Queue()
        self._stopped = False
        self._request_callbacks: List[RequestCallback] = []
        self._redirect_callbacks: List[RedirectCallback] = []
        self._response_callbacks: List[ResponseCallback] = []
        self._link_callbacks: List[LinkCallback] = []

    # ------------------------------------------------------------------ #
    # Callback registration                                                #
    # ------------------------------------------------------------------ #

    def on_request(self, callback: RequestCallback) -> RequestCallback:
        self._request_callbacks.append(callback)
        return callback

    def on_redirect(self, callback: RedirectCallback) -> RedirectCallback:
        """Register a redirect filter; every filter must return True for a hop to be followed."""
        self._redirect_callbacks.append(callback)
        return callback

    def on_response(self, callback: ResponseCallback) -> ResponseCallback:
        self._response_callbacks.append(callback)
        return callback

    def on_link(self, callback: LinkCallback) -> LinkCallback:
        self._link_callbacks.append(callback)
        return callback

    # ------------------------------------------------------------------ #
    # Session lifecycle                                                    #
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Collector:
        self.session = ClientSession(
            timeout=ClientTimeout(total=self.settings.timeout),
            headers={"User-Agent": self.settings.user_agent},
            raise_for_status=False,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    # ------------------------------------------------------------------ #
    # Frontier                                                             #
    # ------------------------------------------------------------------ #

    def visit(self, url: str, depth: int = 0) -> bool:
        """Enqueue *url*; no-op (False) if it was already queued or the crawl is stopping."""
        if self._stopped:
            return False
        key = normalize_url(url)
        if key in self.seen:
            return False
        self.seen.add(key)
        self._queue.put_nowait(Request(url=url, depth=depth, collector=self))
        return True

    def stop(self) -> None:
        """Stop admitting new URLs; requests already queued still complete."""
        self._stopped = True

    async def run(self, start_url: str) -> None:
        """Crawl from *start_url* until the frontier is exhausted."""
        if not self.session:
            raise RuntimeError("Session not initialized")
        self.logger.info("Crawl started: %s (workers: %d)", start_url, self.concurrency)
        start = time.monotonic()
        self.visit(start_url, 0)
        workers = [asyncio.create_task(self._worker()) for _ in range(self.concurrency)]
        try:
            await self._queue.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
        duration = time.monotonic() - start
        self.logger.info(
            "Crawl finished: %d pages in %.2f s (%d failed)", self.pages_fetched, duration, self.failures
        )

    async def _worker(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self._process(request)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception("Unexpected error while processing %s", request.url)
            finally:
                self._queue.task_done()

    async def _process(self, request: Request) -> None:
        self._dispatch(self._request_callbacks, request)
        response = await self._fetch(request)
        if response is None:
            return
        self.pages_fetched += 1
        self._dispatch(self._response_callbacks, response)
        if response.is_html and self._link_callbacks:
            for href, text in iter_hrefs(response.text):
                self._dispatch(self._link_callbacks, Link(href=href, text=text, request=request))

    def _dispatch(self, callbacks: Sequence[Callable], arg) -> None:
        for callback in callbacks:
            try:
                callback(arg)
            except Exception:
                self.logger.exception("Callback %r failed", callback)

    # ------------------------------------------------------------------ #
    # Fetching                                                             #
    # ------------------------------------------------------------------ #

    async def _fetch(self, request: Request) -> Optional[Response]:
        if not self.session:
            raise RuntimeError("Session not initialized")
        attempts = 0
        redirects = 0
        while True:
            try:
                async with self.session.get(request.url, allow_redirects=False) as resp:
                    if resp.status in self._RETRY_STATUS:
                        raise ClientError(f"retryable status {resp.status}")
                    if resp.status in self._REDIRECT_STATUS:
                        redirects += 1
                        if redirects > self.MAX_REDIRECTS:
                            self.logger.warning("Too many redirects from %s", request.url)
                            return None
                        target = self._redirect_target(request, resp.headers.get("Location"))
                        if target is None:
                            return None
                        request.url = target
                        continue
                    if not 200 <= resp.status < 300:
                        self.logger.debug("Skipping %s: HTTP %d", request.url, resp.status)
                        return None
                    body = await self._read_body(resp)
                    return Response(request=request, status=resp.status, headers=resp.headers.copy(), body=body)
            except (ClientError, asyncio.TimeoutError) as e:
                attempts += 1
                if attempts > self.settings.retry_times:
                    self.failures += 1
                    self.logger.warning("Failed %s: %s", request.url, e)
                    return None
                backoff = min(60.0, self.settings.retry_backoff * 2 ** (attempts - 1))
                self.logger.debug(
                    "Retry %d/%d for %s after %.2f s", attempts, self.settings.retry_times, request.url, backoff
                )
                await asyncio.sleep(backoff)

    def _redirect_target(self, request: Request, location: Optional[str]) -> Optional[str]:
        """Absolute URL to follow for a redirect, or None when the hop is refused.

        A hop is refused when the Location is missing or unresolvable, when a
        redirect filter rejects it, or when the target is already known to the
        frontier (it has been or will be fetched on its own).
        """
        target = resolve_link(request.url, location) if location else None
        if target is None:
            self.logger.debug("Unfollowable redirect from %s: %r", request.url, location)
            return None
        for callback in self._redirect_callbacks:
            try:
                allowed = callback(request, target)
            except Exception:
                self.logger.exception("Redirect filter %r failed", callback)
                allowed = False
            if not allowed:
                self.logger.debug("Redirect %s -> %s refused", request.url, target)
                return None
        key = normalize_url(target)
        if key != normalize_url(request.url):
            if key in self.seen:
                self.logger.debug("Redirect %s -> %s already seen", request.url, target)
                return None
            self.seen.add(key)
        return target

    async def _read_body(self, resp) -> bytes:
        limit = self.settings.max_body_size
        buf = bytearray()
        async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
            buf.extend(chunk)
            if len(buf) >= limit:
                self.logger.debug("Body of %s truncated at %d bytes", resp.url, limit)
                break
        return bytes(buf[:limit])
