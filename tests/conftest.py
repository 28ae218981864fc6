from collections.abc import AsyncIterator, Callable

import pytest
from aiohttp import web

from spaider.config import HarvestConfig
from spaider.dedup import FingerprintStore


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


def html(body: str) -> Callable:
    """aiohttp handler returning *body* as an HTML page."""

    async def handler(_):
        return web.Response(text=f"<html><body>{body}</body></html>", content_type="text/html")

    return handler


def text(body: str, content_type: str = "text/plain") -> Callable:
    async def handler(_):
        return web.Response(text=body, content_type=content_type)

    return handler


@pytest.fixture()
def store() -> FingerprintStore:
    """A fresh, empty fingerprint store per test."""
    return FingerprintStore()


@pytest.fixture()
def make_config() -> Callable[..., HarvestConfig]:
    """
    Build a HarvestConfig with test-friendly defaults (short timeouts, no retries).
    """

    def _make(start_url: str, **kwargs) -> HarvestConfig:
        kwargs.setdefault("timeout", 2.0)
        kwargs.setdefault("retry_times", 0)
        kwargs.setdefault("retry_backoff", 0.0)
        kwargs.setdefault("user_agent", "TestAgent/1.0")
        return HarvestConfig(start_url=start_url, **kwargs)

    return _make


def redirect(location: str, status: type = web.HTTPFound) -> Callable:
    async def handler(_):
        raise status(location=location)

    return handler
