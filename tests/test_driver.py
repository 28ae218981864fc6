import asyncio
import io
import re
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web

from spaider.crawler.models import Link, Request, Response
from spaider.dedup import FingerprintStore
from spaider.driver import CrawlDriver, harvest
from spaider.output import DocumentWriter
from tests.conftest import html, redirect, serve_app, text

NAV = '<ul><li><a href="/a">A</a></li><li><a href="/b.txt">B</a></li><li><a href="/logo.png">logo</a></li>' \
      '<li><a href="/data">data</a></li><li><a href="/private/x">private</a></li>' \
      '<li><a href="mailto:me@example.com">mail</a></li><li><a href="http://[::1">broken</a></li></ul>'
FOOTER = "<p>Shared footer text.</p>"


def parse_documents(output: str) -> dict[str, str]:
    """Split streamed output back into {name: body}."""
    docs = {}
    for match in re.finditer(r"^# (\S+):\n\n(.*?)\n\n(?=# \S+:\n|\Z)", output, flags=re.S | re.M):
        docs[match.group(1)] = match.group(2)
    return docs


@pytest_asyncio.fixture
async def site(unused_tcp_port: int) -> AsyncIterator[str]:
    app = web.Application()
    app.router.add_get("/", html(f"<h1>Home</h1>{NAV}<p>Welcome home.</p>{FOOTER}"))
    app.router.add_get("/a", html(f"<h1>Page A</h1>{NAV}<p>Only on A.</p>{FOOTER}"))
    app.router.add_get("/b.txt", text("Shared footer text.\n\nPlain B paragraph."))
    app.router.add_get("/logo.png", text("binary-ish"))
    app.router.add_get("/data", text('{"key": "value"}', content_type="application/json"))
    app.router.add_get("/private/x", html("<p>secret</p>"))

    async for url in serve_app(app, unused_tcp_port):
        yield url


@pytest.mark.asyncio()
async def test_harvest_end_to_end(site, make_config):
    out = io.StringIO()
    config = make_config(site + "/", deny=["/private/"], synchronous=True)
    stats = await asyncio.wait_for(harvest(config, out), timeout=15)

    docs = parse_documents(out.getvalue())
    assert list(docs) == [site + "/", site + "/a", site + "/b.txt"]

    home = docs[site + "/"]
    assert home.startswith("# Home")
    assert "Welcome home." in home
    assert "Shared footer text." in home

    page_a = docs[site + "/a"]
    assert "Only on A." in page_a
    assert "Shared footer text." not in page_a
    assert "[A](/a)" not in page_a

    assert docs[site + "/b.txt"] == "Plain B paragraph."
    assert "secret" not in out.getvalue()
    assert "binary-ish" not in out.getvalue()
    assert "value" not in out.getvalue()

    assert stats.pages == 5
    assert stats.emitted == 3
    assert stats.suppressed == 2
    assert stats.duplicates == 0


@pytest.mark.asyncio()
async def test_output_format(site, make_config):
    out = io.StringIO()
    await harvest(make_config(site + "/b.txt", allow=["/nothing-else$"]), out)
    assert out.getvalue() == f"# {site}/b.txt:\n\nShared footer text.\n\nPlain B paragraph.\n\n"


@pytest.mark.asyncio()
async def test_depth_bound(unused_tcp_port, make_config):
    app = web.Application()
    app.router.add_get("/", html('<p>root</p><a href="/d1">d1</a>'))
    app.router.add_get("/d1", html('<p>depth one</p><a href="/d2">d2</a>'))
    app.router.add_get("/d2", html("<p>depth two</p>"))

    async for base in serve_app(app, unused_tcp_port):
        out = io.StringIO()
        stats = await harvest(make_config(base + "/", max_depth=1), out)

    assert "depth one" in out.getvalue()
    assert "depth two" not in out.getvalue()
    assert stats.links_rejected >= 1


@pytest.mark.asyncio()
async def test_fully_duplicated_page_is_not_streamed(unused_tcp_port, make_config):
    app = web.Application()
    app.router.add_get("/", html('<p>same</p><p><a href="/copy">copy</a></p>'))
    app.router.add_get("/copy", html('<p>same</p><p><a href="/copy">copy</a></p>'))

    async for base in serve_app(app, unused_tcp_port):
        out = io.StringIO()
        stats = await harvest(make_config(base + "/", synchronous=True), out)

    assert list(parse_documents(out.getvalue())) == [base + "/"]
    assert stats.duplicates == 1


def _response(url: str, body: bytes, content_type: str) -> Response:
    return Response(request=Request(url), status=200, headers={"Content-Type": content_type}, body=body)


def test_driver_handlers_without_network(make_config):
    out = io.StringIO()
    driver = CrawlDriver(make_config("http://example.com/docs/"), DocumentWriter(out), store=FingerprintStore())

    driver.handle_response(_response("http://example.com/docs/a.png", b"A", "text/plain"))
    driver.handle_response(_response("http://example.com/docs/api", b"{}", "application/json"))
    driver.handle_response(_response("http://example.com/docs/", b"A\n\nB", "text/plain"))
    driver.handle_response(_response("http://example.com/docs/x", b"B", "text/plain"))

    assert out.getvalue() == "# http://example.com/docs/:\n\nA\n\nB\n\n"
    assert driver.stats.suppressed == 2
    assert driver.stats.duplicates == 1
    assert driver.sink.count == 1


def test_handle_link_enqueues_only_admitted(make_config):
    driver = CrawlDriver(make_config("http://example.com/docs/", deny=["/docs/old/"]), DocumentWriter(io.StringIO()))
    queued: list[tuple[str, int]] = []

    class FakeCollector:
        def visit(self, url, depth):
            queued.append((url, depth))
            return True

    page = Request("http://example.com/docs/index.html", depth=0, collector=FakeCollector())
    for href in ["guide", "/docs/old/x", "/blog/", "javascript:alert(1)", "http://[::1"]:
        driver.handle_link(Link(href=href, text="", request=page))

    assert queued == [("http://example.com/docs/guide", 1)]
    assert driver.stats.links_admitted == 1
    assert driver.stats.links_rejected == 4


@pytest.mark.asyncio()
async def test_redirect_into_denied_url_is_not_emitted(unused_tcp_port, make_config):
    app = web.Application()
    app.router.add_get("/docs/", html('<p>Docs index.</p><p><a href="/docs/go">go</a> <a href="/docs/moved">moved</a></p>'))
    app.router.add_get("/docs/go", redirect("/docs/private/secret"))
    app.router.add_get("/docs/private/secret", html("<p>out of scope secret</p>"))
    app.router.add_get("/docs/moved", redirect("/docs/landing"))
    app.router.add_get("/docs/landing", html("<p>Landing text.</p>"))

    async for base in serve_app(app, unused_tcp_port):
        out = io.StringIO()
        stats = await harvest(make_config(base + "/docs/", deny=["/private/"]), out)

    assert "out of scope secret" not in out.getvalue()
    docs = parse_documents(out.getvalue())
    assert docs[base + "/docs/landing"] == "Landing text."
    assert stats.redirects_rejected == 1


def test_handle_redirect_applies_link_policy(make_config):
    driver = CrawlDriver(make_config("http://example.com/docs/", deny=["/private/"], max_depth=1), DocumentWriter(io.StringIO()))
    page = Request("http://example.com/docs/a", depth=1)
    assert driver.handle_redirect(page, "http://example.com/docs/b") is True
    assert driver.handle_redirect(page, "http://example.com/docs/private/b") is False
    assert driver.handle_redirect(page, "http://other.example/docs/") is False
    assert driver.stats.redirects_rejected == 2


@pytest.mark.asyncio()
async def test_concurrent_workers_emit_each_shared_paragraph_once(unused_tcp_port, make_config):
    pages = 24
    shared = ["<p>Shared header paragraph.</p>", "<p>Shared footer paragraph.</p>"]
    app = web.Application()
    index = "".join(f'<p><a href="/p{i}">page {i}</a></p>' for i in range(pages))
    app.router.add_get("/", html(shared[0] + index + shared[1]))
    for i in range(pages):
        app.router.add_get(f"/p{i}", html(f"{shared[0]}<p>Unique paragraph number {i} here.</p>{shared[1]}"))

    async for base in serve_app(app, unused_tcp_port):
        out = io.StringIO()
        config = make_config(base + "/", concurrency=8)
        assert config.synchronous is False
        stats = await asyncio.wait_for(harvest(config, out), timeout=30)

    output = out.getvalue()
    assert output.count("Shared header paragraph.") == 1
    assert output.count("Shared footer paragraph.") == 1
    for i in range(pages):
        assert output.count(f"Unique paragraph number {i} here.") == 1
    assert len(parse_documents(output)) == pages + 1
    assert stats.emitted == pages + 1
