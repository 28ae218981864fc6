"""spaider.driver: glue between the collector and the harvest decisions.

The driver answers four questions for the collector:

* a URL is about to be requested – echo it when running verbosely;
* a response arrived – filter it, assemble it, stream the resulting document;
* a link was found – resolve it, admit or reject it, enqueue it when admitted;
* a request is being redirected – follow only targets the link policy admits.

It holds no scheduling logic of its own; the collector may invoke these
handlers from any number of concurrent workers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional, TextIO

from spaider.assembler import DocumentAssembler
from spaider.config import HarvestConfig
from spaider.crawler import Collector, Link, Request, Response
from spaider.dedup import FingerprintStore
from spaider.logger import logger
from spaider.output import DocumentWriter
from spaider.policy import AdmissionPolicy, LinkDecision, ResponseDecision

__all__ = ["CrawlDriver", "CrawlStats", "harvest"]


@dataclass(slots=True)
class CrawlStats:
    """Counters collected over one harvest."""

    pages: int = 0
    emitted: int = 0
    suppressed: int = 0
    duplicates: int = 0
    links_admitted: int = 0
    links_rejected: int = 0
    redirects_rejected: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class CrawlDriver:
    """Feeds admission, assembly and output decisions into a :class:`Collector`."""

    def __init__(
        self,
        config: HarvestConfig,
        sink: DocumentWriter,
        store: Optional[FingerprintStore] = None,
        policy: Optional[AdmissionPolicy] = None,
        assembler: Optional[DocumentAssembler] = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.store = store if store is not None else FingerprintStore()
        self.policy = policy if policy is not None else AdmissionPolicy.from_config(config)
        self.assembler = assembler if assembler is not None else DocumentAssembler(self.store)
        self.stats = CrawlStats()

    def handle_request(self, request: Request) -> None:
        if self.config.verbose:
            logger.info("%s", request.url)

    def handle_response(self, response: Response) -> None:
        self.stats.pages += 1
        decision = self.policy.decide_response(response.path, response.content_type)
        if decision is ResponseDecision.SUPPRESS:
            self.stats.suppressed += 1
            logger.debug("Suppressed %s (%s)", response.url, response.content_type or "no content type")
            return
        document = self.assembler.assemble(
            response.url, response.body, response.content_type, path=response.path
        )
        if document is None:
            self.stats.duplicates += 1
            logger.debug("Nothing new on %s", response.url)
            return
        self.sink.write(document)
        self.stats.emitted += 1

    def handle_link(self, link: Link) -> None:
        request = link.request
        decision, url = self.policy.admit_href(request.url, link.href, request.depth + 1)
        if decision is LinkDecision.VISIT and url is not None:
            self.stats.links_admitted += 1
            request.visit(url)
        else:
            self.stats.links_rejected += 1
            logger.debug("Rejected link %r on %s", link.href, request.url)

    def handle_redirect(self, request: Request, url: str) -> bool:
        """Follow a redirect only to a URL the link policy would admit at the same depth."""
        if self.policy.decide_link(url, request.depth) is LinkDecision.VISIT:
            return True
        self.stats.redirects_rejected += 1
        logger.debug("Rejected redirect %s -> %s", request.url, url)
        return False

    def attach(self, collector: Collector) -> Collector:
        collector.on_request(self.handle_request)
        collector.on_redirect(self.handle_redirect)
        collector.on_response(self.handle_response)
        collector.on_link(self.handle_link)
        return collector

    async def run(self) -> CrawlStats:
        """Crawl from the configured start URL until the frontier is exhausted."""
        async with self.attach(Collector(self.config)) as collector:
            await collector.run(self.config.start_url)
        logger.info(
            "Harvest done: %d pages, %d documents, %d suppressed, %d fully duplicated, %d unique paragraphs",
            self.stats.pages,
            self.stats.emitted,
            self.stats.suppressed,
            self.stats.duplicates,
            len(self.store),
        )
        return self.stats


async def harvest(config: HarvestConfig, stream: TextIO) -> CrawlStats:
    """Run a complete harvest, streaming documents to *stream*."""
    driver = CrawlDriver(config, DocumentWriter(stream))
    return await driver.run()
