from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from opentelemetry import trace

from sweeps.core.errors import SweepDiagnostics, SweepError, SweepErrorKind
from sweeps.extractors.engine import DEFAULT_STRATEGY, ExtractionStrategy, PageExtraction, extract_page
from sweeps.extractors.links import priority_links, rank_links
from sweeps.extractors.text import parse_page
from sweeps.services.fetcher import DiagnosticFetcher

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

QUEUE_SLACK = 5


@dataclass(slots=True)
class PageVisit:
    url: str
    diagnostics: SweepDiagnostics
    extraction: PageExtraction | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass(slots=True)
class CrawlResult:
    seed_url: str
    visits: list[PageVisit] = field(default_factory=list)
    error_code: str | None = None
    message: str | None = None

    @property
    def seed_diagnostics(self) -> SweepDiagnostics:
        return self.visits[0].diagnostics if self.visits else SweepDiagnostics(final_url=self.seed_url)

    @property
    def pages_fetched(self) -> int:
        return sum(1 for visit in self.visits if visit.extraction is not None)

    @property
    def extractions(self) -> list[PageExtraction]:
        return [visit.extraction for visit in self.visits if visit.extraction is not None]

    def covered_fields(self) -> set[str]:
        covered: set[str] = set()
        for extraction in self.extractions:
            covered |= extraction.covered_fields()
        return covered

    def found(self) -> int:
        return sum(extraction.found() for extraction in self.extractions)


async def crawl_entity(
    fetcher: DiagnosticFetcher,
    seed_url: str,
    *,
    strategy: ExtractionStrategy = DEFAULT_STRATEGY,
    wanted_fields: Iterable[str] = (),
    include_contacts: bool = True,
    max_pages: int | None = None,
) -> CrawlResult:
    """Breadth-first crawl of one entity's site; a failing seed raises, later pages are recorded and skipped."""
    page_budget = max(1, max_pages or strategy.max_pages)
    wanted = set(wanted_fields)
    result = CrawlResult(seed_url=seed_url)
    queue: deque[str] = deque([seed_url])
    seen: set[str] = {seed_url}
    localities: list[str] = []
    covered: set[str] = set()

    with tracer.start_as_current_span("sweep.crawl_entity") as span:
        span.set_attribute("sweep.seed_url", seed_url)
        span.set_attribute("sweep.strategy", strategy.name)

        while queue and len(result.visits) < page_budget:
            url = queue.popleft()
            is_seed = not result.visits
            try:
                fetched = await fetcher.fetch(url)
                if fetched.is_json:
                    raise SweepError(
                        SweepErrorKind.UNSUPPORTED_LAYOUT,
                        "json payload instead of an html page",
                        fetched.diagnostics,
                    )
                page = parse_page(fetched.diagnostics.final_url or url, fetched.html)
                extraction = extract_page(
                    page,
                    strategy,
                    known_localities=localities,
                    include_contacts=include_contacts,
                )
            except SweepError as exc:
                if is_seed:
                    raise
                logger.info("crawl page skipped url=%s code=%s message=%s", url, exc.code, exc.message)
                result.visits.append(
                    PageVisit(url=url, diagnostics=exc.diagnostics, error_code=exc.code, message=exc.message)
                )
                continue

            result.visits.append(PageVisit(url=url, diagnostics=fetched.diagnostics, extraction=extraction))
            for locality in extraction.localities():
                if locality not in localities:
                    localities.append(locality)
            covered |= extraction.covered_fields()
            if wanted and wanted <= covered:
                logger.info("crawl complete url=%s pages=%s", seed_url, len(result.visits))
                break

            ranked = rank_links(page.soup, page.url)
            for link in reversed(priority_links(ranked)):
                if link not in seen:
                    seen.add(link)
                    queue.appendleft(link)
            for link in [*extraction.venue_links, *ranked]:
                if len(queue) >= page_budget + QUEUE_SLACK:
                    break
                if link not in seen:
                    seen.add(link)
                    queue.append(link)

        span.set_attribute("sweep.pages_fetched", result.pages_fetched)

    if result.found() == 0:
        result.error_code = SweepErrorKind.HTML_RECEIVED_NO_EVENTS.value
        result.message = "html received but no fields extracted"
    return result
