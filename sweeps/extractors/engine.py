from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar
from urllib.parse import urlparse

from sweeps.core.errors import SweepError, SweepErrorKind
from sweeps.extractors.attributes import AttributeHit, extract_age_groups, extract_attributes
from sweeps.extractors.contacts import Contact, extract_contacts
from sweeps.extractors.dates import DateRange, extract_dates
from sweeps.extractors.fees import (
    FeeEntry,
    extract_division_fees,
    extract_fee_entries,
    extract_games_guaranteed,
    format_fee_entries,
)
from sweeps.extractors.jsonld import EventMarkup, find_event_markup
from sweeps.extractors.text import Page
from sweeps.extractors.venues import (
    VenueRow,
    extract_address,
    extract_map_url,
    extract_venue_page_links,
    extract_venue_rows,
    locality_of,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ExtractionStrategy:
    name: str
    fee_extractor: Callable[[str, Sequence[str]], list[FeeEntry]]
    follow_venue_pages: bool = True
    max_pages: int = 6
    hosts: tuple[str, ...] = ()


DEFAULT_STRATEGY = ExtractionStrategy(name="default", fee_extractor=extract_fee_entries)
USSSA_STRATEGY = ExtractionStrategy(
    name="usssa",
    fee_extractor=extract_division_fees,
    follow_venue_pages=False,
    hosts=("usssa.com",),
)
STRATEGIES = {strategy.name: strategy for strategy in (DEFAULT_STRATEGY, USSSA_STRATEGY)}


def strategy_for_url(url: str, name: str | None = None) -> ExtractionStrategy:
    if name:
        try:
            return STRATEGIES[name]
        except KeyError as exc:
            raise ValueError(f"unknown extraction strategy: {name}") from exc
    host = (urlparse(url).hostname or "").lower()
    for strategy in STRATEGIES.values():
        if any(host == suffix or host.endswith(f".{suffix}") for suffix in strategy.hosts):
            return strategy
    return DEFAULT_STRATEGY


@dataclass(slots=True)
class PageExtraction:
    url: str
    team_fee: str | None = None
    level: str | None = None
    games_guaranteed: str | None = None
    date_range: DateRange | None = None
    venue_name: str | None = None
    address: str | None = None
    venue_url: str | None = None
    venues: list[VenueRow] = field(default_factory=list)
    venue_links: list[str] = field(default_factory=list)
    contacts: list[Contact] = field(default_factory=list)
    attributes: list[AttributeHit] = field(default_factory=list)

    def covered_fields(self) -> set[str]:
        covered: set[str] = set()
        if self.team_fee:
            covered.add("team_fee")
        if self.level:
            covered.add("level")
        if self.games_guaranteed:
            covered.add("games_guaranteed")
        if self.date_range is not None:
            covered.update({"start_date", "end_date"})
        if self.venue_name or self.venues:
            covered.add("venue")
        if self.address or self.venues:
            covered.add("address")
        if self.venue_url:
            covered.add("venue_url")
        if any(contact.email for contact in self.contacts):
            covered.add("email")
        if any(contact.phone for contact in self.contacts):
            covered.add("phone")
        return covered

    def found(self) -> int:
        return len(self.covered_fields()) + len(self.attributes)

    def localities(self) -> list[str]:
        addresses = [self.address, *(venue.address_text for venue in self.venues)]
        found: list[str] = []
        for address in addresses:
            locality = locality_of(address) if address else None
            if locality and locality not in found:
                found.append(locality)
        return found


def extract_page(
    page: Page,
    strategy: ExtractionStrategy = DEFAULT_STRATEGY,
    *,
    known_localities: Iterable[str] = (),
    include_contacts: bool = True,
) -> PageExtraction:
    """Run every extractor over one parsed page in a fixed order."""
    rows = page.table_rows()
    localities = list(known_localities)
    result = PageExtraction(url=page.url)

    markup = _guarded("jsonld", find_event_markup, page.jsonld) or EventMarkup()
    result.team_fee = format_fee_entries(_guarded("fee", strategy.fee_extractor, page.text, rows))
    result.games_guaranteed = _guarded("games_guaranteed", extract_games_guaranteed, page.text)
    groups = _guarded("level", extract_age_groups, page.text)
    result.level = ", ".join(groups) if groups else None
    result.date_range = _guarded("date", extract_dates, page.text, markup)

    result.venues = _guarded("venue", extract_venue_rows, page.soup)
    result.venue_name = markup.venue_name
    result.address = markup.address_text or _guarded("address", extract_address, page.text, localities)
    result.venue_url = _guarded("map_link", extract_map_url, page.soup)
    if strategy.follow_venue_pages:
        result.venue_links = _guarded("venue_links", extract_venue_page_links, page.soup, page.url)

    if include_contacts:
        result.contacts = _guarded("contact", extract_contacts, page)
    result.attributes = _guarded("attribute", extract_attributes, page.lines, page.url)
    return result


def _guarded(name: str, extractor: Callable[..., T], *args: object) -> T:
    try:
        return extractor(*args)
    except Exception as exc:
        logger.warning("extractor failed name=%s error=%s", name, exc)
        raise SweepError(SweepErrorKind.EXTRACTOR_ERROR, f"{name} extractor failed: {exc}") from exc
