from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from sweeps.extractors.text import normalize_space

MAX_VENUE_ROWS = 30
MAX_VENUE_PAGE_LINKS = 8

FULL_ADDRESS_RE = re.compile(r"\d{1,5}\s+[A-Za-z0-9.\-#\s]{3,100},\s*[A-Za-z.\s]{2,60},\s*[A-Z]{2}\s*\d{5}(?:-\d{4})?")
LOCALITY_RE = re.compile(r",\s*(?P<locality>[A-Za-z.\s]{2,60},\s*[A-Z]{2}\s*\d{5}(?:-\d{4})?)$")
STREET_FRAGMENT_RE = re.compile(
    r"\b\d{1,5}\s+(?:[A-Z0-9][A-Za-z0-9.'-]*\s+){0,4}"
    r"(?:St|Street|Ave|Avenue|Rd|Road|Blvd|Boulevard|Dr|Drive|Ln|Lane|Way|Pkwy|Parkway|Hwy|Highway"
    r"|Ct|Court|Pl|Place|Cir|Circle|Trl|Trail|Pike|Ter|Terrace)\b\.?"
)
VENUE_PAGE_HREF_RE = re.compile(
    r"(venue|venues|facility|facilities|complex|park|location|locations|field|fields|sites)",
    re.IGNORECASE,
)
MAP_HREF_RE = re.compile(r"google\.[a-z.]+/maps|maps\.google\.|goo\.gl/maps|maps\.apple\.com|waze\.com", re.IGNORECASE)
STREET_NUMBER_RE = re.compile(r"\b\d{1,5}\s+[A-Za-z]")
HEADING_TAGS = ["strong", "h2", "h3", "h4", "b"]
ROW_TAGS = ["li", "tr", "p", "div"]


@dataclass(frozen=True, slots=True)
class VenueRow:
    venue_name: str | None
    address_text: str

    @property
    def key(self) -> str:
        return f"{(self.venue_name or '').lower()}|{self.address_text.lower()}"


def extract_addresses(text: str) -> list[str]:
    seen: set[str] = set()
    addresses: list[str] = []
    for match in FULL_ADDRESS_RE.finditer(text):
        address = _trim_street(normalize_space(match.group(0)))
        if address.lower() in seen:
            continue
        seen.add(address.lower())
        addresses.append(address)
    return addresses


def locality_of(address: str) -> str | None:
    match = LOCALITY_RE.search(address)
    return normalize_space(match.group("locality")) if match else None


def extract_street_fragments(text: str) -> list[str]:
    fragments: list[str] = []
    for match in STREET_FRAGMENT_RE.finditer(text):
        tail = text[match.end() : match.end() + 3]
        if tail.startswith(","):
            continue
        fragment = normalize_space(match.group(0)).rstrip(".")
        if fragment not in fragments:
            fragments.append(fragment)
    return fragments


def extract_address(text: str, known_localities: Iterable[str] = ()) -> str | None:
    """Return the first full address, or a street fragment completed with a locality seen elsewhere."""
    addresses = extract_addresses(text)
    if addresses:
        return addresses[0]

    localities = [locality for locality in known_localities if locality]
    if not localities:
        return None
    fragments = extract_street_fragments(text)
    if not fragments:
        return None
    return f"{fragments[0]}, {localities[0]}"


def extract_venue_rows(soup: BeautifulSoup) -> list[VenueRow]:
    rows: list[VenueRow] = []
    seen: set[str] = set()
    for element in soup.find_all(ROW_TAGS):
        text = normalize_space(element.get_text(" "))
        for address in extract_addresses(text):
            if _child_row_contains(element, address):
                continue
            row = VenueRow(venue_name=_nearby_heading(element, address), address_text=address)
            if row.key in seen:
                continue
            seen.add(row.key)
            rows.append(row)
            if len(rows) >= MAX_VENUE_ROWS:
                return rows
    return rows


def extract_venue_page_links(soup: BeautifulSoup, page_url: str) -> list[str]:
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or not VENUE_PAGE_HREF_RE.search(href):
            continue
        absolute = urljoin(page_url, href).split("#", 1)[0]
        if urlparse(absolute).scheme not in {"http", "https"}:
            continue
        if absolute not in links:
            links.append(absolute)
        if len(links) >= MAX_VENUE_PAGE_LINKS:
            break
    return links


def extract_map_url(soup: BeautifulSoup) -> str | None:
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if MAP_HREF_RE.search(href):
            return href
    return None


def _child_row_contains(element: Tag, address: str) -> bool:
    for child in element.find_all(ROW_TAGS):
        if address in extract_addresses(normalize_space(child.get_text(" "))):
            return True
    return False


def _nearby_heading(element: Tag, address: str) -> str | None:
    # climb while the container still holds only this address
    current: Tag | None = element
    for _ in range(3):
        if current is None:
            break
        heading = current.find(HEADING_TAGS)
        if heading is not None:
            label = normalize_space(heading.get_text(" "))
            if label and address.lower() not in label.lower():
                return label[:120]
        parent = current.parent
        if not isinstance(parent, Tag) or len(extract_addresses(normalize_space(parent.get_text(" ")))) != 1:
            break
        current = parent
    return None


def _trim_street(address: str) -> str:
    street, separator, rest = address.partition(",")
    if len(street.split()) <= 6:
        return address
    starts = list(STREET_NUMBER_RE.finditer(street))
    if not starts:
        return address
    return f"{street[starts[-1].start() :].strip()}{separator}{rest}"
