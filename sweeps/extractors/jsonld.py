from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

EVENT_TYPE_MARKERS = ("event", "sports")


@dataclass(slots=True)
class EventMarkup:
    start_date: str | None = None
    end_date: str | None = None
    venue_name: str | None = None
    address_text: str | None = None

    def is_empty(self) -> bool:
        return not (self.start_date or self.end_date or self.venue_name or self.address_text)


def parse_jsonld_blocks(soup: BeautifulSoup) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("skipping malformed json-ld block")
            continue
        items.extend(_flatten(parsed))
    return items


def find_event_markup(items: list[dict[str, Any]]) -> EventMarkup:
    markup = EventMarkup()
    for item in items:
        if not _is_event(item):
            continue
        markup.start_date = markup.start_date or iso_date(item.get("startDate"))
        markup.end_date = markup.end_date or iso_date(item.get("endDate"))

        location = item.get("location")
        if isinstance(location, list):
            location = next((entry for entry in location if isinstance(entry, dict)), None)
        if not isinstance(location, dict):
            continue
        name = _text(location.get("name"))
        markup.venue_name = markup.venue_name or name
        address = _address_text(location.get("address"))
        markup.address_text = markup.address_text or address
    return markup


def iso_date(value: Any) -> str | None:
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return None


def _flatten(parsed: Any) -> list[dict[str, Any]]:
    if isinstance(parsed, list):
        flattened: list[dict[str, Any]] = []
        for entry in parsed:
            flattened.extend(_flatten(entry))
        return flattened
    if not isinstance(parsed, dict):
        return []
    graph = parsed.get("@graph")
    if isinstance(graph, list):
        return [parsed, *_flatten(graph)]
    return [parsed]


def _is_event(item: dict[str, Any]) -> bool:
    raw_type = item.get("@type")
    if isinstance(raw_type, list):
        type_text = " ".join(str(entry) for entry in raw_type).lower()
    else:
        type_text = str(raw_type or "").lower()
    return any(marker in type_text for marker in EVENT_TYPE_MARKERS)


def _address_text(address: Any) -> str | None:
    if isinstance(address, str):
        return _text(address)
    if not isinstance(address, dict):
        return None
    locality = ", ".join(
        part for part in (_text(address.get("addressLocality")), _text(address.get("addressRegion"))) if part
    )
    parts = [_text(address.get("streetAddress")), locality or None, _text(address.get("postalCode"))]
    joined = ", ".join(part for part in parts if part)
    return joined or None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None
