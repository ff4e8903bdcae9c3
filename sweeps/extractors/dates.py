from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Literal

from sweeps.extractors.jsonld import EventMarkup
from sweeps.extractors.text import normalize_dashes, normalize_space

MONTHS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)
MONTH_INDEX = {name[:3]: index + 1 for index, name in enumerate(MONTHS)}

_MONTH = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?"
)
_DAY = r"(\d{1,2})(?:st|nd|rd|th)?"
_YEAR = r"(\d{4})"
_THROUGH = r"\s*(?:-|to|through|thru)\s*"

CROSS_MONTH_RANGE_RE = re.compile(
    rf"\b({_MONTH})\s+{_DAY}{_THROUGH}({_MONTH})\s+{_DAY},?\s*{_YEAR}\b",
    re.IGNORECASE,
)
SAME_MONTH_RANGE_RE = re.compile(rf"\b({_MONTH})\s+{_DAY}{_THROUGH}{_DAY},?\s*{_YEAR}\b", re.IGNORECASE)
SINGLE_DATE_RE = re.compile(rf"\b({_MONTH})\s+{_DAY},?\s*{_YEAR}\b", re.IGNORECASE)

DateSource = Literal["jsonld", "text"]


@dataclass(frozen=True, slots=True)
class DateRange:
    start_date: str
    end_date: str
    date_text: str | None
    source: DateSource = "text"


def month_number(token: str) -> int | None:
    return MONTH_INDEX.get(token.strip().rstrip(".").lower()[:3])


def extract_date_range(text: str) -> DateRange | None:
    normalized = normalize_space(normalize_dashes(text))

    match = CROSS_MONTH_RANGE_RE.search(normalized)
    if match:
        parsed = _build_range(
            start_month=match.group(1),
            start_day=match.group(2),
            end_month=match.group(3),
            end_day=match.group(4),
            year=match.group(5),
            date_text=match.group(0),
        )
        if parsed is not None:
            return parsed

    match = SAME_MONTH_RANGE_RE.search(normalized)
    if match:
        parsed = _build_range(
            start_month=match.group(1),
            start_day=match.group(2),
            end_month=match.group(1),
            end_day=match.group(3),
            year=match.group(4),
            date_text=match.group(0),
        )
        if parsed is not None:
            return parsed

    match = SINGLE_DATE_RE.search(normalized)
    if match:
        return _build_range(
            start_month=match.group(1),
            start_day=match.group(2),
            end_month=match.group(1),
            end_day=match.group(2),
            year=match.group(3),
            date_text=match.group(0),
        )
    return None


def date_range_from_markup(markup: EventMarkup) -> DateRange | None:
    start = markup.start_date or markup.end_date
    if not start:
        return None
    end = markup.end_date or start
    if end < start:
        end = start
    return DateRange(start_date=start, end_date=end, date_text=None, source="jsonld")


def extract_dates(text: str, markup: EventMarkup | None = None) -> DateRange | None:
    if markup is not None:
        structured = date_range_from_markup(markup)
        if structured is not None:
            return structured
    return extract_date_range(text)


def _build_range(
    *,
    start_month: str,
    start_day: str,
    end_month: str,
    end_day: str,
    year: str,
    date_text: str,
) -> DateRange | None:
    start_index = month_number(start_month)
    end_index = month_number(end_month)
    if start_index is None or end_index is None:
        return None
    end_year = int(year)
    start_year = end_year - 1 if end_index < start_index else end_year
    try:
        start = date(start_year, start_index, int(start_day))
        end = date(end_year, end_index, int(end_day))
    except ValueError:
        return None
    if end < start:
        return None
    return DateRange(start_date=start.isoformat(), end_date=end.isoformat(), date_text=date_text.strip())
