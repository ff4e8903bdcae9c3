from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sweeps.extractors.text import normalize_dashes, normalize_space

MAX_FEE_ENTRIES = 8
FEE_DELIMITER = " | "

_AMOUNT = r"\$\s*(?P<amount>\d{1,3}(?:,\d{3})+|\d{2,5})(?P<cents>\.\d{2})?"
_FORMAT = r"\d{1,2}\s*[vV]\s*\d{1,2}"
_AGE = r"U\s?\d{1,2}(?:\s*/\s*\d{4})?"
_AGE_RANGE = rf"{_AGE}(?:\s*(?:-|to)\s*{_AGE})?"
_PARKING_GAP = r"(?:(?!\b(?:entry|team|registration|fees?)\b)[^$.;|]){0,40}"

FORMAT_AGE_AMOUNT_RE = re.compile(
    rf"(?<![A-Za-z0-9])(?P<format>{_FORMAT})\s*[|:,-]?\s*(?P<ages>{_AGE_RANGE})\s*[|:,-]?\s*{_AMOUNT}",
    re.IGNORECASE,
)
AGE_AMOUNT_RE = re.compile(rf"(?<![A-Za-z0-9])(?P<ages>{_AGE_RANGE})\s*:\s*{_AMOUNT}", re.IGNORECASE)
FORMAT_AMOUNT_RE = re.compile(rf"(?<![A-Za-z0-9])(?P<format>{_FORMAT})\s*[:-]?\s*{_AMOUNT}", re.IGNORECASE)
ENTRY_FEE_RES = (
    re.compile(rf"\b(?:entry|team|registration)\s*fee\b[^$]{{0,60}}{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"{_AMOUNT}\s*(?:entry|team)\s*fee", re.IGNORECASE),
)
BARE_AMOUNT_RE = re.compile(_AMOUNT)
DIVISION_FEE_RE = re.compile(
    rf"\b(?P<division>\d{{1,2}}U|[A-Za-z]{{1,4}}\d{{1,2}}U|\d{{1,2}}AA|\d{{1,2}}A)\b[^$]{{0,24}}{_AMOUNT}",
    re.IGNORECASE,
)
PARKING_PRICE_RES = (
    re.compile(rf"\bparking\b{_PARKING_GAP}{_AMOUNT}", re.IGNORECASE),
    re.compile(
        rf"{_AMOUNT}\s*(?:(?:per|/)\s*(?:car|vehicle)\b|for\s+parking\b|parking\s+(?:fee|pass|permit|charge)s?\b)",
        re.IGNORECASE,
    ),
)
GAMES_GUARANTEED_RE = re.compile(r"(\d{1,2})\s*(?:-\s*)?(?:games?|gms)\s+guarantee", re.IGNORECASE)
_AGE_NUMBER_RE = re.compile(r"U\s?(\d{1,2})", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class FeeEntry:
    label: str
    amount: str

    @property
    def display(self) -> str:
        return f"{self.label} {self.amount}".strip()


def strip_parking_prices(text: str) -> str:
    for pattern in PARKING_PRICE_RES:
        text = pattern.sub(" ", text)
    return normalize_space(text)


def extract_fee_entries(text: str, rows: Sequence[str] = ()) -> list[FeeEntry]:
    sources = [row for row in rows if "parking" not in row.lower()]
    sources.append(text)
    sources = [strip_parking_prices(normalize_dashes(source)) for source in sources]

    for tier in (_format_age_entries, _age_entries, _format_entries):
        entries = _collect(tier(source) for source in sources)
        if entries:
            return entries

    flat = sources[-1]
    for pattern in ENTRY_FEE_RES:
        match = pattern.search(flat)
        if match:
            return [FeeEntry(label="", amount=_amount(match))]
    match = BARE_AMOUNT_RE.search(flat)
    if match:
        return [FeeEntry(label="", amount=_amount(match))]
    return []


def extract_division_fees(text: str, rows: Sequence[str] = ()) -> list[FeeEntry]:
    flat = strip_parking_prices(normalize_dashes(text))
    for pattern in ENTRY_FEE_RES:
        match = pattern.search(flat)
        if match:
            return [FeeEntry(label="", amount=_amount(match))]

    def divisions(source: str) -> Iterable[FeeEntry]:
        for match in DIVISION_FEE_RE.finditer(source):
            yield FeeEntry(label=match.group("division").upper(), amount=_amount(match))

    return _collect([divisions(flat)])


def format_fee_entries(entries: Sequence[FeeEntry]) -> str | None:
    if not entries:
        return None
    return FEE_DELIMITER.join(entry.display for entry in entries)


def extract_team_fee(text: str, rows: Sequence[str] = ()) -> str | None:
    return format_fee_entries(extract_fee_entries(text, rows))


def extract_games_guaranteed(text: str) -> str | None:
    match = GAMES_GUARANTEED_RE.search(text)
    return match.group(1) if match else None


def age_range_label(raw: str) -> str:
    numbers = _AGE_NUMBER_RE.findall(raw)
    if not numbers:
        return normalize_space(raw)
    labels = [f"U{int(number)}" for number in numbers[:2]]
    if len(labels) == 2 and labels[0] == labels[1]:
        labels = labels[:1]
    return "-".join(labels)


def _format_age_entries(source: str) -> Iterable[FeeEntry]:
    for match in FORMAT_AGE_AMOUNT_RE.finditer(source):
        label = f"{_format_label(match.group('format'))} {age_range_label(match.group('ages'))}"
        yield FeeEntry(label=label, amount=_amount(match))


def _age_entries(source: str) -> Iterable[FeeEntry]:
    for match in AGE_AMOUNT_RE.finditer(source):
        yield FeeEntry(label=age_range_label(match.group("ages")), amount=_amount(match))


def _format_entries(source: str) -> Iterable[FeeEntry]:
    for match in FORMAT_AMOUNT_RE.finditer(source):
        yield FeeEntry(label=_format_label(match.group("format")), amount=_amount(match))


def _collect(groups: Iterable[Iterable[FeeEntry]]) -> list[FeeEntry]:
    entries: list[FeeEntry] = []
    seen_labels: set[str] = set()
    for group in groups:
        for entry in group:
            key = entry.label.lower()
            if key in seen_labels:
                continue
            seen_labels.add(key)
            entries.append(entry)
            if len(entries) >= MAX_FEE_ENTRIES:
                return entries
    return entries


def _format_label(raw: str) -> str:
    return re.sub(r"\s+", "", raw).lower()


def _amount(match: re.Match[str]) -> str:
    whole = match.group("amount").replace(",", "")
    cents = match.group("cents") or ""
    if cents == ".00":
        cents = ""
    return f"${whole}{cents}"
