from __future__ import annotations

import re
from dataclasses import dataclass

ATTRIBUTE_KEYS = (
    "cash_at_field",
    "referee_food",
    "facilities",
    "referee_tents",
    "travel_lodging",
    "ref_game_schedule",
    "ref_parking",
    "ref_parking_cost",
    "mentors",
    "assigned_appropriately",
)
REFEREE_CONTEXT_KEYWORDS = ("referee", "referees", "official", "officials", "assignor", "refs")
TRAVEL_KEYWORDS = (
    "hotel",
    "housing",
    "lodging",
    "accommodations",
    "travel",
    "mileage",
    "per diem",
    "meals",
    "reimbursement",
    "stipend",
    "airfare",
)
MAX_AGE_GROUPS = 12
AGE_GROUP_RE = re.compile(r"\b(?:\d{1,2}U|[A-Za-z]{1,4}\d{1,2}U|\d{1,2}AA|\d{1,2}A|U\d{1,2})\b")


@dataclass(frozen=True, slots=True)
class AttributeHit:
    key: str
    value: str
    confidence: float
    evidence_text: str


def travel_lodging_value(text: str) -> str | None:
    lowered = text.lower()
    if any(word in lowered for word in ("hotel", "lodging", "accommodation")):
        return "hotel"
    if any(word in lowered for word in ("stipend", "per diem", "reimbursement", "mileage", "travel", "meals")):
        return "stipend"
    return None


def line_attributes(line: str, *, referee_context: bool) -> list[tuple[str, str, float]]:
    """Keyword rules for a single text line, as (key, value, confidence)."""
    lower = line.lower()
    hits: list[tuple[str, str, float]] = []

    if "cash" in lower and any(word in lower for word in ("field", "on site", "onsite")):
        hits.append(("cash_at_field", "yes", 0.7))

    if referee_context:
        if "snack" in lower:
            hits.append(("referee_food", "snacks", 0.6))
        elif any(word in lower for word in ("meal", "lunch", "dinner", "breakfast")):
            hits.append(("referee_food", "meal", 0.6))

    if "restroom" in lower or "bathroom" in lower:
        hits.append(("facilities", "restrooms", 0.6))
    elif "portable" in lower or "porta" in lower:
        hits.append(("facilities", "portables", 0.6))

    if any(phrase in lower for phrase in ("referee tent", "ref tent", "officials tent")):
        negated = any(phrase in lower for phrase in ("no referee tent", "no ref tent", "no officials tent"))
        hits.append(("referee_tents", "no" if negated else "yes", 0.7))

    if referee_context and any(word in lower for word in TRAVEL_KEYWORDS):
        value = travel_lodging_value(line)
        if value:
            hits.append(("travel_lodging", value, 0.6))

    if "schedule" in lower:
        for phrase in ("too close", "just right", "too much down time"):
            if phrase in lower:
                hits.append(("ref_game_schedule", phrase, 0.6))
                break

    if "parking" in lower:
        if "free" in lower:
            hits.append(("ref_parking_cost", "free", 0.6))
        elif "paid" in lower or "parking fee" in lower or "$" in lower:
            hits.append(("ref_parking_cost", "paid", 0.6))

        if any(word in lower for word in ("close", "adjacent", "near")):
            hits.append(("ref_parking", "close", 0.6))
        elif "stroll" in lower or "short walk" in lower:
            hits.append(("ref_parking", "a stroll", 0.6))
        elif any(word in lower for word in ("hike", "long walk", "far")):
            hits.append(("ref_parking", "a hike", 0.6))

    if "mentor" in lower:
        negated = any(phrase in lower for phrase in ("no mentor", "without mentors"))
        hits.append(("mentors", "no" if negated else "yes", 0.6))

    if "assigned appropriately" in lower or "appropriate assignments" in lower:
        negated = "not assigned appropriately" in lower or "inappropriate" in lower
        hits.append(("assigned_appropriately", "no" if negated else "yes", 0.6))

    return hits


def extract_attributes(lines: list[str], url: str = "") -> list[AttributeHit]:
    page_context = _has_referee_context(url)
    best: dict[str, AttributeHit] = {}
    for index, line in enumerate(lines):
        window = " ".join(lines[max(0, index - 1) : index + 2])
        referee_context = page_context or _has_referee_context(window)
        for key, value, confidence in line_attributes(line, referee_context=referee_context):
            current = best.get(key)
            if current is None or confidence > current.confidence:
                best[key] = AttributeHit(key=key, value=value, confidence=confidence, evidence_text=line[:300])
    return [best[key] for key in ATTRIBUTE_KEYS if key in best]


def extract_age_groups(text: str) -> list[str]:
    groups: list[str] = []
    seen: set[str] = set()
    for match in AGE_GROUP_RE.finditer(text):
        value = match.group(0).upper()
        if value in seen:
            continue
        seen.add(value)
        groups.append(value)
        if len(groups) >= MAX_AGE_GROUPS:
            break
    return groups


def _has_referee_context(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in REFEREE_CONTEXT_KEYWORDS)
