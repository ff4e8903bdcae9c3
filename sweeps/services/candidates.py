from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from sweeps.core.urls import normalized_or_none
from sweeps.extractors.attributes import ATTRIBUTE_KEYS, AttributeHit
from sweeps.extractors.contacts import Contact, phone_digits
from sweeps.extractors.dates import DateRange

CandidateKind = Literal["attribute", "venue", "date", "contact"]

CANDIDATE_KINDS: tuple[CandidateKind, ...] = ("attribute", "venue", "date", "contact")
FIELD_ATTRIBUTE_KEYS = ("team_fee", "level", "games_guaranteed", "address", "venue_url")
ATTRIBUTE_FIELD_KEYS = frozenset((*ATTRIBUTE_KEYS, *FIELD_ATTRIBUTE_KEYS))
CONTACT_ROLES = ("TD", "ASSIGNOR", "GENERAL")
VENUE_FIELD_KEY = "venue"
DATE_FIELD_KEY = "date_range"

_SPACE_RE = re.compile(r"\s+")


@dataclass(slots=True)
class Candidate:
    kind: CandidateKind
    entity_type: str
    entity_id: str
    field_key: str
    value: str
    source_url: str | None = None
    confidence: float | None = None
    details: dict[str, Any] = field(default_factory=dict)
    evidence_text: str | None = None
    id: str | None = None
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    rejected_reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.accepted_at is None and self.rejected_at is None

    @property
    def dedupe_key(self) -> str:
        return composite_key(self)

    @property
    def value_key(self) -> tuple[str, str, str]:
        return (self.kind, self.field_key.lower(), normalize_value(self.value))


def normalize_value(value: str | None) -> str:
    return _SPACE_RE.sub(" ", value or "").strip().lower()


def composite_key(candidate: Candidate) -> str:
    """Identity of a candidate across runs: entity, kind, field, value and source."""
    return "|".join(
        [
            candidate.entity_type,
            candidate.entity_id,
            candidate.kind,
            candidate.field_key.lower(),
            normalize_value(candidate.value),
            normalized_or_none(candidate.source_url) or "",
        ]
    )


def attribute_candidate(
    entity_type: str,
    entity_id: str,
    *,
    key: str,
    value: str,
    source_url: str | None,
    confidence: float,
    evidence_text: str | None = None,
) -> Candidate:
    return Candidate(
        kind="attribute",
        entity_type=entity_type,
        entity_id=entity_id,
        field_key=key,
        value=value,
        source_url=source_url,
        confidence=confidence,
        evidence_text=evidence_text,
    )


def attribute_hit_candidate(entity_type: str, entity_id: str, hit: AttributeHit, source_url: str) -> Candidate:
    return attribute_candidate(
        entity_type,
        entity_id,
        key=hit.key,
        value=hit.value,
        source_url=source_url,
        confidence=hit.confidence,
        evidence_text=hit.evidence_text,
    )


def venue_candidate(
    entity_type: str,
    entity_id: str,
    *,
    venue_name: str | None,
    address_text: str | None,
    source_url: str | None,
    confidence: float,
    venue_url: str | None = None,
    evidence_text: str | None = None,
) -> Candidate:
    return Candidate(
        kind="venue",
        entity_type=entity_type,
        entity_id=entity_id,
        field_key=VENUE_FIELD_KEY,
        value=f"{venue_name or ''}|{address_text or ''}",
        source_url=source_url,
        confidence=confidence,
        details={"venue_name": venue_name, "address_text": address_text, "venue_url": venue_url},
        evidence_text=evidence_text,
    )


def date_candidate(
    entity_type: str,
    entity_id: str,
    date_range: DateRange,
    *,
    source_url: str | None,
    confidence: float,
) -> Candidate:
    return Candidate(
        kind="date",
        entity_type=entity_type,
        entity_id=entity_id,
        field_key=DATE_FIELD_KEY,
        value=f"{date_range.start_date}..{date_range.end_date}",
        source_url=source_url,
        confidence=confidence,
        details={
            "start_date": date_range.start_date,
            "end_date": date_range.end_date,
            "date_text": date_range.date_text,
        },
        evidence_text=date_range.date_text,
    )


def contact_candidate(entity_type: str, entity_id: str, contact: Contact, *, source_url: str | None) -> Candidate:
    role = contact.role or "GENERAL"
    identity = contact.email or phone_digits(contact.phone) or (contact.name or "")
    return Candidate(
        kind="contact",
        entity_type=entity_type,
        entity_id=entity_id,
        field_key=role,
        value=identity,
        source_url=source_url,
        confidence=contact.confidence,
        details={"name": contact.name, "email": contact.email, "phone": contact.phone},
        evidence_text=contact.evidence_text,
    )
