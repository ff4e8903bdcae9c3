from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SWEEP_LOG_VERSION = 1


class SweepErrorKind(str, Enum):
    FETCH_FAILED = "fetch_failed"
    HTTP_ERROR = "http_error"
    REDIRECT_BLOCKED = "redirect_blocked"
    NON_HTML_RESPONSE = "non_html_response"
    EMPTY_HTML = "empty_html"
    HTML_RECEIVED_NO_EVENTS = "html_received_no_events"
    UNSUPPORTED_LAYOUT = "unsupported_layout"
    EXTRACTOR_ERROR = "extractor_error"
    ATTRIBUTE_CONSTRAINT_OUTDATED = "attribute_constraint_outdated"


@dataclass(slots=True)
class SweepDiagnostics:
    status: int | None = None
    content_type: str | None = None
    byte_count: int = 0
    final_url: str | None = None
    redirect_chain: list[dict[str, Any]] = field(default_factory=list)
    location_header: str | None = None
    timing_ms: float | None = None

    @property
    def redirect_count(self) -> int:
        return len(self.redirect_chain)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "content_type": self.content_type,
            "bytes": self.byte_count,
            "final_url": self.final_url,
            "redirect_count": self.redirect_count,
            "redirect_chain": [dict(hop) for hop in self.redirect_chain],
            "location_header": self.location_header,
        }


class SweepError(Exception):
    """A classified per-source failure carrying the fetch diagnostics gathered so far."""

    def __init__(self, kind: SweepErrorKind, message: str, diagnostics: SweepDiagnostics | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.diagnostics = diagnostics or SweepDiagnostics()

    @property
    def code(self) -> str:
        if self.kind is SweepErrorKind.HTTP_ERROR and self.diagnostics.status is not None:
            return http_error_code(self.diagnostics.status)
        return self.kind.value


def http_error_code(status: int) -> str:
    return f"{SweepErrorKind.HTTP_ERROR.value}_{int(status)}"


def parse_error_code(code: str) -> tuple[SweepErrorKind, int | None]:
    prefix = f"{SweepErrorKind.HTTP_ERROR.value}_"
    if code.startswith(prefix) and code[len(prefix) :].isdigit():
        return SweepErrorKind.HTTP_ERROR, int(code[len(prefix) :])
    return SweepErrorKind(code), None


def classify_html_payload(content_type: str | None, byte_count: int, min_bytes: int = 2048) -> SweepErrorKind | None:
    normalized = (content_type or "").lower()
    if "text/html" not in normalized and "application/json" not in normalized:
        return SweepErrorKind.NON_HTML_RESPONSE
    if byte_count < min_bytes:
        return SweepErrorKind.EMPTY_HTML
    return None


def build_sweep_summary(
    code: str | None,
    message: str,
    diagnostics: SweepDiagnostics,
    **extras: Any,
) -> str:
    return json.dumps({"error_code": code, "message": message, **diagnostics.as_dict(), **extras})


def sweep_log_payload(
    *,
    source_url: str,
    diagnostics: SweepDiagnostics,
    error_code: str | None,
    message: str | None,
    extracted_count: int,
) -> dict[str, Any]:
    return {
        "version": SWEEP_LOG_VERSION,
        "source_url": source_url,
        "final_url": diagnostics.final_url,
        "http_status": diagnostics.status,
        "error_code": error_code,
        "message": message,
        "content_type": diagnostics.content_type,
        "bytes": diagnostics.byte_count,
        "timing_ms": diagnostics.timing_ms,
        "redirect_count": diagnostics.redirect_count,
        "redirect_chain": [dict(hop) for hop in diagnostics.redirect_chain],
        "location_header": diagnostics.location_header,
        "extracted_count": extracted_count,
    }
