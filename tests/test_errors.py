import json

from sweeps.core.errors import (
    SweepDiagnostics,
    SweepError,
    SweepErrorKind,
    build_sweep_summary,
    classify_html_payload,
    http_error_code,
    parse_error_code,
    sweep_log_payload,
)


def test_http_error_code_embeds_status() -> None:
    assert http_error_code(403) == "http_error_403"
    assert parse_error_code("http_error_403") == (SweepErrorKind.HTTP_ERROR, 403)
    assert parse_error_code("empty_html") == (SweepErrorKind.EMPTY_HTML, None)


def test_sweep_error_code_uses_status_for_http_errors() -> None:
    error = SweepError(SweepErrorKind.HTTP_ERROR, "forbidden", SweepDiagnostics(status=404))
    assert error.code == "http_error_404"
    assert SweepError(SweepErrorKind.REDIRECT_BLOCKED, "loop").code == "redirect_blocked"


def test_classify_html_payload() -> None:
    assert classify_html_payload("application/pdf", 50_000) is SweepErrorKind.NON_HTML_RESPONSE
    assert classify_html_payload(None, 50_000) is SweepErrorKind.NON_HTML_RESPONSE
    assert classify_html_payload("text/html", 500) is SweepErrorKind.EMPTY_HTML
    assert classify_html_payload("text/html; charset=utf-8", 4096) is None
    assert classify_html_payload("application/json", 4096) is None


def test_summary_and_log_payload_carry_diagnostics() -> None:
    diagnostics = SweepDiagnostics(
        status=301,
        content_type="text/html",
        byte_count=0,
        final_url="https://league.org/old",
        redirect_chain=[{"status": 301, "location": "/new"}],
        location_header="/new",
        timing_ms=12.5,
    )

    summary = json.loads(build_sweep_summary("redirect_blocked", "loop", diagnostics, pages_fetched=0))
    assert summary["error_code"] == "redirect_blocked"
    assert summary["redirect_count"] == 1
    assert summary["location_header"] == "/new"
    assert summary["pages_fetched"] == 0

    payload = sweep_log_payload(
        source_url="https://league.org/old",
        diagnostics=diagnostics,
        error_code="redirect_blocked",
        message="loop",
        extracted_count=0,
    )
    assert payload["version"] == 1
    assert payload["http_status"] == 301
    assert payload["redirect_chain"] == [{"status": 301, "location": "/new"}]
    assert payload["timing_ms"] == 12.5
