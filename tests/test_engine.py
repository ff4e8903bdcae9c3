import pytest

import sweeps.extractors.engine as engine
from sweeps.core.errors import SweepError
from sweeps.extractors.engine import DEFAULT_STRATEGY, USSSA_STRATEGY, extract_page, strategy_for_url
from sweeps.extractors.text import parse_page

CUP_HTML = """
<html><head><title>Ocean State Cup</title></head><body>
<h1>Ocean State Cup</h1>
<p>June 12-14, 2026</p>
<p>Entry fee: $650 per team. 4 game guarantee.</p>
<p>Divisions U9 U10 U11 U12</p>
<ul><li><strong>Riverside Park</strong> 100 River Rd, Warwick, RI 02886</li></ul>
<p>Referee tent provided at every field.</p>
<a href="/contact">Contact</a> <a href="/venues">Venues</a>
</body></html>
"""

BRACKET_HTML = """
<html><body>
<h1>Summer Slam</h1>
<p>10U $450 12U $495</p>
<a href="/venues">Venues</a>
</body></html>
"""


def test_strategy_for_url() -> None:
    assert strategy_for_url("https://www.usssa.com/event/123") is USSSA_STRATEGY
    assert strategy_for_url("https://oceanstatecup.org/") is DEFAULT_STRATEGY
    assert strategy_for_url("https://oceanstatecup.org/", "usssa") is USSSA_STRATEGY
    with pytest.raises(ValueError):
        strategy_for_url("https://oceanstatecup.org/", "gotsport")


def test_extract_page_runs_every_extractor() -> None:
    result = extract_page(parse_page("https://oceanstatecup.org/", CUP_HTML))

    assert result.team_fee == "$650"
    assert result.games_guaranteed == "4"
    assert result.level == "U9, U10, U11, U12"
    assert result.date_range is not None
    assert (result.date_range.start_date, result.date_range.end_date) == ("2026-06-12", "2026-06-14")
    assert result.address == "100 River Rd, Warwick, RI 02886"
    assert [venue.venue_name for venue in result.venues] == ["Riverside Park"]
    assert result.venue_links == ["https://oceanstatecup.org/venues"]
    assert [(hit.key, hit.value) for hit in result.attributes] == [("referee_tents", "yes")]
    assert result.contacts == []
    assert result.covered_fields() == {
        "team_fee",
        "level",
        "games_guaranteed",
        "start_date",
        "end_date",
        "venue",
        "address",
    }
    assert result.found() == 8
    assert result.localities() == ["Warwick, RI 02886"]


def test_usssa_strategy_reads_division_fees_and_skips_venue_pages() -> None:
    page = parse_page("https://www.usssa.com/event/55", BRACKET_HTML)

    result = extract_page(page, USSSA_STRATEGY)

    assert result.team_fee == "10U $450 | 12U $495"
    assert result.venue_links == []


def test_failing_extractor_is_reported_as_extractor_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken(text: str) -> str:
        raise RuntimeError("regex exploded")

    monkeypatch.setattr(engine, "extract_games_guaranteed", _broken)

    with pytest.raises(SweepError) as excinfo:
        extract_page(parse_page("https://oceanstatecup.org/", CUP_HTML))

    assert excinfo.value.code == "extractor_error"
    assert "games_guaranteed" in excinfo.value.message
