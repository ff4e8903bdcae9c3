import pytest

from sweeps.extractors.fees import (
    MAX_FEE_ENTRIES,
    age_range_label,
    extract_division_fees,
    extract_fee_entries,
    extract_games_guaranteed,
    extract_team_fee,
    format_fee_entries,
    strip_parking_prices,
)


def test_age_range_with_birth_years_collapses_to_u_labels() -> None:
    assert extract_team_fee("U8/2019 - U10/2016: $675") == "U8-U10 $675"


def test_format_priced_divisions_are_joined_in_order() -> None:
    assert extract_team_fee("7v7 $845 9v9 $975 11v11 $1045") == "7v7 $845 | 9v9 $975 | 11v11 $1045"


def test_table_rows_combine_format_age_and_amount() -> None:
    rows = ["7v7 | U9/2017 - U10/2016 | $845", "9v9 | U11 - U12 | $975"]
    assert extract_team_fee("", rows) == "7v7 U9-U10 $845 | 9v9 U11-U12 $975"


def test_parking_prices_are_never_team_fees() -> None:
    text = "Parking is $10 per car. Team entry fee: $550."
    assert extract_team_fee(text) == "$550"
    assert "$10" not in strip_parking_prices(text)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Entry fee: $650 per team, parking is $10 per car.", "$650"),
        ("Team Fee $500 Parking Information Parking is free at the complex.", "$500"),
        ("7v7 $845 9v9 $975 11v11 $1045 Parking available on site", "7v7 $845 | 9v9 $975 | 11v11 $1045"),
        ("Parking Information Team Fee $725", "$725"),
    ],
)
def test_parking_mentions_keep_nearby_team_fees(text: str, expected: str) -> None:
    assert extract_team_fee(text) == expected


def test_parking_price_suffix_forms_are_removed() -> None:
    assert "$" not in strip_parking_prices("$5 per car, $20 parking pass, $8 for parking")
    assert strip_parking_prices("$650 per team") == "$650 per team"


def test_parking_rows_are_skipped() -> None:
    rows = ["Parking | $15 per day", "11v11 | U13 - U14 | $1,150.00"]
    assert extract_team_fee("", rows) == "11v11 U13-U14 $1150"


def test_entry_fee_phrase_and_bare_amount_fallbacks() -> None:
    assert extract_team_fee("Registration fee is $1,250.00 per team") == "$1250"
    assert extract_team_fee("Cost: $400 per team") == "$400"
    assert extract_team_fee("Fees will be announced soon") is None


def test_duplicate_labels_are_suppressed_and_entries_capped() -> None:
    assert extract_team_fee("7v7 $845 7v7 $900") == "7v7 $845"

    text = " ".join(f"{size}v{size} ${100 + size}" for size in range(4, 14))
    entries = extract_fee_entries(text)
    assert len(entries) == MAX_FEE_ENTRIES
    assert entries[0].display == "4v4 $104"


def test_division_fees_for_bracket_style_pages() -> None:
    entries = extract_division_fees("10U ........ $450 12U $495 14AA $525")
    assert format_fee_entries(entries) == "10U $450 | 12U $495 | 14AA $525"
    assert format_fee_entries(extract_division_fees("10U 12U Entry fee: $600")) == "$600"


def test_games_guaranteed() -> None:
    assert extract_games_guaranteed("Every team gets a 4 game guarantee") == "4"
    assert extract_games_guaranteed("3-game guarantee for all divisions") == "3"
    assert extract_games_guaranteed("Bracket play on Sunday") is None


def test_age_range_label() -> None:
    assert age_range_label("U8/2019 - U10/2016") == "U8-U10"
    assert age_range_label("U12") == "U12"
    assert age_range_label("U 9 to U 9") == "U9"
