import pytest

from sweeps.core.urls import canonical_hash, normalize_source_url, normalized_or_none, same_site


def test_normalize_source_url_strips_tracking_fragment_and_default_port() -> None:
    normalized = normalize_source_url("HTTPS://WWW.Example.com:443/Events/?utm_source=x&id=5&fbclid=abc#top")
    assert normalized.canonical == "https://example.com/Events?id=5"
    assert normalized.normalized == "https://example.com/events?id=5"
    assert normalized.host == "example.com"


def test_www_and_bare_host_share_one_identity() -> None:
    bare = normalize_source_url("cup.org/schedule")
    prefixed = normalize_source_url("https://WWW.cup.org/schedule/")
    assert prefixed.canonical == "https://cup.org/schedule"
    assert prefixed.normalized == bare.normalized
    assert prefixed.host == bare.host == "cup.org"


def test_normalize_source_url_defaults_scheme_to_https() -> None:
    normalized = normalize_source_url("oceanstatecup.org/schedule/")
    assert normalized.canonical == "https://oceanstatecup.org/schedule"


def test_normalize_source_url_keeps_root_path_and_query_order() -> None:
    normalized = normalize_source_url("https://a-league.com?b=2&ref=x&a=1")
    assert normalized.canonical == "https://a-league.com/?b=2&a=1"


def test_normalize_source_url_keeps_non_default_port() -> None:
    normalized = normalize_source_url("http://fields.example.net:8080/map")
    assert normalized.canonical == "http://fields.example.net:8080/map"


@pytest.mark.parametrize("raw", ["", "   ", "ftp://files.example.com/x", "mailto:td@league.org", "https://"])
def test_normalize_source_url_rejects_unusable_input(raw: str) -> None:
    with pytest.raises(ValueError):
        normalize_source_url(raw)


def test_equivalent_urls_share_a_normalized_form() -> None:
    left = normalize_source_url("http://Cup.Example.org/Register/?utm_medium=email")
    right = normalize_source_url("http://cup.example.org/register")
    assert left.normalized == right.normalized
    assert canonical_hash(left.normalized) == canonical_hash(right.normalized)
    assert len(canonical_hash(left.normalized)) == 64


def test_normalized_or_none_swallows_invalid_urls() -> None:
    assert normalized_or_none(None) is None
    assert normalized_or_none("javascript:void(0)") is None
    assert normalized_or_none("league.org/") == "https://league.org/"


def test_same_site_ignores_www_and_case() -> None:
    assert same_site("WWW.League.org", "league.org")
    assert not same_site("league.org", "other-league.org")
