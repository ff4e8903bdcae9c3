from bs4 import BeautifulSoup

from sweeps.extractors.contacts import (
    classify_role,
    decode_cfemail,
    deobfuscate_emails,
    extract_contact_names,
    extract_contacts,
    extract_emails,
    extract_phones,
    is_likely_email,
    phone_digits,
)
from sweeps.extractors.text import Page, parse_page


def _page(body: str, url: str = "https://riopen.org/") -> Page:
    return parse_page(url, f"<html><body>{body}</body></html>")


def test_director_contact_collects_name_email_and_phone() -> None:
    page = _page("<p>Tournament Director: Jane Smith</p><p>Email: jane@riopen.org Phone: (401) 555-0100</p>")

    contacts = extract_contacts(page)

    assert len(contacts) == 1
    contact = contacts[0]
    assert contact.role == "TD"
    assert contact.name == "Jane Smith"
    assert contact.email == "jane@riopen.org"
    assert contact.phone == "(401) 555-0100"
    assert contact.confidence == 0.9


def test_obfuscated_assignor_email_is_recovered() -> None:
    page = _page("<p>Referee Assignor: Mark Jones, mark [at] rirefs [dot] org</p>")

    contacts = extract_contacts(page)

    assert [(contact.role, contact.name, contact.email) for contact in contacts] == [
        ("ASSIGNOR", "Mark Jones", "mark@rirefs.org")
    ]


def test_phone_only_contact_needs_a_cue() -> None:
    contacts = extract_contacts(_page("<p>Questions? Call the tournament office at 401-555-0199</p>"))
    assert len(contacts) == 1
    assert contacts[0].email is None
    assert contacts[0].phone == "401-555-0199"
    assert contacts[0].role is None
    assert contacts[0].confidence == 0.4


def test_emails_without_any_cue_are_ignored() -> None:
    page = _page("<p>Photos by snapshot@pixels.com</p>", url="https://riopen.org/gallery")
    assert extract_contacts(page) == []


def test_extract_emails_filters_junk_and_reads_links() -> None:
    soup = BeautifulSoup(
        '<a href="mailto:Director@RIOpen.org?subject=Hi">Mail</a>'
        '<a href="/cdn-cgi/l/email-protection#42362602302b6c2d3025">[email protected]</a>',
        "html.parser",
    )
    text = (
        "Write noreply@league.org or tracking@sentry.io or jane@example.com "
        "or dataLayer@gtm.com or coach@league.org or coach@league.org"
    )
    assert extract_emails(text, soup) == ["director@riopen.org", "td@ri.org", "coach@league.org"]


def test_is_likely_email() -> None:
    assert is_likely_email("coach@league.org")
    assert not is_likely_email("a@league.org")
    assert not is_likely_email("__next@league.org")
    assert not is_likely_email("coach@league.xyz")
    assert not is_likely_email("coach@x.org")


def test_deobfuscation_forms() -> None:
    assert deobfuscate_emails("ref [at] league [dot] org") == "ref@league.org"
    assert deobfuscate_emails("ref (at) league (dot) org") == "ref@league.org"
    assert deobfuscate_emails("write jane at riopen dot org today") == "write jane@riopen.org today"


def test_decode_cfemail() -> None:
    assert decode_cfemail("42362602302b6c2d3025") == "td@ri.org"
    assert decode_cfemail("4") is None
    assert decode_cfemail("zz11") is None


def test_extract_phones_dedupes_by_digits() -> None:
    soup = BeautifulSoup('<a href="tel:+14015550100">Call</a>', "html.parser")
    assert extract_phones("Call (401) 555-0100 or 401.555.0100 or 12345", soup) == ["+14015550100"]
    assert phone_digits("+1 (401) 555-0100") == "4015550100"


def test_contact_names_before_and_after_role() -> None:
    assert extract_contact_names("Contact our Tournament Director, Jane Smith") == ["Jane Smith"]
    assert extract_contact_names("Jane Smith (Tournament Director)") == ["Jane Smith"]
    assert extract_contact_names("The Tournament Director will respond") == []


def test_classify_role() -> None:
    assert classify_role("Referee Coordinator") == "ASSIGNOR"
    assert classify_role("Event Director") == "TD"
    assert classify_role("Questions for the officials") == "ASSIGNOR"
    assert classify_role("email info for details") == "GENERAL"
    assert classify_role("") is None
