from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from bs4 import BeautifulSoup

from sweeps.extractors.text import Page, normalize_space

ContactRole = Literal["TD", "ASSIGNOR", "GENERAL"]

MAX_CONTACTS = 20
CONTEXT_WINDOW = 240

EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_RE = re.compile(r"(?<![\d-])(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?![\d-])")
CF_HREF_RE = re.compile(r"/cdn-cgi/l/email-protection#([a-f0-9]+)", re.IGNORECASE)
_BRACKET_AT_RE = re.compile(r"\s*[\[(]\s*at\s*[\])]\s*", re.IGNORECASE)
_BRACKET_DOT_RE = re.compile(r"\s*[\[(]\s*dot\s*[\])]\s*", re.IGNORECASE)
_SPELLED_RE = re.compile(
    r"\b([A-Z0-9._%+-]+)\s+at\s+([A-Z0-9-]+(?:\s+dot\s+[A-Z0-9-]+)+)\b",
    re.IGNORECASE,
)
_SPELLED_DOT_RE = re.compile(r"\s+dot\s+", re.IGNORECASE)

_NAME = r"[A-Z][a-z]+(?:[ '-][A-Z][a-z]+){1,2}"
_ROLE_WORD = r"(?i:tournament\s+director|event\s+director|director|coordinator|assignor)"
NAME_AFTER_ROLE_RE = re.compile(rf"{_ROLE_WORD}\s*(?:[:,-]|\bis\b)?\s*(?P<name>{_NAME})")
NAME_BEFORE_ROLE_RE = re.compile(rf"(?P<name>{_NAME})\s*(?:[,(-])\s*(?:[A-Za-z]+\s+){{0,2}}{_ROLE_WORD}")
NAME_STOP_WORDS = {
    "and",
    "assignor",
    "contact",
    "coordinator",
    "director",
    "email",
    "event",
    "field",
    "for",
    "info",
    "officials",
    "our",
    "park",
    "phone",
    "please",
    "questions",
    "referee",
    "referees",
    "registration",
    "schedule",
    "the",
    "tournament",
    "us",
}

ROLE_PATTERNS: tuple[tuple[ContactRole, re.Pattern[str]], ...] = (
    (
        "ASSIGNOR",
        re.compile(r"\b(?:referee\s+assignor|assignor|referee\s+coordinator|officials\s+coordinator)\b", re.I),
    ),
    ("TD", re.compile(r"\b(?:tournament\s+director|event\s+director|director|td)\b", re.I)),
    ("ASSIGNOR", re.compile(r"\b(?:scheduler|officials|referees)\b", re.I)),
    ("GENERAL", re.compile(r"\b(?:contact|info|support|admin)\b", re.I)),
)
CONTACT_CUE_KEYWORDS = (
    "contact",
    "questions",
    "email",
    "reach",
    "director",
    "referee",
    "assignor",
    "officials",
    "coordinator",
    "support",
    "info@",
    "admin@",
)
URL_CUE_KEYWORDS = ("contact", "info", "referee", "official", "assignor", "director")
EMAIL_SELF_CUES = ("info@", "contact@", "tournament@", "director@", "assignor@", "referee@", "officials@")

ALLOWED_TLDS = {"com", "org", "net", "edu", "gov", "us", "co", "io", "ai", "club", "sports", "soccer", "info"}
BLOCKED_EMAIL_DOMAINS = (
    "sentry.io",
    "sentry-next.wixpress.com",
    "sentry.wixpress.com",
    "wixpress.com",
    "wix.com",
    "wixstatic.com",
    "parastorage.com",
    "wixsite.com",
    "example.com",
    "example.org",
    "example.net",
)
BLOCKED_EMAIL_LOCALS = {"noreply", "no-reply", "donotreply", "do-not-reply", "support", "helpdesk", "mailer-daemon"}
BLOCKED_LOCAL_FRAGMENTS = ("datalayer", "gtag", "monsterinsights", "window", "navigator")


@dataclass(slots=True)
class Contact:
    role: ContactRole | None
    name: str | None
    email: str | None
    phone: str | None
    confidence: float
    evidence_text: str


def deobfuscate_emails(text: str) -> str:
    expanded = _BRACKET_AT_RE.sub("@", text)
    expanded = _BRACKET_DOT_RE.sub(".", expanded)
    return _SPELLED_RE.sub(lambda match: f"{match.group(1)}@{_SPELLED_DOT_RE.sub('.', match.group(2))}", expanded)


def decode_cfemail(encoded: str) -> str | None:
    if len(encoded) < 4 or len(encoded) % 2:
        return None
    try:
        key = int(encoded[:2], 16)
        return "".join(chr(int(encoded[index : index + 2], 16) ^ key) for index in range(2, len(encoded), 2))
    except ValueError:
        return None


def normalize_email(raw: str) -> str:
    value = raw.strip()
    if value.lower().startswith("mailto:"):
        value = value[len("mailto:") :]
    value = value.split("?", 1)[0]
    value = re.sub(r"[#),.;:]+$", "", value)
    return re.sub(r"\s+", "", value).lower()


def is_likely_email(email: str) -> bool:
    local, separator, domain = email.lower().partition("@")
    if not separator or len(local) < 2 or not domain or "." not in domain:
        return False
    if local in BLOCKED_EMAIL_LOCALS or local.startswith("__"):
        return False
    if any(fragment in local for fragment in BLOCKED_LOCAL_FRAGMENTS):
        return False
    if any(domain == blocked or domain.endswith(f".{blocked}") for blocked in BLOCKED_EMAIL_DOMAINS):
        return False
    parts = domain.split(".")
    if any(len(part) < 2 for part in parts):
        return False
    return parts[-1] in ALLOWED_TLDS


def extract_emails(text: str, soup: BeautifulSoup | None = None) -> list[str]:
    found: list[str] = []
    if soup is not None:
        for anchor in soup.find_all("a", href=True):
            href = str(anchor["href"])
            if href.lower().startswith("mailto:"):
                found.append(normalize_email(href))
            cf_match = CF_HREF_RE.search(href)
            if cf_match:
                found.append(normalize_email(decode_cfemail(cf_match.group(1)) or ""))
        for element in soup.find_all(attrs={"data-cfemail": True}):
            found.append(normalize_email(decode_cfemail(str(element["data-cfemail"])) or ""))
    found.extend(normalize_email(match.group(0)) for match in EMAIL_RE.finditer(deobfuscate_emails(text)))
    return _dedupe(email for email in found if is_likely_email(email))


def extract_phones(text: str, soup: BeautifulSoup | None = None) -> list[str]:
    found: list[str] = []
    if soup is not None:
        for anchor in soup.find_all("a", href=True):
            href = str(anchor["href"])
            if href.lower().startswith("tel:"):
                found.append(href[len("tel:") :].strip())
    found.extend(match.group(0) for match in PHONE_RE.finditer(text))

    phones: list[str] = []
    seen: set[str] = set()
    for phone in found:
        digits = phone_digits(phone)
        if len(digits) != 10 or digits in seen:
            continue
        seen.add(digits)
        phones.append(normalize_space(phone))
    return phones


def phone_digits(phone: str | None) -> str:
    digits = re.sub(r"\D+", "", phone or "")
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits


def extract_contact_names(text: str) -> list[str]:
    names: list[str] = []
    for pattern in (NAME_AFTER_ROLE_RE, NAME_BEFORE_ROLE_RE):
        for match in pattern.finditer(text):
            name = _clean_name(match.group("name"))
            if name:
                names.append(name)
    return _dedupe(names)


def classify_role(window: str) -> ContactRole | None:
    for role, pattern in ROLE_PATTERNS:
        if pattern.search(window):
            return role
    return None


def has_contact_cue(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in CONTACT_CUE_KEYWORDS)


def extract_contacts(page: Page) -> list[Contact]:
    text = deobfuscate_emails(page.text)
    lowered_text = text.lower()
    url_cue = any(keyword in page.url.lower() for keyword in URL_CUE_KEYWORDS)
    mailto = {
        normalize_email(str(anchor["href"]))
        for anchor in page.soup.find_all("a", href=True)
        if str(anchor["href"]).lower().startswith("mailto:")
    }

    contacts: list[Contact] = []
    for email in extract_emails(page.text, page.soup):
        snippet = _window(text, lowered_text.find(email))
        self_cue = any(cue in email for cue in EMAIL_SELF_CUES)
        if not (has_contact_cue(snippet) or self_cue or email in mailto or url_cue):
            continue
        contacts.append(_build_contact(snippet, lowered_text, url_cue, email=email, phone=None))
        if len(contacts) >= MAX_CONTACTS:
            return contacts

    for phone in extract_phones(page.text, page.soup):
        snippet = _window(text, text.find(phone))
        owner = next(
            (
                contact
                for contact in contacts
                if contact.email and contact.phone is None and contact.email in snippet.lower()
            ),
            None,
        )
        if owner is not None:
            owner.phone = phone
            continue
        if not (has_contact_cue(snippet) or url_cue):
            continue
        contacts.append(_build_contact(snippet, lowered_text, url_cue, email=None, phone=phone))
        if len(contacts) >= MAX_CONTACTS:
            break
    return contacts


def _build_contact(snippet: str, lowered_text: str, url_cue: bool, *, email: str | None, phone: str | None) -> Contact:
    role = classify_role(snippet)
    boost = 0.3 if role else 0.0
    if role is None:
        if "tournament director" in lowered_text:
            role, boost = "TD", 0.2
        elif "assignor" in lowered_text or "referee coordinator" in lowered_text:
            role, boost = "ASSIGNOR", 0.2
        elif url_cue:
            role, boost = "GENERAL", 0.2
    names = extract_contact_names(snippet)
    name = names[0] if names else None
    confidence = min(1.0, 0.4 + boost + (0.2 if name else 0.0))
    return Contact(
        role=role,
        name=name,
        email=email,
        phone=phone,
        confidence=round(confidence, 2),
        evidence_text=snippet[:300],
    )


def _window(text: str, index: int) -> str:
    if index < 0:
        return ""
    return text[max(0, index - CONTEXT_WINDOW) : index + CONTEXT_WINDOW]


def _clean_name(raw: str) -> str | None:
    tokens: list[str] = []
    for token in re.split(r"\s+", raw.strip()):
        if token.lower() in NAME_STOP_WORDS:
            if tokens:
                break
            continue
        tokens.append(token)
    if len(tokens) < 2:
        return None
    return " ".join(tokens)


def _dedupe(values) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        key = value.lower()
        if not value or key in seen:
            continue
        seen.add(key)
        ordered.append(value)
    return ordered
