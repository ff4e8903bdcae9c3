from __future__ import annotations

import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from sweeps.extractors.attributes import TRAVEL_KEYWORDS

ROLE_LINK_KEYWORDS = (
    "tournament director",
    "event director",
    "director",
    "td",
    "referee coordinator",
    "officials coordinator",
    "assignor",
    "scheduler",
    "officials",
    "referees",
)
VENUE_LINK_KEYWORDS = ("venue", "location", "field", "complex", "park", "facility")
RATE_LINK_KEYWORDS = ("rate", "pay", "comp", "officials", "referee")
PRIORITY_LINK_KEYWORDS = (
    "contact",
    "questions",
    "referee",
    "referees",
    "officials",
    "assignor",
    "director",
    "staff",
    "tournament",
    "about",
    "help",
    "support",
)
REFEREE_LINK_MARKERS = ("referee", "officials", "assignor")
PRIORITY_LINK_RE = re.compile(r"contact|staff|director|referee|officials|assignor|about", re.IGNORECASE)
SKIPPED_LINK_SCHEMES = ("mailto:", "tel:", "javascript:")


def score_link(path: str, text: str) -> int:
    path = path.lower()
    text = text.lower()
    score = 0
    for keyword in (*ROLE_LINK_KEYWORDS, *VENUE_LINK_KEYWORDS, *RATE_LINK_KEYWORDS, *TRAVEL_KEYWORDS):
        if keyword in path or keyword in text:
            score += 2
    for keyword in PRIORITY_LINK_KEYWORDS:
        if keyword in path or keyword in text:
            score += 4
    if any(marker in path for marker in REFEREE_LINK_MARKERS) or "referee" in text or "officials" in text:
        score += 6
    return score or 1


def rank_links(soup: BeautifulSoup, base_url: str) -> list[str]:
    """Same-host links ordered by relevance score, highest first."""
    base_host = (urlparse(base_url).hostname or "").lower()
    scores: dict[str, int] = {}
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIPPED_LINK_SCHEMES):
            continue
        absolute = urljoin(base_url, href).split("#", 1)[0]
        parsed = urlparse(absolute)
        if parsed.scheme not in {"http", "https"} or (parsed.hostname or "").lower() != base_host:
            continue
        score = score_link(parsed.path, anchor.get_text(" "))
        scores[absolute] = max(scores.get(absolute, 0), score)
    return [url for url, _ in sorted(scores.items(), key=lambda item: item[1], reverse=True)]


def priority_links(ranked: list[str], limit: int = 2) -> list[str]:
    return [url for url in ranked if PRIORITY_LINK_RE.search(urlparse(url).path)][:limit]
