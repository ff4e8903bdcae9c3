from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup

from sweeps.extractors.jsonld import parse_jsonld_blocks

_SPACE_RE = re.compile(r"\s+")
_DASH_RE = re.compile(r"[‐-―−]")


def normalize_space(value: str) -> str:
    return _SPACE_RE.sub(" ", value).strip()


def normalize_dashes(value: str) -> str:
    return _DASH_RE.sub("-", value)


@dataclass(slots=True)
class Page:
    url: str
    html: str
    soup: BeautifulSoup
    text: str
    lines: list[str]
    jsonld: list[dict[str, Any]] = field(default_factory=list)
    title: str | None = None

    def table_rows(self) -> list[str]:
        rows: list[str] = []
        for row in self.soup.find_all("tr"):
            cells = [normalize_space(cell.get_text(" ")) for cell in row.find_all(["td", "th"])]
            cells = [cell for cell in cells if cell]
            if len(cells) >= 2:
                rows.append(" | ".join(cells))
        return rows


def parse_page(url: str, html: str) -> Page:
    soup = BeautifulSoup(html, "html.parser")
    jsonld = parse_jsonld_blocks(soup)
    title = _page_title(soup)
    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()

    raw_lines = soup.get_text("\n").split("\n")
    lines = [normalize_space(line) for line in raw_lines]
    return Page(
        url=url,
        html=html,
        soup=soup,
        text=normalize_dashes(normalize_space(soup.get_text(" "))),
        lines=[normalize_dashes(line) for line in lines if line],
        jsonld=jsonld,
        title=title,
    )


def _page_title(soup: BeautifulSoup) -> str | None:
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title is not None and og_title.get("content"):
        return normalize_space(str(og_title["content"])) or None
    if soup.title is not None and soup.title.string:
        return normalize_space(soup.title.string) or None
    return None
