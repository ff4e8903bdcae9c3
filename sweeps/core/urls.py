from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from urllib.parse import unquote_plus, urlsplit, urlunsplit

TRACKING_KEYS = {"ref", "fbclid", "gclid", "mc_cid", "mc_eid"}
DEFAULT_PORTS = {"http": 80, "https": 443}

_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.-]*):(?!\d)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class NormalizedUrl:
    canonical: str
    host: str
    normalized: str


def canonical_hash(normalized_url: str) -> str:
    return hashlib.sha256(normalized_url.encode("utf-8")).hexdigest()


def normalize_source_url(raw_url: str) -> NormalizedUrl:
    value = raw_url.strip()
    if not value:
        raise ValueError("empty url")

    scheme_match = _SCHEME_RE.match(value)
    if scheme_match is None:
        value = f"https://{value.lstrip('/')}"
    elif scheme_match.group(1).lower() not in DEFAULT_PORTS:
        raise ValueError(f"unsupported url scheme: {scheme_match.group(1)}")

    parsed = urlsplit(value)
    scheme = parsed.scheme.lower()
    host = _strip_www((parsed.hostname or "").lower())
    if not host:
        raise ValueError(f"url has no host: {raw_url!r}")

    port = parsed.port
    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/") or "/"

    query = "&".join(part for part in parsed.query.split("&") if part and not _is_tracking_part(part))
    canonical = urlunsplit((scheme, netloc, path, query, ""))
    return NormalizedUrl(
        canonical=canonical,
        host=host,
        normalized=canonical.lower(),
    )


def normalized_or_none(raw_url: str | None) -> str | None:
    if not raw_url:
        return None
    try:
        return normalize_source_url(raw_url).normalized
    except ValueError:
        return None


def same_site(left_host: str, right_host: str) -> bool:
    return _strip_www(left_host.lower()) == _strip_www(right_host.lower())


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def _is_tracking_part(part: str) -> bool:
    key = unquote_plus(part.split("=", 1)[0]).strip().lower()
    return key.startswith("utm_") or key in TRACKING_KEYS
