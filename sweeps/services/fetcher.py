from __future__ import annotations

import asyncio
import codecs
import logging
import time
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx

from sweeps.core.config import Settings
from sweeps.core.errors import SweepDiagnostics, SweepError, SweepErrorKind, classify_html_payload

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
MAX_REDIRECT_HOPS = 5
MAX_BODY_BYTES = 1024 * 1024
MIN_HTML_BYTES = 2048

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FetchResult:
    html: str
    diagnostics: SweepDiagnostics

    @property
    def is_json(self) -> bool:
        return "application/json" in (self.diagnostics.content_type or "").lower()


class DiagnosticFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str,
        timeout_seconds: float = 10.0,
        max_redirects: int = MAX_REDIRECT_HOPS,
        max_bytes: int = MAX_BODY_BYTES,
        min_bytes: int = MIN_HTML_BYTES,
        politeness_delay_seconds: float = 0.0,
    ) -> None:
        self.client = client
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self.max_redirects = max(0, max_redirects)
        self.max_bytes = max(1, max_bytes)
        self.min_bytes = max(0, min_bytes)
        self.politeness_delay_seconds = max(0.0, politeness_delay_seconds)
        self._last_fetch_by_host: dict[str, float] = {}

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> DiagnosticFetcher:
        return cls(
            client,
            user_agent=settings.user_agent,
            timeout_seconds=settings.fetch_timeout_seconds,
            max_redirects=settings.fetch_max_redirects,
            max_bytes=settings.fetch_max_bytes,
            min_bytes=settings.fetch_min_html_bytes,
            politeness_delay_seconds=settings.politeness_delay_seconds,
        )

    async def fetch(self, url: str) -> FetchResult:
        diagnostics = SweepDiagnostics(final_url=url)
        await self._respect_politeness(url)
        started_at = time.perf_counter()
        try:
            html = await asyncio.wait_for(self._fetch(url, diagnostics), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise SweepError(
                SweepErrorKind.FETCH_FAILED,
                f"timed out after {self.timeout_seconds:g}s",
                diagnostics,
            ) from exc
        finally:
            diagnostics.timing_ms = round((time.perf_counter() - started_at) * 1000.0, 2)
        return FetchResult(html=html, diagnostics=diagnostics)

    async def _fetch(self, url: str, diagnostics: SweepDiagnostics) -> str:
        current_url = url
        while True:
            if urlparse(current_url).scheme.lower() not in {"http", "https"}:
                raise SweepError(
                    SweepErrorKind.REDIRECT_BLOCKED,
                    f"redirect to unsupported url {current_url}",
                    diagnostics,
                )
            try:
                async with self.client.stream("GET", current_url, headers={"User-Agent": self.user_agent}) as response:
                    diagnostics.status = int(response.status_code)
                    diagnostics.content_type = response.headers.get("content-type")
                    diagnostics.final_url = str(response.url)

                    if response.status_code in REDIRECT_STATUS_CODES:
                        location = response.headers.get("location")
                        if not location:
                            raise SweepError(
                                SweepErrorKind.REDIRECT_BLOCKED,
                                f"redirect {response.status_code} without location header",
                                diagnostics,
                            )
                        diagnostics.location_header = location
                        diagnostics.redirect_chain.append({"status": int(response.status_code), "location": location})
                        if diagnostics.redirect_count > self.max_redirects:
                            raise SweepError(
                                SweepErrorKind.REDIRECT_BLOCKED,
                                f"exceeded {self.max_redirects} redirect hops",
                                diagnostics,
                            )
                        current_url = urljoin(str(response.url), location)
                        continue

                    if not 200 <= response.status_code < 300:
                        raise SweepError(
                            SweepErrorKind.HTTP_ERROR,
                            f"unexpected status {response.status_code}",
                            diagnostics,
                        )

                    body = await self._read_capped(response)
                    charset = response.charset_encoding
            except httpx.HTTPError as exc:
                raise SweepError(
                    SweepErrorKind.FETCH_FAILED,
                    str(exc) or exc.__class__.__name__,
                    diagnostics,
                ) from exc

            diagnostics.byte_count = len(body)
            failure = classify_html_payload(diagnostics.content_type, len(body), self.min_bytes)
            if failure is SweepErrorKind.NON_HTML_RESPONSE:
                raise SweepError(failure, f"content type {diagnostics.content_type!r} is not html", diagnostics)
            if failure is SweepErrorKind.EMPTY_HTML:
                raise SweepError(failure, f"only {len(body)} bytes received", diagnostics)
            return _decode(body, charset)

    async def _read_capped(self, response: httpx.Response) -> bytes:
        buffer = bytearray()
        async for chunk in response.aiter_bytes():
            remaining = self.max_bytes - len(buffer)
            if remaining <= 0:
                break
            buffer.extend(chunk[:remaining])
        if len(buffer) >= self.max_bytes:
            logger.info("truncated body at %s bytes url=%s", self.max_bytes, response.url)
        return bytes(buffer)

    async def _respect_politeness(self, url: str) -> None:
        if self.politeness_delay_seconds <= 0:
            return
        host = (urlparse(url).hostname or "").lower()
        last = self._last_fetch_by_host.get(host)
        now = time.monotonic()
        if last is not None:
            wait_for = self.politeness_delay_seconds - (now - last)
            if wait_for > 0:
                await asyncio.sleep(wait_for)
        self._last_fetch_by_host[host] = time.monotonic()


def _decode(body: bytes, charset: str | None) -> str:
    encoding = "utf-8"
    if charset:
        try:
            encoding = codecs.lookup(charset).name
        except LookupError:
            encoding = "utf-8"
    return body.decode(encoding, errors="replace")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=False)
