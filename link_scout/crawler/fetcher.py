# link_scout/crawler/fetcher.py
"""
Fetcher module: lightweight HTTP requests with rate limiting, retry/backoff,
and timeout.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, Optional

from aiohttp import BasicAuth, ClientSession, ClientTimeout

from link_scout.config import CooperationOptions, ScannerConfig
from link_scout.crawler.models import FetchOutcome, Finding, SourceType
from link_scout.crawler.policy import classify_status_reason, should_fallback
from link_scout.crawler.rate_limiter import HostRateLimiter
from link_scout.crawler.retry import TRANSIENT_STATUS_CODES, with_retries
from link_scout.crawler.robots import RobotsResponse
from link_scout.errors import FetchFailure, HTTPStatusError
from link_scout.logger import log_request


@dataclass(slots=True)
class RawResponse:
    status: int
    body: str
    content_type: str


def build_headers(user_agent: str, cooperation: Optional[CooperationOptions]) -> Dict[str, str]:
    headers = {"User-Agent": user_agent}
    if cooperation is not None and cooperation.api_key:
        headers["X-API-Key"] = cooperation.api_key
    return headers


def build_auth(cooperation: Optional[CooperationOptions]) -> Optional[BasicAuth]:
    if cooperation is None or cooperation.site_credentials is None:
        return None
    creds = cooperation.site_credentials
    return BasicAuth(creds.user, creds.password)


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


def _is_html(content_type: str) -> bool:
    mime = content_type.split(";", 1)[0].strip().lower()
    return not mime or "html" in mime


class PrimaryFetcher:
    """Handles plain HTTP fetching (no script execution) for one scan."""

    def __init__(
        self,
        session: ClientSession,
        config: ScannerConfig,
        rate_limiter: HostRateLimiter,
        cooperation: Optional[CooperationOptions] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.rate_limiter = rate_limiter
        self._headers = build_headers(config.user_agent, cooperation)
        self._auth = build_auth(cooperation)
        self._timeout = ClientTimeout(total=config.request_timeout)

    async def _request_once(self, method: str, url: str, *, read_body: bool = True) -> RawResponse:
        await self.rate_limiter.await_turn(url)
        async with self.session.request(
            method,
            url,
            headers=self._headers,
            auth=self._auth,
            timeout=self._timeout,
            max_redirects=self.config.max_redirects,
            allow_redirects=True,
        ) as resp:
            body = await resp.text(errors="replace") if read_body else ""
            if resp.status in TRANSIENT_STATUS_CODES:
                raise HTTPStatusError(resp.status, url, body)
            return RawResponse(resp.status, body, resp.headers.get("Content-Type", ""))

    async def request(self, method: str, url: str, *, read_body: bool = True) -> RawResponse:
        """One logical request: rate limited, retried, classified on failure."""
        return await with_retries(
            lambda: self._request_once(method, url, read_body=read_body),
            method=method,
            url=url,
            max_retries=self.config.max_retries,
            base_delay=self.config.backoff_base_delay,
            debug=self.config.debug,
        )

    async def fetch_robots(self, url: str) -> RobotsResponse:
        resp = await self.request("GET", url)
        return RobotsResponse(status=resp.status, text=resp.body, content_type=resp.content_type)

    async def fetch_page(self, url: str) -> FetchOutcome:
        """
        GET a page and classify the outcome.

        Never raises for network trouble: failures become broken findings.
        """
        start = time.perf_counter()
        try:
            resp = await self.request("GET", url)
        except FetchFailure as exc:
            log_request("GET", url, debug=self.config.debug, level="error", reason=exc.reason, status=exc.status)
            finding = Finding.from_status(
                url,
                exc.status,
                time_taken_ms=_elapsed_ms(start),
                source_type=SourceType.PRIMARY,
                reason=exc.reason,
            )
            return FetchOutcome(
                finding=finding,
                html=None,
                should_fallback=should_fallback(exc.reason, exc.status),
            )

        body = resp.body or None
        reason = classify_status_reason(resp.status, body)
        finding = Finding.from_status(
            url,
            resp.status,
            time_taken_ms=_elapsed_ms(start),
            source_type=SourceType.PRIMARY,
            reason=reason,
        )
        log_request("GET", url, debug=self.config.debug, status=resp.status, reason=reason)
        return FetchOutcome(
            finding=finding,
            html=body if _is_html(resp.content_type) else None,
            should_fallback=should_fallback(reason, resp.status),
        )

    async def request_asset(self, url: str, method: str = "HEAD") -> Finding:
        start = time.perf_counter()
        try:
            resp = await self.request(method, url, read_body=False)
        except FetchFailure as exc:
            log_request(method, url, debug=self.config.debug, level="error", reason=exc.reason)
            return Finding.from_status(
                url,
                exc.status,
                time_taken_ms=_elapsed_ms(start),
                source_type=SourceType.PRIMARY,
                reason=exc.reason,
            )
        log_request(method, url, debug=self.config.debug, status=resp.status)
        return Finding.from_status(
            url,
            resp.status,
            time_taken_ms=_elapsed_ms(start),
            source_type=SourceType.PRIMARY,
            reason=classify_status_reason(resp.status, check_body=False),
        )

    async def check_asset(self, url: str) -> Finding:
        """HEAD the asset; fall back to GET once if HEAD is not allowed."""
        finding = await self.request_asset(url, "HEAD")
        if finding.status_code == 405:
            finding = await self.request_asset(url, "GET")
        return finding


__all__ = ["PrimaryFetcher", "RawResponse", "build_headers", "build_auth"]
