# === FILE: link_scout/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, Dict, List, Optional, Set

from aiohttp import ClientSession, ClientTimeout

from link_scout.config import ScanOptions, ScannerConfig
from link_scout.crawler.browser import RenderedFetcher
from link_scout.crawler.fetcher import PrimaryFetcher
from link_scout.crawler.link_extractor import extract_page_resources
from link_scout.crawler.models import FetchOutcome, Finding, ScanState, SourceType
from link_scout.crawler.policy import classify_status_reason
from link_scout.crawler.rate_limiter import HostRateLimiter
from link_scout.crawler.robots import RobotsPolicyCache
from link_scout.errors import (
    BrowserFallbackRequiredError,
    InvalidURLError,
    RobotsDisallowedError,
    ScanCancelledError,
)
from link_scout.utils import origin_of, normalize_url

__all__ = ("CrawlResources", "AsyncCrawler")


@dataclass(slots=True)
class CrawlResources:
    """State shared by every scan of the process: robots policies and host pacing."""

    robots: RobotsPolicyCache
    rate_limiter: HostRateLimiter

    @classmethod
    def from_config(cls, config: ScannerConfig) -> CrawlResources:
        return cls(
            robots=RobotsPolicyCache(config.user_agent, ttl=config.robots_ttl, debug=config.debug),
            rate_limiter=HostRateLimiter(config.rate_limit_interval),
        )


class AsyncCrawler:
    """Breadth-first audit of one site, bounded by a finding budget.

    One instance is one scan session: it owns the frontier, the visited and
    seen-resource sets and the findings, and borrows :class:`CrawlResources`.
    Fetches run strictly one after another, so BFS order is also fetch order.
    """

    def __init__(
        self,
        config: ScannerConfig,
        options: Optional[ScanOptions] = None,
        resources: Optional[CrawlResources] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        rendered_fetcher: Optional[RenderedFetcher] = None,
    ) -> None:
        self.config = config
        self.options = options or ScanOptions()
        self.resources = resources or CrawlResources.from_config(config)
        self.cancel_event = cancel_event
        self.budget = self.options.budget(config)
        self.logger = logging.getLogger("LinkScout")
        self.state = ScanState.IDLE
        self.session: Optional[ClientSession] = None
        self.primary: Optional[PrimaryFetcher] = None
        self.rendered = rendered_fetcher or RenderedFetcher(
            config, self.resources.rate_limiter, self.options.cooperation
        )

        self.frontier: Deque[str] = deque()
        self._queued: Set[str] = set()
        self.visited: Set[str] = set()
        self.seen_resources: Set[str] = set()
        self.findings: List[Finding] = []

    async def __aenter__(self) -> AsyncCrawler:
        self.session = ClientSession(
            timeout=ClientTimeout(total=self.config.request_timeout),
            raise_for_status=False,
        )
        self.primary = PrimaryFetcher(
            self.session, self.config, self.resources.rate_limiter, self.options.cooperation
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def crawl(self, start_url: str) -> List[Finding]:
        if self.primary is None:
            raise RuntimeError("Session not initialized")
        start = normalize_url(start_url)
        if start is None:
            self.state = ScanState.ABORTED
            raise InvalidURLError(start_url)

        origin = origin_of(start)
        self.logger.info("Scan started: %s (budget %d)", start, self.budget)
        started = time.monotonic()
        self._enqueue(start)
        self.state = ScanState.RUNNING
        try:
            await self._ensure_allowed(start, origin)
            while self.frontier and len(self.findings) < self.budget:
                self._check_cancelled()
                current = self.frontier.popleft()
                self._queued.discard(current)
                if current in self.visited:
                    continue
                self.visited.add(current)
                await self._process_page(current, origin)
        except RobotsDisallowedError:
            self.state = ScanState.ABORTED
            raise
        except BrowserFallbackRequiredError:
            self.state = ScanState.BLOCKED
            raise
        except ScanCancelledError:
            self.state = ScanState.CANCELLED
            raise
        except BaseException:
            self.state = ScanState.ABORTED
            raise

        self.state = ScanState.COMPLETED
        duration = time.monotonic() - started
        self.logger.info(
            "Scan finished: %d findings, %d broken in %.2f s",
            len(self.findings),
            sum(1 for f in self.findings if f.broken),
            duration,
        )
        return self.findings[: self.budget]

    async def _process_page(self, url: str, origin: str) -> None:
        assert self.primary is not None
        await self._ensure_allowed(url, origin)

        outcome = await self.primary.fetch_page(url)
        if outcome.should_fallback:
            if not self.options.allow_browser_fallback:
                raise BrowserFallbackRequiredError(url, self.findings + [outcome.finding])
            self._check_cancelled()
            outcome = await self._fallback(url, origin, outcome)

        self.findings.append(outcome.finding)
        if len(self.findings) >= self.budget or not outcome.html:
            return

        extracted = extract_page_resources(
            outcome.html,
            url,
            origin,
            exclude=self.visited | self._queued,
            known_links=outcome.links,
            seen_resources=self.seen_resources,
        )
        for link in [*outcome.links, *extracted.links]:
            if len(self.findings) + len(self.frontier) >= self.budget:
                break
            if not self._is_known(link):
                self._enqueue(link)

        for asset in extracted.assets:
            if len(self.findings) >= self.budget:
                break
            if asset in self.visited or asset in self._queued:
                continue
            self._check_cancelled()
            self.visited.add(asset)
            self.findings.append(await self._check_asset(asset, outcome.network_status))

    async def _fallback(self, url: str, origin: str, primary: FetchOutcome) -> FetchOutcome:
        self.logger.info("Primary fetch insufficient for %s (%s), rendering", url, primary.finding.reason)
        rendered = await self.rendered.fetch_rendered(url, origin)
        if rendered.html:
            return FetchOutcome(
                finding=rendered.finding,
                html=rendered.html,
                links=rendered.links or primary.links,
                network_status=rendered.network_status,
            )
        finding = primary.finding
        if finding.reason is None and rendered.finding.reason:
            finding = replace(finding, reason=rendered.finding.reason)
        return replace(primary, finding=finding, should_fallback=False)

    async def _check_asset(self, url: str, observed: Dict[str, int]) -> Finding:
        assert self.primary is not None
        if url in observed:
            status = observed[url]
            return Finding.from_status(
                url,
                status,
                time_taken_ms=0,
                source_type=SourceType.RENDERED,
                reason=classify_status_reason(status, check_body=False),
            )
        return await self.primary.check_asset(url)

    async def _ensure_allowed(self, url: str, origin: str) -> None:
        assert self.primary is not None
        await self.resources.robots.check(url, origin_of(url), self.primary)

    def _is_known(self, url: str) -> bool:
        """Already fetched, queued or checked as an asset in this session."""
        return url in self.visited or url in self._queued or url in self.seen_resources

    def _enqueue(self, url: str) -> None:
        self.frontier.append(url)
        self._queued.add(url)

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.logger.warning("Scan cancelled after %d findings", len(self.findings))
            raise ScanCancelledError(self.findings)
