# === FILE: link_scout/scanner.py ===
"""
Entry point of the core: ``scan(url, options) -> list[Finding]``.

A :class:`Scanner` owns the process-wide :class:`CrawlResources` (robots
cache and host pacing) and hands them to every scan it runs, so concurrent
scans of one host still share a single pacing schedule.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional

from link_scout.config import ScanOptions, ScannerConfig
from link_scout.crawler.crawler import AsyncCrawler, CrawlResources
from link_scout.crawler.models import Finding


class Scanner:
    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        resources: Optional[CrawlResources] = None,
    ) -> None:
        self.config = config or ScannerConfig.from_env()
        self.resources = resources or CrawlResources.from_config(self.config)

    async def scan(
        self,
        url: str,
        options: Optional[ScanOptions] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Finding]:
        """
        Audit *url* and return its findings in discovery order.

        Raises
        ------
        InvalidURLError
            *url* is not an http(s) URL.
        RobotsDisallowedError
            robots.txt forbids a page of the crawl.
        BrowserFallbackRequiredError
            A page needs a rendered fetch and *options* forbid it.
        ScanCancelledError
            *cancel_event* was set during the crawl.
        """
        self.resources.robots.evict_expired()
        async with AsyncCrawler(self.config, options, self.resources, cancel_event=cancel_event) as crawler:
            return await crawler.crawl(url)


async def start_scan(
    url: str,
    options: Optional[ScanOptions] = None,
    config: Optional[ScannerConfig] = None,
    *,
    scanner: Optional[Scanner] = None,
) -> List[Finding]:
    """Run one scan with a throwaway :class:`Scanner` unless one is given."""
    scanner = scanner or Scanner(config)
    return await scanner.scan(url, options)


__all__ = ["Scanner", "start_scan"]
