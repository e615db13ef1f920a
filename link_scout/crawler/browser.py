# link_scout/crawler/browser.py
"""
Rendered-browser fallback fetcher built on Playwright.

Used only when a plain request was rejected or throttled. Each call owns an
isolated browser, context and page and releases all of them before returning.
While the page loads, the status of every same-origin response (images,
scripts, stylesheets...) is recorded so asset checks can reuse it.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import async_playwright

from link_scout.config import CooperationOptions, ScannerConfig
from link_scout.crawler.models import FetchOutcome, Finding, SourceType
from link_scout.crawler.policy import classify_status_reason
from link_scout.crawler.rate_limiter import HostRateLimiter
from link_scout.crawler.retry import classify_error, error_status
from link_scout.logger import log_request, logger
from link_scout.utils import in_scope, normalize_url

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

# Collects anchor targets of the rendered DOM that stay on *origin*.
_COLLECT_LINKS_JS = """
([origin, maxLinks]) => {
    const unique = new Set();
    for (const anchor of document.querySelectorAll('a[href]')) {
        if (unique.size >= maxLinks) {
            break;
        }
        const href = anchor.getAttribute('href');
        if (!href) {
            continue;
        }
        try {
            const resolved = new URL(href, document.baseURI);
            if (resolved.origin !== origin) {
                continue;
            }
            resolved.hash = '';
            unique.add(resolved.href);
        } catch (e) {}
    }
    return Array.from(unique);
}
"""


class RenderedFetcher:
    """Script-executing page fetch for one scan."""

    def __init__(
        self,
        config: ScannerConfig,
        rate_limiter: HostRateLimiter,
        cooperation: Optional[CooperationOptions] = None,
        *,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.config = config
        self.rate_limiter = rate_limiter
        self.cooperation = cooperation
        self._playwright_factory = playwright_factory

    def _context_options(self) -> Dict[str, Any]:
        headers = {"Accept-Language": "en-US,en;q=0.9"}
        options: Dict[str, Any] = {"user_agent": self.config.browser_user_agent}
        coop = self.cooperation
        if coop is not None and coop.api_key:
            headers["X-API-Key"] = coop.api_key
        if coop is not None and coop.site_credentials is not None:
            options["http_credentials"] = {
                "username": coop.site_credentials.user,
                "password": coop.site_credentials.password,
            }
        options["extra_http_headers"] = headers
        return options

    async def fetch_rendered(self, url: str, origin: str) -> FetchOutcome:
        start = time.perf_counter()
        network_status: Dict[str, int] = {}
        playwright = browser = context = page = None

        def _record(response: Any) -> None:
            link = normalize_url(response.url)
            if link is None or not in_scope(link, origin):
                return
            network_status[link] = response.status

        try:
            playwright = await self._playwright_factory().start()
            browser = await playwright.chromium.launch(headless=self.config.headless, args=LAUNCH_ARGS)
            context = await browser.new_context(**self._context_options())
            page = await context.new_page()
            page.on("response", _record)

            await self.rate_limiter.await_turn(url)
            response = await page.goto(
                url,
                wait_until="load",
                timeout=self.config.browser_timeout * 1000,
            )
            await self._wait_for_idle(page)

            html = await page.content()
            links: List[str] = await page.evaluate(_COLLECT_LINKS_JS, [origin, self.config.max_links])
            status = response.status if response is not None else None
            reason = classify_status_reason(status, html)
            log_request("browser", url, debug=self.config.debug, status=status, reason=reason)
            return FetchOutcome(
                finding=Finding.from_status(
                    url,
                    status,
                    time_taken_ms=round((time.perf_counter() - start) * 1000),
                    source_type=SourceType.RENDERED,
                    reason=reason,
                ),
                html=html or None,
                links=_canonical_links(links, origin),
                network_status=dict(network_status),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = classify_error(exc)
            log_request("browser", url, debug=self.config.debug, level="error", reason=reason, error=str(exc))
            return FetchOutcome(
                finding=Finding.from_status(
                    url,
                    error_status(exc),
                    time_taken_ms=round((time.perf_counter() - start) * 1000),
                    source_type=SourceType.RENDERED,
                    reason=reason,
                ),
                network_status=dict(network_status),
            )
        finally:
            await self._release(url, page=page, context=context, browser=browser, playwright=playwright)

    async def _wait_for_idle(self, page: Any) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=self.config.browser_timeout * 1000)
            return
        except Exception as exc:
            logger.debug("Network never went idle for %s: %s", page.url, exc)
        await page.wait_for_timeout(self.config.browser_idle_time * 1000)

    async def _release(self, url: str, **handles: Any) -> None:
        """Close page, context and browser, stop the driver. Errors are logged only."""
        for name, handle in handles.items():
            if handle is None:
                continue
            try:
                if name == "playwright":
                    await handle.stop()
                else:
                    await handle.close()
            except Exception as exc:
                log_request("browser", url, level="error", reason=f"close-{name}", error=str(exc))


def _canonical_links(links: List[str], origin: str) -> List[str]:
    seen: Dict[str, None] = {}
    for raw in links:
        link = normalize_url(raw)
        if link is not None and in_scope(link, origin):
            seen.setdefault(link, None)
    return list(seen)


__all__ = ["RenderedFetcher"]
