from __future__ import annotations

import asyncio
import time

import pytest
from aiohttp import web

from link_scout.config import ScanOptions, ScannerConfig
from link_scout.crawler.crawler import AsyncCrawler
from link_scout.crawler.models import FetchOutcome, Finding, ScanState, SourceType
from link_scout.errors import (
    BrowserFallbackRequiredError,
    InvalidURLError,
    RobotsDisallowedError,
    ScanCancelledError,
)
from link_scout.scanner import Scanner


class Site:
    """Tiny routable site that remembers every request it served."""

    def __init__(self, pages: dict[str, tuple[int, str]] | None = None):
        self.pages: dict[str, tuple[int, str]] = dict(pages or {})
        self.hits: list[tuple[str, str, float]] = []
        self.on_hit = None

    def add(self, path: str, body: str, status: int = 200) -> Site:
        self.pages[path] = (status, body)
        return self

    def paths(self, method: str | None = None) -> list[str]:
        return [p for m, p, _ in self.hits if method is None or m == method]

    def app(self) -> web.Application:
        async def handler(request: web.Request) -> web.Response:
            self.hits.append((request.method, request.path_qs, time.monotonic()))
            if self.on_hit is not None:
                self.on_hit(request)
            if request.path_qs not in self.pages:
                return web.Response(status=404, text="not found", content_type="text/html")
            status, body = self.pages[request.path_qs]
            content_type = "text/plain" if request.path == "/robots.txt" else "text/html"
            if request.path.endswith((".png", ".js", ".css")):
                content_type = "application/octet-stream"
            return web.Response(status=status, text=body, content_type=content_type)

        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", handler)
        return app


def links_to(*paths: str) -> str:
    return "<html><body>" + "".join(f'<a href="{p}">{p}</a>' for p in paths) + "</body></html>"


class StubRendered:
    """Rendered fetcher replacement returning a prepared outcome."""

    def __init__(self, outcome_for):
        self.outcome_for = outcome_for
        self.calls: list[str] = []

    async def fetch_rendered(self, url: str, origin: str) -> FetchOutcome:
        self.calls.append(url)
        return self.outcome_for(url, origin)


async def crawl(config, url, options=None, **kwargs):
    crawler = AsyncCrawler(config, options, **kwargs)
    async with crawler:
        findings = await crawler.crawl(url)
    return crawler, findings


@pytest.mark.asyncio()
async def test_single_page_with_broken_image(fast_config, serve):
    site = Site().add("/", '<html><body><p>hi</p><img src="/missing.png"></body></html>')
    base = await serve(site.app())

    crawler, findings = await crawl(fast_config, f"{base}/")

    assert crawler.state is ScanState.COMPLETED
    assert [f.link for f in findings] == [f"{base}/", f"{base}/missing.png"]
    page, image = findings
    assert page.status_code == 200 and not page.broken
    assert image.status_code == 404 and image.broken
    assert image.reason == "http-404"
    assert all(f.source_type is SourceType.PRIMARY for f in findings)
    assert site.paths("HEAD") == ["/missing.png"]


@pytest.mark.asyncio()
async def test_budget_caps_findings_in_breadth_first_order(fast_config, serve):
    children = [f"/p{i}" for i in range(150)]
    site = Site().add("/", links_to(*children))
    for child in children:
        site.add(child, "<html><body>leaf</body></html>")
    base = await serve(site.app())

    _, findings = await crawl(fast_config, f"{base}/")

    assert len(findings) == 100
    assert [f.link for f in findings] == [f"{base}/"] + [f"{base}{c}" for c in children[:99]]
    assert "/p99" not in site.paths()


@pytest.mark.asyncio()
async def test_allowlisted_scan_gets_larger_budget(fast_config, serve):
    children = [f"/p{i}" for i in range(250)]
    site = Site().add("/", links_to(*children))
    for child in children:
        site.add(child, "<p>leaf</p>")
    base = await serve(site.app())
    options = ScanOptions(cooperation={"whitelistIP": True})

    _, findings = await crawl(fast_config, f"{base}/", options)

    assert len(findings) == 200


@pytest.mark.asyncio()
async def test_pages_are_visited_once_and_nested_links_follow(fast_config, serve):
    site = (
        Site()
        .add("/", links_to("/a", "/b", "/a#top", "/"))
        .add("/a", links_to("/", "/b", "/c"))
        .add("/b", links_to("/c"))
        .add("/c", "<p>end</p>")
    )
    base = await serve(site.app())

    _, findings = await crawl(fast_config, f"{base}/")

    assert [f.link for f in findings] == [f"{base}{p}" for p in ("/", "/a", "/b", "/c")]
    assert site.paths("GET").count("/c") == 1


@pytest.mark.asyncio()
async def test_url_used_as_link_and_asset_is_audited_once(fast_config, serve):
    site = (
        Site()
        .add("/", '<a href="/logo.png"><img src="/logo.png"></a><img src="/shared.png"><a href="/p">p</a>')
        .add("/logo.png", "png")
        .add("/shared.png", "png")
        .add("/p", '<a href="/shared.png">shared</a><img src="/logo.png">')
    )
    base = await serve(site.app())

    crawler, findings = await crawl(fast_config, f"{base}/")

    links = [f.link for f in findings]
    assert len(links) == len(set(links))
    assert sorted(links) == sorted(f"{base}{p}" for p in ("/", "/logo.png", "/shared.png", "/p"))
    assert site.paths().count("/logo.png") == 1
    assert site.paths().count("/shared.png") == 1
    assert crawler.visited >= set(links)


@pytest.mark.asyncio()
async def test_external_links_are_never_fetched(fast_config, serve):
    other = Site().add("/", "<p>elsewhere</p>")
    other_base = await serve(other.app())
    site = Site().add("/", f'<a href="{other_base}/">out</a><img src="{other_base}/x.png"><a href="/in">in</a>')
    site.add("/in", "<p>in</p>")
    base = await serve(site.app())

    _, findings = await crawl(fast_config, f"{base}/")

    assert [f.link for f in findings] == [f"{base}/", f"{base}/in"]
    assert other.hits == []


@pytest.mark.asyncio()
async def test_robots_disallowing_the_seed_aborts_before_any_page(fast_config, serve):
    site = Site().add("/robots.txt", "User-agent: *\nDisallow: /").add("/", "<p>home</p>")
    base = await serve(site.app())
    crawler = AsyncCrawler(fast_config)

    async with crawler:
        with pytest.raises(RobotsDisallowedError) as info:
            await crawler.crawl(f"{base}/")

    assert info.value.status_code == 403
    assert crawler.state is ScanState.ABORTED
    assert site.paths() == ["/robots.txt"]


@pytest.mark.asyncio()
async def test_robots_disallowing_a_later_page_aborts_the_scan(fast_config, serve):
    site = (
        Site()
        .add("/robots.txt", "User-agent: *\nDisallow: /secret")
        .add("/", links_to("/secret"))
        .add("/secret", "<p>hidden</p>")
    )
    base = await serve(site.app())
    crawler = AsyncCrawler(fast_config)

    async with crawler:
        with pytest.raises(RobotsDisallowedError):
            await crawler.crawl(f"{base}/")

    assert "/secret" not in site.paths()
    assert site.paths().count("/robots.txt") == 1


@pytest.mark.asyncio()
async def test_blocked_page_without_fallback_reports_partial_findings(fast_config, serve):
    site = Site().add("/", links_to("/a")).add("/a", "denied", status=403)
    base = await serve(site.app())
    crawler = AsyncCrawler(fast_config, ScanOptions(allow_browser_fallback=False))

    async with crawler:
        with pytest.raises(BrowserFallbackRequiredError) as info:
            await crawler.crawl(f"{base}/")

    err = info.value
    assert crawler.state is ScanState.BLOCKED
    assert err.status_code == 409
    assert [f.link for f in err.partial_findings] == [f"{base}/", f"{base}/a"]
    assert err.partial_findings[-1].reason == "blocked"
    assert err.to_dict()["partialFindings"][-1]["statusCode"] == 403
    assert err.to_dict()["kind"] == "browser-required"


@pytest.mark.asyncio()
async def test_rendered_result_supersedes_blocked_primary(fast_config, serve):
    site = Site().add("/", "denied", status=403).add("/a", "<p>a</p>")
    base = await serve(site.app())

    def rendered(url, origin):
        return FetchOutcome(
            finding=Finding.from_status(url, 200, time_taken_ms=40, source_type=SourceType.RENDERED),
            html='<html><body><img src="/img.png"></body></html>',
            links=[f"{base}/a"],
            network_status={f"{base}/img.png": 404},
        )

    stub = StubRendered(rendered)
    _, findings = await crawl(fast_config, f"{base}/", rendered_fetcher=stub)

    assert stub.calls == [f"{base}/"]
    assert [f.link for f in findings] == [f"{base}/", f"{base}/img.png", f"{base}/a"]
    root, image, page = findings
    assert root.source_type is SourceType.RENDERED and root.status_code == 200
    assert image.source_type is SourceType.RENDERED
    assert image.status_code == 404 and image.broken and image.time_taken_ms == 0
    assert page.source_type is SourceType.PRIMARY
    assert "/img.png" not in site.paths()


@pytest.mark.asyncio()
async def test_empty_rendered_result_keeps_primary_finding(fast_config, serve):
    site = Site().add("/", "denied", status=403)
    base = await serve(site.app())

    def rendered(url, origin):
        return FetchOutcome(
            finding=Finding.from_status(
                url, None, time_taken_ms=10, source_type=SourceType.RENDERED, reason="timeout"
            )
        )

    _, findings = await crawl(fast_config, f"{base}/", rendered_fetcher=StubRendered(rendered))

    assert len(findings) == 1
    assert findings[0].status_code == 403
    assert findings[0].reason == "blocked"
    assert findings[0].source_type is SourceType.PRIMARY


@pytest.mark.asyncio()
async def test_asset_head_rejection_is_retried_as_get(fast_config, serve):
    async def page(_):
        return web.Response(text='<img src="/pic.png">', content_type="text/html")

    async def pic_head(_):
        return web.Response(status=405)

    async def pic_get(_):
        return web.Response(body=b"png", content_type="image/png")

    app = web.Application()
    app.router.add_get("/", page)
    app.router.add_route("HEAD", "/pic.png", pic_head)
    app.router.add_get("/pic.png", pic_get, allow_head=False)
    base = await serve(app)

    _, findings = await crawl(fast_config, f"{base}/")

    assert findings[1].link == f"{base}/pic.png"
    assert findings[1].status_code == 200
    assert not findings[1].broken


@pytest.mark.asyncio()
@pytest.mark.parametrize("url", ["ftp://example.com/", "not a url", "mailto:a@b.c", ""])
async def test_invalid_start_url(fast_config, url):
    crawler = AsyncCrawler(fast_config)
    async with crawler:
        with pytest.raises(InvalidURLError) as info:
            await crawler.crawl(url)

    assert info.value.status_code == 400
    assert crawler.state is ScanState.ABORTED


@pytest.mark.asyncio()
async def test_cancellation_returns_partial_findings(fast_config, serve):
    cancel = asyncio.Event()
    site = Site().add("/", '<img src="/a.png"><a href="/next">n</a>').add("/next", "<p>n</p>")
    site.on_hit = lambda request: cancel.set() if request.path == "/" else None
    base = await serve(site.app())
    crawler = AsyncCrawler(fast_config, cancel_event=cancel)

    async with crawler:
        with pytest.raises(ScanCancelledError) as info:
            await crawler.crawl(f"{base}/")

    assert crawler.state is ScanState.CANCELLED
    assert [f.link for f in info.value.partial_findings] == [f"{base}/"]
    assert "/a.png" not in site.paths()
    assert "/next" not in site.paths()


@pytest.mark.slow
@pytest.mark.asyncio()
async def test_maintenance_seed_is_retried_with_backoff(serve):
    site = Site().add("/", "down for maintenance", status=503)
    base = await serve(site.app())
    config = ScannerConfig(user_agent="TestAgent/1.0", rate_limit_interval=0)

    _, findings = await crawl(config, f"{base}/")

    stamps = [t for m, p, t in site.hits if p == "/"]
    assert len(stamps) == 3
    assert stamps[1] - stamps[0] >= 0.45
    assert stamps[2] - stamps[1] >= 0.95
    assert len(findings) == 1
    assert findings[0].status_code == 503
    assert findings[0].reason == "maintenance"
    assert findings[0].broken


@pytest.mark.slow
@pytest.mark.asyncio()
async def test_requests_to_one_host_are_paced(serve):
    site = Site().add("/", links_to("/a", "/b")).add("/a", "<p>a</p>").add("/b", "<p>b</p>")
    base = await serve(site.app())
    config = ScannerConfig(user_agent="TestAgent/1.0", rate_limit_interval=0.5)

    _, findings = await crawl(config, f"{base}/")

    assert len(findings) == 3
    stamps = [t for _, _, t in site.hits]
    assert len(stamps) == 4
    assert all(b - a >= 0.45 for a, b in zip(stamps, stamps[1:]))


@pytest.mark.slow
@pytest.mark.asyncio()
async def test_concurrent_scans_share_host_pacing(serve):
    site = Site().add("/", links_to("/a")).add("/a", "<p>a</p>").add("/b", links_to("/a"))
    base = await serve(site.app())
    scanner = Scanner(ScannerConfig(user_agent="TestAgent/1.0", rate_limit_interval=0.5))

    first, second = await asyncio.gather(scanner.scan(f"{base}/"), scanner.scan(f"{base}/b"))

    assert len(first) == 2 and len(second) == 2
    stamps = sorted(t for _, _, t in site.hits)
    assert all(b - a >= 0.45 for a, b in zip(stamps, stamps[1:]))
