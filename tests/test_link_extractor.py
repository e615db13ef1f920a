from link_scout.crawler.link_extractor import extract_page_resources

ORIGIN = "https://example.com"
PAGE = "https://example.com/docs/index.html"

HTML = """
<html><head>
  <link rel="stylesheet" href="/static/site.css">
  <link rel="icon" href="/favicon.ico">
  <script src="app.js"></script>
  <script>inline()</script>
</head><body>
  <a href="/about#team">About</a>
  <a href="guide.html">Guide</a>
  <a href="https://EXAMPLE.com:443/about">About again</a>
  <a href="https://other.org/">Elsewhere</a>
  <a href="mailto:team@example.com">Mail</a>
  <a href="http://[::1">Broken</a>
  <a href="   ">Blank</a>
  <img src="/img/logo.png">
  <img src="https://cdn.other.org/pic.png">
  <img src="/img/logo.png">
</body></html>
"""


def test_links_are_canonical_in_scope_and_deduplicated():
    result = extract_page_resources(HTML, PAGE, ORIGIN)

    assert result.links == [
        "https://example.com/about",
        "https://example.com/docs/guide.html",
    ]


def test_assets_cover_images_scripts_and_stylesheets():
    result = extract_page_resources(HTML, PAGE, ORIGIN)

    assert sorted(result.assets) == [
        "https://example.com/docs/app.js",
        "https://example.com/img/logo.png",
        "https://example.com/static/site.css",
    ]


def test_visited_and_known_links_are_skipped():
    result = extract_page_resources(
        HTML,
        PAGE,
        ORIGIN,
        exclude={"https://example.com/about"},
        known_links=["https://example.com/docs/guide.html"],
    )
    assert result.links == []


def test_seen_resources_are_shared_across_pages():
    seen = {"https://example.com/img/logo.png"}

    first = extract_page_resources(HTML, PAGE, ORIGIN, seen_resources=seen)
    second = extract_page_resources(HTML, PAGE, ORIGIN, seen_resources=seen)

    assert "https://example.com/img/logo.png" not in first.assets
    assert "https://example.com/docs/app.js" in seen
    assert second.assets == []


def test_garbage_markup_does_not_raise():
    result = extract_page_resources("<a>x</a><img src=\"\"><p><b>unclosed", PAGE, ORIGIN)
    assert result.links == []
    assert result.assets == []


def test_url_is_reported_either_as_link_or_as_asset():
    html = '<a href="/logo.png"><img src="/logo.png"></a><a href="/pic.png">p</a><img src="/old.png">'
    seen = {"https://example.com/pic.png"}

    result = extract_page_resources(
        html, PAGE, ORIGIN, exclude={"https://example.com/old.png"}, seen_resources=seen
    )

    assert result.links == ["https://example.com/logo.png"]
    assert result.assets == []
    assert "https://example.com/logo.png" not in seen
