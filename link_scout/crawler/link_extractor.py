# link_scout/crawler/link_extractor.py
"""
Link and asset extraction for LinkScout.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection, Iterator, List, Optional, Set, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from link_scout.utils import in_scope, normalize_url

#: (tag, attribute) pairs that reference a sub-resource of the page
ASSET_SELECTORS: Tuple[Tuple[str, str], ...] = (
    ("img", "src"),
    ("script", "src"),
    ("link", "href"),
)


@dataclass(slots=True)
class ExtractedResources:
    links: List[str] = field(default_factory=list)
    assets: List[str] = field(default_factory=list)


def _attr(tag: object, name: str) -> Optional[str]:
    if not isinstance(tag, Tag):
        return None
    value = tag.get(name)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _is_stylesheet(tag: Tag) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return any(r.lower() == "stylesheet" for r in rel)


def iter_anchor_targets(soup: BeautifulSoup, page_url: str, origin: str) -> Iterator[str]:
    """Yield canonical in-scope anchor targets in document order."""
    for tag in soup.find_all("a", href=True):
        href = _attr(tag, "href")
        if href is None:
            continue
        link = normalize_url(href, page_url)
        if link is not None and in_scope(link, origin):
            yield link


def iter_asset_targets(soup: BeautifulSoup, page_url: str, origin: str) -> Iterator[str]:
    """Yield canonical in-scope asset references (images, scripts, stylesheets)."""
    for name, attr in ASSET_SELECTORS:
        for tag in soup.find_all(name, attrs={attr: True}):
            if name == "link" and not _is_stylesheet(tag):
                continue
            ref = _attr(tag, attr)
            if ref is None:
                continue
            asset = normalize_url(ref, page_url)
            if asset is not None and in_scope(asset, origin):
                yield asset


def extract_page_resources(
    html: str,
    page_url: str,
    origin: str,
    *,
    exclude: Collection[str] = (),
    known_links: Collection[str] = (),
    seen_resources: Optional[Set[str]] = None,
) -> ExtractedResources:
    """
    Extract new page links and assets from *html*.

    A URL is reported at most once per session, either as a link or as an
    asset. Links already in *exclude* (visited or queued), in *known_links*
    (found by the rendered fetch) or in *seen_resources* are skipped. Assets
    already known as links or in *seen_resources* are skipped and new ones are
    added to *seen_resources*. Malformed references are dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    result = ExtractedResources()
    seen = seen_resources if seen_resources is not None else set()

    discovered = set(known_links)
    for link in iter_anchor_targets(soup, page_url, origin):
        if link in exclude or link in discovered or link in seen:
            continue
        discovered.add(link)
        result.links.append(link)

    for asset in iter_asset_targets(soup, page_url, origin):
        if asset in seen or asset in exclude or asset in discovered:
            continue
        seen.add(asset)
        result.assets.append(asset)
    return result


__all__ = [
    "ASSET_SELECTORS",
    "ExtractedResources",
    "extract_page_resources",
    "iter_anchor_targets",
    "iter_asset_targets",
]
