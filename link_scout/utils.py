# File: link_scout/utils.py
"""link_scout.utils: URL canonicalisation and crawl scoping."""

from __future__ import annotations

from typing import Optional, Sequence
from urllib.parse import urljoin, urlsplit, urlunsplit

from link_scout.logger import logger

__all__: Sequence[str] = (
    "normalize_url",
    "origin_of",
    "in_scope",
    "hostname_of",
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(raw: str, base: Optional[str] = None) -> Optional[str]:
    """Resolve *raw* against *base* and return its canonical absolute form.

    Only http(s) URLs survive; anything else, or anything that cannot be
    parsed, yields ``None``. The fragment is dropped, scheme and host are
    lower-cased, default ports removed and an empty path becomes ``/``.
    Query strings are kept verbatim.
    """
    if not isinstance(raw, str):
        return None
    raw = raw.strip()
    if not raw and base is None:
        return None
    try:
        resolved = urljoin(base, raw) if base else raw
        parts = urlsplit(resolved)
        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS:
            return None
        host = parts.hostname
        if not host:
            return None
        port = parts.port
    except ValueError:
        logger.debug("Unparsable URL dropped: %r (base=%r)", raw, base)
        return None

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` of a canonical URL."""
    parts = urlsplit(url)
    netloc = parts.netloc.rsplit("@", 1)[-1]
    return f"{parts.scheme}://{netloc}"


def hostname_of(url: str) -> str:
    return urlsplit(url).hostname or ""


def in_scope(url: str, origin: str) -> bool:
    """True iff *url* lives on *origin*."""
    try:
        return origin_of(url) == origin
    except ValueError:
        return False
