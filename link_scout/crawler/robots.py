# link_scout/crawler/robots.py
"""
robots.txt parsing plus the process-wide per-origin policy cache.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple
from urllib.parse import urlsplit

from link_scout.errors import FetchFailure, RobotsDisallowedError
from link_scout.logger import log_request, logger


class RobotsTxtRules:
    """
    Parses robots.txt (RFC 9309).
    An empty Disallow allows every path.
    """
    _Directive = Tuple[str, str]
    _WILDCARD_RE = re.compile(r"(\*|\$)")

    def __init__(self, text: str) -> None:
        self._groups: List[Dict[str, object]] = []
        self._regex_cache: Dict[str, re.Pattern[str]] = {}
        self._parse(text)

    def can_fetch(self, user_agent: str, path: str) -> bool:
        group = self._match_group(user_agent)
        if group is None:
            return True
        best_len = -1
        allow: Optional[bool] = None
        for directive, pattern in group["directives"]:  # type: ignore[attr-defined]
            if not self._match_path(path, pattern):
                continue
            length = self._rule_len(pattern)
            if length > best_len or (length == best_len and directive == "allow" and allow is False):
                best_len = length
                allow = directive == "allow"
        return True if allow is None else allow

    def crawl_delay(self, user_agent: str) -> Optional[float]:
        group = self._match_group(user_agent)
        return None if group is None else group.get("crawl_delay")  # type: ignore[return-value]

    def _parse(self, text: str) -> None:
        current: Optional[Dict[str, object]] = None
        for raw in text.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            key, _, val = line.partition(":")
            key = key.lower().strip()
            val = val.strip()
            if key == "user-agent":
                if current is None or (current["agents"] and (current["directives"] or current["crawl_delay"] is not None)):
                    current = {"agents": [], "directives": [], "crawl_delay": None}
                    self._groups.append(current)
                current["agents"].append(_product_token(val))  # type: ignore[attr-defined]
            elif key in ("allow", "disallow"):
                # empty Disallow allows everything
                if key == "disallow" and val == "":
                    continue
                if current is None:
                    current = {"agents": ["*"], "directives": [], "crawl_delay": None}
                    self._groups.append(current)
                current["directives"].append((key, val))  # type: ignore[attr-defined]
            elif key == "crawl-delay":
                if current is None:
                    current = {"agents": ["*"], "directives": [], "crawl_delay": None}
                    self._groups.append(current)
                try:
                    current["crawl_delay"] = float(val)
                except ValueError:
                    pass

    def _match_group(self, user_agent: str) -> Optional[Dict[str, object]]:
        """All groups naming our product token, merged; the * groups otherwise."""
        token = _product_token(user_agent)
        groups = [g for g in self._groups if token in g["agents"]]  # type: ignore[operator]
        if not groups:
            groups = [g for g in self._groups if "*" in g["agents"]]  # type: ignore[operator]
        if not groups:
            return None
        delays = [g["crawl_delay"] for g in groups if g["crawl_delay"] is not None]
        return {
            "agents": [token],
            "directives": [d for g in groups for d in g["directives"]],  # type: ignore[attr-defined]
            "crawl_delay": delays[0] if delays else None,
        }

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))

    @classmethod
    def _rule_len(cls, pattern: str) -> int:
        return len(cls._WILDCARD_RE.sub("", pattern))


def _product_token(user_agent: str) -> str:
    # "LinkScoutBot/0.1 (+https://...)" -> "linkscoutbot"
    token = user_agent.split("/", 1)[0].strip()
    return token.split(None, 1)[0].lower() if token else ""


@dataclass(frozen=True, slots=True)
class RobotsPolicy:
    """Cached policy of one origin. ``rules is None`` means unrestricted."""

    origin: str
    rules: Optional[RobotsTxtRules]
    fetched_at: float

    @property
    def unrestricted(self) -> bool:
        return self.rules is None

    def allows(self, url: str, user_agent: str) -> bool:
        if self.rules is None:
            return True
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        return self.rules.can_fetch(user_agent, path)


@dataclass(slots=True)
class RobotsResponse:
    status: int
    text: Optional[str]
    content_type: str = ""


class RobotsSource(Protocol):
    """Anything able to GET robots.txt through the rate limiter and retries."""

    async def fetch_robots(self, url: str) -> RobotsResponse: ...


def _is_textual(content_type: str) -> bool:
    mime = content_type.split(";", 1)[0].strip().lower()
    return not mime or mime.startswith("text/")


class RobotsPolicyCache:
    """Per-origin robots.txt policies, shared across scans.

    A failed, non-2xx or non-textual robots.txt is cached as an unrestricted
    policy so it is neither refetched nor allowed to block the crawl.
    """

    def __init__(
        self,
        user_agent: str,
        *,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ) -> None:
        self.user_agent = user_agent
        self.ttl = ttl
        self._clock = clock
        self._debug = debug
        self._policies: Dict[str, RobotsPolicy] = {}

    def __len__(self) -> int:
        return len(self._policies)

    def cached(self, origin: str) -> Optional[RobotsPolicy]:
        policy = self._policies.get(origin)
        if policy is None:
            return None
        if self.ttl is not None and self._clock() - policy.fetched_at >= self.ttl:
            del self._policies[origin]
            return None
        return policy

    def evict_expired(self) -> int:
        if self.ttl is None:
            return 0
        now = self._clock()
        stale = [o for o, p in self._policies.items() if now - p.fetched_at >= self.ttl]
        for origin in stale:
            del self._policies[origin]
        return len(stale)

    async def get_policy(self, origin: str, source: RobotsSource) -> RobotsPolicy:
        policy = self.cached(origin)
        if policy is not None:
            return policy

        robots_url = f"{origin}/robots.txt"
        rules: Optional[RobotsTxtRules] = None
        try:
            response = await source.fetch_robots(robots_url)
        except FetchFailure as exc:
            log_request("GET", robots_url, debug=self._debug, level="error", reason=exc.reason)
        else:
            if 200 <= response.status < 300 and response.text is not None and _is_textual(response.content_type):
                rules = RobotsTxtRules(response.text)
                delay = rules.crawl_delay(self.user_agent)
                if delay is not None:
                    logger.debug("robots.txt of %s asks for Crawl-delay %.1f s", origin, delay)
            else:
                logger.debug("robots.txt %s -> HTTP %s, treating as unrestricted", robots_url, response.status)

        policy = RobotsPolicy(origin=origin, rules=rules, fetched_at=self._clock())
        self._policies[origin] = policy
        return policy

    def ensure_allowed(self, url: str, policy: RobotsPolicy) -> None:
        if not policy.allows(url, self.user_agent):
            log_request("GET", url, debug=self._debug, status=403, reason="robots.txt")
            raise RobotsDisallowedError(url)

    async def check(self, url: str, origin: str, source: RobotsSource) -> None:
        policy = await self.get_policy(origin, source)
        self.ensure_allowed(url, policy)


__all__ = [
    "RobotsTxtRules",
    "RobotsPolicy",
    "RobotsResponse",
    "RobotsSource",
    "RobotsPolicyCache",
]
