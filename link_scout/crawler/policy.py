# link_scout/crawler/policy.py
"""
Status classification and the escalation policy between fetch strategies.
"""
from __future__ import annotations

from typing import FrozenSet, Optional

#: reasons after which a script-executing fetch may succeed
FALLBACK_REASONS: FrozenSet[str] = frozenset(
    {"blocked", "timeout", "http-401", "http-403", "http-429"}
)
#: raw statuses with the same meaning
FALLBACK_STATUSES: FrozenSet[int] = frozenset({401, 403, 429})


def classify_status_reason(
    status_code: Optional[int],
    body: Optional[str] = None,
    *,
    check_body: bool = True,
) -> Optional[str]:
    """Map a status (and the body, for pages) to a semantic reason.

    ``None`` means healthy. Asset checks pass ``check_body=False`` since HEAD
    responses carry no body.
    """
    if not status_code:
        return "no-status"
    if status_code == 403:
        return "blocked"
    if status_code == 503:
        return "maintenance"
    if status_code >= 400:
        return f"http-{status_code}"
    if check_body and not body:
        return "empty-body"
    return None


def should_fallback(reason: Optional[str], status_code: Optional[int]) -> bool:
    """Whether a rejected or throttled plain request warrants a rendered fetch."""
    return reason in FALLBACK_REASONS or status_code in FALLBACK_STATUSES


__all__ = ["FALLBACK_REASONS", "FALLBACK_STATUSES", "classify_status_reason", "should_fallback"]
