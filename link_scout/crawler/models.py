# link_scout/crawler/models.py
"""
Data models for the LinkScout crawler.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceType(str, Enum):
    """Which fetch strategy produced a finding."""

    PRIMARY = "primary"
    RENDERED = "rendered"


class ScanState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class Finding:
    """Outcome of auditing one URL."""

    link: str
    status_code: Optional[int]
    broken: bool
    time_taken_ms: int
    source_type: SourceType
    reason: Optional[str] = None

    @classmethod
    def from_status(
        cls,
        link: str,
        status_code: Optional[int],
        *,
        time_taken_ms: int,
        source_type: SourceType,
        reason: Optional[str] = None,
    ) -> Finding:
        return cls(
            link=link,
            status_code=status_code,
            broken=is_broken_status(status_code),
            time_taken_ms=max(0, int(time_taken_ms)),
            source_type=source_type,
            reason=reason or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "link": self.link,
            "statusCode": self.status_code,
            "broken": self.broken,
            "timeTakenMs": self.time_taken_ms,
            "sourceType": self.source_type.value,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass(slots=True)
class FetchOutcome:
    """What a page fetch yields: the finding plus material for extraction."""

    finding: Finding
    html: Optional[str] = None
    should_fallback: bool = False
    links: List[str] = field(default_factory=list)
    network_status: Dict[str, int] = field(default_factory=dict)


def is_broken_status(status_code: Optional[int]) -> bool:
    return not status_code or status_code >= 400


__all__ = ["SourceType", "ScanState", "Finding", "FetchOutcome", "is_broken_status"]
