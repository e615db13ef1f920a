# File: link_scout/aggregator.py
"""link_scout.aggregator: Summary of a scan's findings."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from link_scout.crawler.models import Finding


@dataclass(slots=True)
class ScanReport:
    """Findings of one scan plus counters by reason and fetch strategy."""

    url: str
    findings: List[Finding] = field(default_factory=list)
    total: int = 0
    broken: int = 0
    by_reason: Dict[str, int] = field(default_factory=dict)
    by_source: Dict[str, int] = field(default_factory=dict)

    @property
    def broken_findings(self) -> List[Finding]:
        return [f for f in self.findings if f.broken]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "summary": {
                "total": self.total,
                "broken": self.broken,
                "byReason": self.by_reason,
                "bySource": self.by_source,
            },
            "findings": [f.to_dict() for f in self.findings],
        }

    def json(self, *, pretty: bool = False) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2 if pretty else None)


def aggregate_results(url: str, findings: Sequence[Finding]) -> ScanReport:
    """Собирает все части отчёта в ScanReport."""
    reasons = Counter(f.reason for f in findings if f.reason)
    sources = Counter(f.source_type.value for f in findings)
    return ScanReport(
        url=url,
        findings=list(findings),
        total=len(findings),
        broken=sum(1 for f in findings if f.broken),
        by_reason=dict(sorted(reasons.items())),
        by_source=dict(sorted(sources.items())),
    )


__all__ = ["ScanReport", "aggregate_results"]
