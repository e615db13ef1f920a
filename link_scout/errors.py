# link_scout/errors.py
"""
Error taxonomy of the scanner.

Every error surfaced to a caller derives from :class:`ScanError` and carries an
explicit :class:`ErrorKind`, an HTTP-equivalent status and a machine-readable
reason. Fetch-level failures (:class:`HTTPStatusError`, :class:`FetchFailure`)
never leave the crawler: they become broken findings.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from link_scout.crawler.models import Finding


class ErrorKind(str, Enum):
    INVALID_URL = "invalid-url"
    ROBOTS_DISALLOWED = "robots-disallowed"
    BROWSER_REQUIRED = "browser-required"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class ScanError(Exception):
    """Base class for errors that abort a whole scan."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500
    reason: str = "internal-error"

    def __init__(self, message: str, partial_findings: Optional[Sequence[Finding]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.partial_findings: Optional[List[Finding]] = (
            list(partial_findings) if partial_findings is not None else None
        )

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "kind": self.kind.value, "reason": self.reason}
        if self.partial_findings is not None:
            body["partialFindings"] = [f.to_dict() for f in self.partial_findings]
        return body


class InvalidURLError(ScanError):
    kind = ErrorKind.INVALID_URL
    status_code = 400
    reason = "invalid-url"

    def __init__(self, url: str) -> None:
        super().__init__(f"Invalid or unsupported URL: {url!r}")
        self.url = url


class RobotsDisallowedError(ScanError):
    kind = ErrorKind.ROBOTS_DISALLOWED
    status_code = 403
    reason = "robots.txt"

    def __init__(self, url: str) -> None:
        super().__init__(f"Disallowed by robots.txt: {url}")
        self.url = url


class BrowserFallbackRequiredError(ScanError):
    """Primary fetch was rejected and the caller did not allow a rendered fetch."""

    kind = ErrorKind.BROWSER_REQUIRED
    status_code = 409
    reason = "browser-required"

    def __init__(self, url: str, partial_findings: Sequence[Finding]) -> None:
        super().__init__(
            "Scan requires browser automation to bypass bot protection.",
            partial_findings=partial_findings,
        )
        self.url = url


class ScanCancelledError(ScanError):
    kind = ErrorKind.CANCELLED
    status_code = 499
    reason = "cancelled"

    def __init__(self, partial_findings: Sequence[Finding]) -> None:
        super().__init__("Scan was cancelled.", partial_findings=partial_findings)


class HTTPStatusError(Exception):
    """Raised inside a fetch action when the response status is worth a retry."""

    def __init__(self, status: int, url: str, body: Optional[str] = None) -> None:
        super().__init__(f"retryable status {status} for {url}")
        self.status = status
        self.url = url
        self.body = body


class FetchFailure(Exception):
    """Last failure of a network action, with its classification preserved."""

    def __init__(
        self,
        cause: BaseException,
        *,
        reason: str,
        status: Optional[int],
        transient: bool,
        attempts: int,
    ) -> None:
        super().__init__(f"{reason} after {attempts} attempt(s): {cause}")
        self.cause = cause
        self.reason = reason
        self.status = status
        self.transient = transient
        self.attempts = attempts


__all__ = [
    "ErrorKind",
    "ScanError",
    "InvalidURLError",
    "RobotsDisallowedError",
    "BrowserFallbackRequiredError",
    "ScanCancelledError",
    "HTTPStatusError",
    "FetchFailure",
]
