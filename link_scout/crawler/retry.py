# link_scout/crawler/retry.py
"""
Retry/backoff executor with transient-failure classification.
"""
from __future__ import annotations

import asyncio
import errno
import socket
from typing import Awaitable, Callable, FrozenSet, Optional, TypeVar

from aiohttp import (
    ClientConnectorDNSError,
    ClientOSError,
    InvalidURL,
    ServerDisconnectedError,
    TooManyRedirects,
)

from link_scout.errors import FetchFailure, HTTPStatusError
from link_scout.logger import log_request

T = TypeVar("T")

TRANSIENT_STATUS_CODES: FrozenSet[int] = frozenset({408, 425, 429, 500, 502, 503, 504})
TRANSIENT_ERROR_CODES: FrozenSet[str] = frozenset(
    {"timeout", "etimedout", "econnreset", "econnaborted", "epipe", "enotfound", "eai_again"}
)

_ERRNO_CODES = {
    errno.ECONNRESET: "econnreset",
    errno.ECONNABORTED: "econnaborted",
    errno.EPIPE: "epipe",
    errno.ETIMEDOUT: "etimedout",
}
_OSERROR_CODES = (
    (ConnectionResetError, "econnreset"),
    (ConnectionAbortedError, "econnaborted"),
    (BrokenPipeError, "epipe"),
)


def error_status(exc: BaseException) -> Optional[int]:
    """HTTP status carried by *exc*, if any."""
    if isinstance(exc, (HTTPStatusError, FetchFailure)):
        return exc.status
    if isinstance(exc, TooManyRedirects):
        return None
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) and status > 0 else None


def error_code(exc: BaseException) -> Optional[str]:
    """Network-level code of *exc* (``econnreset``, ``enotfound``, ...)."""
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    if isinstance(exc, ClientConnectorDNSError):
        os_error = exc.os_error
        if isinstance(os_error, socket.gaierror) and os_error.errno == socket.EAI_AGAIN:
            return "eai_again"
        return "enotfound"
    if isinstance(exc, socket.gaierror):
        return "eai_again" if exc.errno == socket.EAI_AGAIN else "enotfound"
    if isinstance(exc, ServerDisconnectedError):
        return "econnreset"
    if isinstance(exc, TooManyRedirects):
        return "too-many-redirects"
    if isinstance(exc, InvalidURL):
        return "invalid-url"
    if isinstance(exc, (ClientOSError, OSError)):
        code = _ERRNO_CODES.get(exc.errno)  # type: ignore[arg-type]
        if code:
            return code
        for exc_type, name in _OSERROR_CODES:
            if isinstance(exc, exc_type):
                return name
        if isinstance(exc, ConnectionRefusedError) or exc.errno == errno.ECONNREFUSED:
            return "econnrefused"
    return None


def classify_error(exc: Optional[BaseException]) -> str:
    """Semantic reason for a failed network action."""
    if exc is None:
        return "unknown"
    if isinstance(exc, FetchFailure):
        return exc.reason
    status = error_status(exc)
    if status == 403:
        return "blocked"
    if status == 503:
        return "maintenance"
    if status and status >= 400:
        return f"http-{status}"
    code = error_code(exc)
    if code:
        return code
    if "timeout" in str(exc).lower():
        return "timeout"
    return "network-error"


def is_transient(exc: Optional[BaseException]) -> bool:
    if exc is None:
        return False
    if isinstance(exc, FetchFailure):
        return exc.transient
    if error_code(exc) in TRANSIENT_ERROR_CODES:
        return True
    return error_status(exc) in TRANSIENT_STATUS_CODES


async def with_retries(
    action: Callable[[], Awaitable[T]],
    *,
    method: str,
    url: str,
    max_retries: int = 2,
    base_delay: float = 0.5,
    debug: bool = False,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run *action*, retrying transient failures with exponential backoff.

    Delay before retry ``n`` (0-based) is ``base_delay * 2 ** n``. Fatal
    failures and the last transient one are raised as :class:`FetchFailure`.
    """
    attempt = 0
    while True:
        try:
            return await action()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = classify_error(exc)
            transient = is_transient(exc)
            retry = transient and attempt < max_retries
            log_request(
                method, url, debug=debug, level="error", attempt=attempt, reason=reason, retry=retry
            )
            if not retry:
                raise FetchFailure(
                    exc,
                    reason=reason,
                    status=error_status(exc),
                    transient=transient,
                    attempts=attempt + 1,
                ) from exc
            await sleep(base_delay * 2**attempt)
            attempt += 1


__all__ = [
    "TRANSIENT_STATUS_CODES",
    "TRANSIENT_ERROR_CODES",
    "classify_error",
    "error_code",
    "error_status",
    "is_transient",
    "with_retries",
]
