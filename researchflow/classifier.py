"""Deterministic error classification for step retry policy.

The classification is a pure function of the error's observable signal: its
type, an HTTP status code when one is attached, and its message. It never
depends on how many times a call has been attempted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from .errors import (
    ConfigurationError,
    FatalError,
    InputError,
    PollTimeoutExceeded,
    RunCancelled,
    TransientError,
)


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    CONFIGURATION = "configuration"
    INPUT = "input"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    FATAL = "fatal"


_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "429",
    "rate limit",
    "rate-limit",
    "too many requests",
    "timed out",
    "timeout",
    "temporarily unavailable",
    "service unavailable",
    "connection reset",
    "connection refused",
    "overloaded",
    "try again later",
    "resource_exhausted",
)


@dataclass(frozen=True)
class ErrorClassification:
    """Normalized classification result."""

    kind: ErrorKind
    matched_rule: str
    status_code: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    code = getattr(exc, "status_code", None)
    if code is None:
        code = getattr(exc, "status", None)
    return code if isinstance(code, int) else None


def classify_error(exc: BaseException) -> ErrorClassification:
    """Map a raised error onto an :class:`ErrorKind`."""

    if isinstance(exc, RunCancelled):
        return ErrorClassification(ErrorKind.CANCELLED, "cancelled")
    if isinstance(exc, PollTimeoutExceeded):
        return ErrorClassification(ErrorKind.TIMEOUT, "poll_timeout")
    if isinstance(exc, TransientError):
        return ErrorClassification(ErrorKind.TRANSIENT, "transient_error")
    if isinstance(exc, ConfigurationError):
        return ErrorClassification(ErrorKind.CONFIGURATION, "configuration_error")
    if isinstance(exc, InputError):
        return ErrorClassification(ErrorKind.INPUT, "input_error")
    if isinstance(exc, FatalError):
        return ErrorClassification(ErrorKind.FATAL, "fatal_error")

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ErrorClassification(ErrorKind.TRANSIENT, "request_timeout")
    if isinstance(exc, httpx.TransportError):
        return ErrorClassification(ErrorKind.TRANSIENT, "network_error")

    code = _status_code(exc)
    if code is not None:
        if code == 429 or code >= 500:
            return ErrorClassification(ErrorKind.TRANSIENT, "http_status", code)
        if code >= 400:
            return ErrorClassification(ErrorKind.FATAL, "http_status", code)

    message = str(exc).lower()
    for pattern in _TRANSIENT_PATTERNS:
        if pattern in message:
            return ErrorClassification(ErrorKind.TRANSIENT, f"message:{pattern}", code)

    return ErrorClassification(ErrorKind.FATAL, "unclassified", code)


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc).retryable
