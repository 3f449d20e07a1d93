"""PZ monitor error taxonomy and helpers."""

from __future__ import annotations

import re

_CODE_PATTERN = re.compile(r"[A-Z][A-Z0-9_]*")


class HandleMonitorError(RuntimeError):
    """Stable error surfaced as a reason code."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = f"{code}:{detail}" if detail else code
        super().__init__(message)


class InfrastructureError(HandleMonitorError):
    """Network, HTTP or upstream data failure."""


class DatumDecodeError(InfrastructureError):
    """Raised when an inline datum is malformed or has the wrong shape."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__("DATUM_DECODE_FAILED", detail)


class NotFoundError(HandleMonitorError):
    """Raised when a required upstream record does not exist."""


class ConfigError(ValueError):
    """Raised when the monitor profile is invalid."""


def reason_code(exc: BaseException) -> str:
    """Stable code for an outcome detail.

    Monitor errors carry their own code. Anything else counts only when its
    message leads with an upper-case token such as ``RATE_LIMITED: ...``.
    """
    if isinstance(exc, HandleMonitorError):
        return exc.code
    head = str(exc).partition(":")[0].strip()
    return head if _CODE_PATTERN.fullmatch(head) else "INTERNAL_ERROR"


def error_detail(exc: BaseException) -> str:
    if isinstance(exc, HandleMonitorError):
        return (exc.detail or exc.code)[:256]
    return str(exc)[:256] or type(exc).__name__
