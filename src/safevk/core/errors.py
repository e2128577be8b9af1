"""Error taxonomy shared by the core and adapters.

Dispatch errors stay local to one update. Transport errors come from the
backend collaborator and drive the polling state machine.
"""

from __future__ import annotations

from typing import Optional


class SafeVkError(Exception):
    """Base class for every error raised by safevk."""


class DispatchError(SafeVkError):
    """Failure confined to a single dispatch; never aborts the polling loop."""


class ExtractionError(DispatchError):
    """The payload does not have the shape the handler asked for."""


class HandlerError(DispatchError):
    """The handler itself failed. The original exception is the ``__cause__``."""

    def __init__(self, pattern: str, message: str) -> None:
        super().__init__(f"handler for {pattern!r} failed: {message}")
        self.pattern = pattern


class TransportError(SafeVkError):
    """Error reported by the backend collaborator."""


class TransientError(TransportError):
    """Timeout or temporary failure; the same session can be retried."""


class ExpiredError(TransportError):
    """The backend rejected the polling session or its offset.

    ``offset`` carries a replacement offset when the backend supplies one.
    ``reset`` means history is lost and the fresh session's offset must be used.
    """

    def __init__(self, message: str, offset: Optional[int] = None, reset: bool = False) -> None:
        super().__init__(message)
        self.offset = offset
        self.reset = reset


class FatalError(TransportError):
    """Unrecoverable failure (bad credentials, retry ceiling reached)."""


class ApiError(SafeVkError):
    """Error object returned by a VK API method."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"VK API error {code}: {message}")
        self.code = code
        self.message = message
