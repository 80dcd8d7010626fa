"""Exceptions raised by the event bus."""

from __future__ import annotations

from typing import Any


class EventChainError(Exception):
    """Base class for event-chain errors."""


class EventTimeoutError(EventChainError, TimeoutError):
    """Raised when a one-shot wait sees no emission in time."""

    def __init__(self, key: Any, timeout: float, message: str | None = None):
        self.key = key
        self.timeout = timeout
        self.message = message or f"No emission on {key!r} within {timeout}s"
        super().__init__(self.message)


class StreamCancelledError(EventChainError):
    """Raised into pending stream pulls when the stream is cancelled."""

    def __init__(self, reason: Any = None):
        self.reason = reason
        super().__init__(reason)


class CallbackError(EventChainError):
    """Raised from ``emit`` when a callback fails and isolation is off."""

    def __init__(self, key: Any, callback: Any, error: BaseException):
        self.key = key
        self.callback = callback
        self.error = error
        name = getattr(callback, "__qualname__", repr(callback))
        super().__init__(f"Callback {name} failed on {key!r}: {error!r}")
