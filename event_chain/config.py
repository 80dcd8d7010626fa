"""Bus configuration.

Defaults suit in-process use; every field can be overridden from the
environment through :meth:`EventChainConfig.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

_TRUE = ("1", "true", "True")


class OverflowPolicy(Enum):
    """Which emission a full stream buffer discards."""

    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


@dataclass
class EventChainConfig:
    """
    Configuration for an :class:`~event_chain.events.bus.EventChain`.

    Args:
        isolate_errors: Keep dispatching when a callback raises
        max_dead_letters: How many failed deliveries to remember
        default_timeout: Seconds ``wait_for`` waits when no timeout is given
            (None waits forever)
        stream_max_buffer: Buffered emissions per stream (None = unbounded)
        stream_overflow: What a full stream buffer discards
    """

    isolate_errors: bool = True
    max_dead_letters: int = 100
    default_timeout: float | None = None
    stream_max_buffer: int | None = None
    stream_overflow: OverflowPolicy = OverflowPolicy.DROP_OLDEST

    def __post_init__(self):
        if self.max_dead_letters < 0:
            raise ValueError("max_dead_letters must be >= 0")
        if self.stream_max_buffer is not None and self.stream_max_buffer < 1:
            raise ValueError("stream_max_buffer must be >= 1")
        self.stream_overflow = OverflowPolicy(self.stream_overflow)

    @classmethod
    def from_env(cls) -> EventChainConfig:
        """Load configuration from ``EVENT_CHAIN_*`` environment variables."""
        defaults = cls()

        isolate = os.environ.get("EVENT_CHAIN_ISOLATE_ERRORS")
        timeout = os.environ.get("EVENT_CHAIN_DEFAULT_TIMEOUT")
        max_buffer = os.environ.get("EVENT_CHAIN_STREAM_MAX_BUFFER")

        return cls(
            isolate_errors=defaults.isolate_errors if isolate is None else isolate in _TRUE,
            max_dead_letters=int(
                os.environ.get("EVENT_CHAIN_MAX_DEAD_LETTERS", defaults.max_dead_letters)
            ),
            default_timeout=float(timeout) if timeout else None,
            stream_max_buffer=int(max_buffer) if max_buffer else None,
            stream_overflow=OverflowPolicy(
                os.environ.get("EVENT_CHAIN_STREAM_OVERFLOW", defaults.stream_overflow.value)
            ),
        )
