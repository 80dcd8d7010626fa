"""
event-chain: a keyed in-process event bus.

Producers emit keyed events; consumers attach, detach and chain callbacks
against those keys. On top of plain dispatch the bus offers:
- One-shot awaitable waits with optional timeout
- Transform-and-forward pipes
- Bridging between buses
- Backpressured async streams of emissions
"""

from event_chain.config import EventChainConfig
from event_chain.events import (
    CallbackError,
    EventBus,
    EventChain,
    EventChainError,
    EventStream,
    EventTimeoutError,
    EventWatcher,
    OverflowPolicy,
    StreamCancelledError,
    StreamItem,
    emit,
    get_event_chain,
    reset_event_chain,
    subscribe,
)

__version__ = "0.1.0"

__all__ = [
    "CallbackError",
    "EventBus",
    "EventChain",
    "EventChainConfig",
    "EventChainError",
    "EventStream",
    "EventTimeoutError",
    "EventWatcher",
    "OverflowPolicy",
    "StreamCancelledError",
    "StreamItem",
    "emit",
    "get_event_chain",
    "reset_event_chain",
    "subscribe",
]
