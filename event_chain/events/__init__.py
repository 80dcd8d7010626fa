"""
Event bus package.

Keyed pub/sub with watchers, one-shot waits, pipes, bridges and
backpressured async streams.
"""

from event_chain.config import OverflowPolicy
from event_chain.events.bus import (
    EventBus,
    EventChain,
    emit,
    get_event_chain,
    reset_event_chain,
    subscribe,
)
from event_chain.events.errors import (
    CallbackError,
    EventChainError,
    EventTimeoutError,
    StreamCancelledError,
)
from event_chain.events.registry import CallbackSet, Registry
from event_chain.events.stream import EventStream, StreamItem
from event_chain.events.watcher import EventWatcher

__all__ = [
    "CallbackError",
    "CallbackSet",
    "EventBus",
    "EventChain",
    "EventChainError",
    "EventStream",
    "EventTimeoutError",
    "EventWatcher",
    "OverflowPolicy",
    "Registry",
    "StreamCancelledError",
    "StreamItem",
    "emit",
    "get_event_chain",
    "reset_event_chain",
    "subscribe",
]
