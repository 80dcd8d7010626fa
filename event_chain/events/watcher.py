"""
Subscription handle.

An :class:`EventWatcher` owns one (key, callback) pair on one bus. The
callback is produced by a factory that receives the watcher itself, so a
callback can cancel or re-emit through its own handle:

    bus.on("eat", lambda watcher: lambda *args: watcher.cancel())

The resulting watcher <-> callback reference cycle is broken by
:meth:`EventWatcher.cancel`, not by the watcher going out of scope.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from event_chain.events.bus import EventChain

Callback = Callable[..., Any]
CallbackFactory = Callable[["EventWatcher"], Callback]


class EventWatcher:
    """One registration of a callback under a key."""

    def __init__(self, bus: EventChain, key: Hashable, factory: CallbackFactory):
        self.bus = bus
        self.key = key
        # Set by EventChain.bridge to the bus it relays into
        self.target: EventChain | None = None
        self.callback: Callback = factory(self)

    def start(self) -> EventWatcher:
        """Insert the pair into the bus registry."""
        self.bus._attach(self.key, self.callback)
        return self

    def cancel(self) -> EventWatcher:
        """Remove the pair from the bus registry. Safe to call repeatedly."""
        self.bus._detach(self.key, self.callback)
        return self

    def re_emit(self, *args: Any) -> EventWatcher:
        """Emit ``args`` on the same bus under this watcher's key."""
        self.bus.emit(self.key, *args)
        return self

    @property
    def active(self) -> bool:
        return self.bus._registry.contains(self.key, self.callback)

    def __enter__(self) -> EventWatcher:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "active" if self.active else "idle"
        return f"<EventWatcher key={self.key!r} {state}>"
