"""
Event bus for in-process publish/subscribe.

Provides:
- Keyed registration with ordered, deduplicated callbacks
- Synchronous dispatch in registration order
- Self-cancelling watchers (fire once)
- One-shot awaitable waits with timeout
- Transform-and-forward pipes and bus-to-bus bridges
- Backpressured async streams
- Per-callback failure isolation with a dead-letter record
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable
from typing import Any

from event_chain.config import EventChainConfig, OverflowPolicy
from event_chain.events.errors import CallbackError, EventTimeoutError
from event_chain.events.registry import Registry
from event_chain.events.stream import EventStream
from event_chain.events.watcher import Callback, CallbackFactory, EventWatcher
from event_chain.logging_config import get_logger

logger = get_logger(__name__)

_DEFAULT: Any = object()


def _callback_name(callback: Callback) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


# =============================================================================
# Event Bus
# =============================================================================


class EventChain:
    """
    Keyed event bus.

    Any hashable value is a valid key. Emitting a key nobody listens to,
    removing something that is not registered, registering the same callback
    twice and cancelling a watcher twice are all silent no-ops.

    Example:
        bus = EventChain()

        bus.register("ping", print)
        bus.emit("ping", 1, 2)          # prints "1 2"

        # Fire once
        bus.on("ping", lambda watcher: lambda *args: watcher.cancel())

        # Await the next emission
        args = await bus.wait_for("pong", timeout=1.0)()
    """

    def __init__(self, config: EventChainConfig | None = None, name: str = ""):
        """
        Initialize event bus.

        Args:
            config: Bus configuration (defaults when omitted)
            name: Label used in log records
        """
        self.config = config or EventChainConfig()
        self.name = name
        self._registry = Registry()
        self._log = logger.bind(bus=name)
        self._dead_letter: list[tuple[Hashable, tuple[Any, ...], BaseException]] = []
        self._emitted = 0
        self._failures = 0

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def on(self, key: Hashable, factory: CallbackFactory) -> EventWatcher:
        """
        Register the callback built by ``factory`` under ``key``.

        ``factory`` receives the watcher before it is started, so the callback
        it returns can close over its own handle.
        """
        return EventWatcher(self, key, factory).start()

    def register(self, key: Hashable, callback: Callback) -> EventWatcher:
        """Register ``callback`` under ``key``."""
        return self.on(key, lambda watcher: callback)

    def once(self, key: Hashable, callback: Callback) -> EventWatcher:
        """Register ``callback`` for the next emission of ``key`` only."""

        def factory(watcher: EventWatcher) -> Callback:
            def fire_once(*args: Any) -> Any:
                watcher.cancel()
                return callback(*args)

            return fire_once

        return self.on(key, factory)

    def _attach(self, key: Hashable, callback: Callback) -> None:
        if self._registry.add(key, callback):
            self._log.debug(
                "event_subscribed",
                key=key,
                callback=_callback_name(callback),
            )

    def _detach(self, key: Hashable, callback: Callback) -> None:
        if self._registry.discard(key, callback):
            self._log.debug(
                "event_unsubscribed",
                key=key,
                callback=_callback_name(callback),
            )

    def unregister(
        self,
        key: Hashable | None = None,
        callback: Callback | None = None,
    ) -> EventChain:
        """
        Remove registrations.

        - key and callback: remove that pair
        - callback only: remove the callback under every key
        - key only: remove every callback under the key
        - neither: nothing
        """
        if key is not None and callback is not None:
            self._detach(key, callback)
        elif callback is not None:
            keys = self._registry.discard_everywhere(callback)
            if keys:
                self._log.debug(
                    "event_unsubscribed",
                    keys=keys,
                    callback=_callback_name(callback),
                )
        elif key is not None:
            count = self._registry.drop(key)
            if count:
                self._log.debug("event_key_dropped", key=key, callbacks=count)
        return self

    remove = unregister

    def clear(self) -> None:
        """Unregister everything."""
        self._registry.clear()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def emit(self, key: Hashable, *args: Any) -> EventChain:
        """
        Call every callback registered under ``key`` with ``args``.

        Callbacks run synchronously in registration order before this returns.
        A callback removed by an earlier one during the same emission is
        skipped; one added during it first runs on the next emission.

        Raises:
            CallbackError: A callback raised and ``isolate_errors`` is off
        """
        callbacks = self._registry.get(key)
        if callbacks is None:
            return self

        self._emitted += 1
        for callback in callbacks.walk():
            try:
                callback(*args)
            except Exception as e:
                self._failures += 1
                if not self.config.isolate_errors:
                    raise CallbackError(key, callback, e) from e
                self._log.exception(
                    "event_callback_error",
                    key=key,
                    callback=_callback_name(callback),
                )
                self._add_dead_letter(key, args, e)
        return self

    # -------------------------------------------------------------------------
    # Derived consumption modes
    # -------------------------------------------------------------------------

    def wait_for(
        self,
        key: Hashable,
        timeout: float | None = _DEFAULT,
    ) -> Callable[[], asyncio.Future[tuple[Any, ...]]]:
        """
        Build a factory of one-shot waits on ``key``.

        Each call of the returned factory (inside a running event loop)
        subscribes immediately and returns a future that resolves to the
        args of the next emission, or fails with :class:`EventTimeoutError`
        after ``timeout`` seconds. ``None`` or a negative timeout waits
        forever. The subscription and the timer are released whichever
        way the future settles, including when the caller cancels it.
        """
        if timeout is _DEFAULT:
            timeout = self.config.default_timeout

        def factory() -> asyncio.Future[tuple[Any, ...]]:
            loop = asyncio.get_running_loop()
            future: asyncio.Future[tuple[Any, ...]] = loop.create_future()
            timer: asyncio.TimerHandle | None = None

            def resolve_on_emit(watcher: EventWatcher) -> Callback:
                def resolve(*args: Any) -> None:
                    if not future.done():
                        future.set_result(args)
                    release()

                return resolve

            watcher = EventWatcher(self, key, resolve_on_emit)

            def release() -> None:
                watcher.cancel()
                if timer is not None:
                    timer.cancel()

            def expire() -> None:
                if not future.done():
                    self._log.debug("event_wait_timeout", key=key, timeout=timeout)
                    future.set_exception(EventTimeoutError(key, timeout))
                release()

            if timeout is not None and timeout >= 0:
                timer = loop.call_later(timeout, expire)
            future.add_done_callback(lambda _: release())
            watcher.start()
            return future

        return factory

    promise = wait_for

    def pipe(
        self,
        key: Hashable,
        transform: Callable[..., Any],
        forward_key: Hashable,
    ) -> EventWatcher:
        """
        Forward ``transform(*args)`` to ``forward_key`` on every emission of ``key``.

        Returns the watcher; cancel it to stop forwarding.
        """

        def factory(watcher: EventWatcher) -> Callback:
            def forward(*args: Any) -> None:
                watcher.bus.emit(forward_key, transform(*args))

            return forward

        return self.on(key, factory)

    def bridge(self, key: Hashable, target: EventChain | None = None) -> EventWatcher:
        """
        Re-emit every emission of ``key`` on ``target`` under the same key.

        A new bus with this bus's config is used when ``target`` is omitted. The
        target is reachable as ``watcher.target``.
        Bridges are one-way and not checked for cycles.
        """
        if target is None:
            target = EventChain(self.config)

        def factory(watcher: EventWatcher) -> Callback:
            def relay(*args: Any) -> None:
                target.emit(key, *args)

            return relay

        watcher = self.on(key, factory)
        watcher.target = target
        self._log.debug("event_bridge_created", key=key, target=target.name)
        return watcher

    def connect(self, key: Hashable, target: EventChain | None = None) -> EventChain:
        """Bridge ``key`` into ``target`` and return this bus for chaining."""
        self.bridge(key, target)
        return self

    def async_iterable(
        self,
        key: Hashable,
        max_buffer: int | None = _DEFAULT,
        overflow: OverflowPolicy | None = None,
    ) -> EventStream:
        """
        Open a fresh :class:`EventStream` on ``key``.

        The stream subscribes right away, so emissions made before the first
        pull are buffered. Buffer bounds default to the bus configuration.
        """
        if max_buffer is _DEFAULT:
            max_buffer = self.config.stream_max_buffer
        return EventStream(
            self,
            key,
            max_buffer=max_buffer,
            overflow=overflow or self.config.stream_overflow,
        )

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def has_listeners(self, key: Hashable) -> bool:
        return key in self._registry

    def listener_count(self, key: Hashable | None = None) -> int:
        """Callbacks under ``key``, or under every key when omitted."""
        return self._registry.count(key)

    def keys(self) -> list[Hashable]:
        return self._registry.keys()

    # -------------------------------------------------------------------------
    # Dead Letter Queue
    # -------------------------------------------------------------------------

    def _add_dead_letter(self, key: Hashable, args: tuple[Any, ...], error: BaseException):
        limit = self.config.max_dead_letters
        if limit == 0:
            return
        self._dead_letter.append((key, args, error))
        if len(self._dead_letter) > limit:
            self._dead_letter = self._dead_letter[-limit:]

    def get_dead_letters(self, limit: int = 100) -> list[tuple[Hashable, tuple[Any, ...], str]]:
        """Get failed deliveries as (key, args, error) tuples, oldest first."""
        if limit <= 0:
            return []
        return [(key, args, repr(error)) for key, args, error in self._dead_letter[-limit:]]

    def clear_dead_letters(self) -> int:
        """Forget recorded failures. Returns how many were dropped."""
        count = len(self._dead_letter)
        self._dead_letter.clear()
        return count

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get event bus statistics."""
        return {
            "keys": len(self._registry),
            "callbacks": self._registry.count(),
            "emitted": self._emitted,
            "failures": self._failures,
            "dead_letters": len(self._dead_letter),
        }

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<EventChain{label} keys={len(self._registry)}>"


EventBus = EventChain


# =============================================================================
# Global Instance
# =============================================================================

_event_chain: EventChain | None = None


def get_event_chain() -> EventChain:
    """Get or create the process-wide bus, configured from the environment."""
    global _event_chain
    if _event_chain is None:
        _event_chain = EventChain(EventChainConfig.from_env(), name="default")
    return _event_chain


def reset_event_chain() -> None:
    """Discard the process-wide bus."""
    global _event_chain
    _event_chain = None


# =============================================================================
# Convenience Functions
# =============================================================================


def subscribe(key: Hashable, callback: Callback | None = None):
    """
    Register on the process-wide bus (can be used as decorator).

    Usage:
        @subscribe("model.loaded")
        def on_loaded(name):
            ...

        # Or:
        watcher = subscribe("model.loaded", handler)
    """
    bus = get_event_chain()

    if callback is not None:
        return bus.register(key, callback)

    def decorator(fn: Callback) -> Callback:
        bus.register(key, fn)
        return fn

    return decorator


def emit(key: Hashable, *args: Any) -> EventChain:
    """Emit on the process-wide bus."""
    return get_event_chain().emit(key, *args)
