"""
Callback registry.

Maps event keys to ordered, deduplicated callback collections. A key is
never left mapped to an empty collection.

Dispatch walks a :class:`CallbackSet` while callbacks may add or remove
entries, so the set is a linked list of nodes rather than a dict view:
- a removed node keeps its forward link, so a walk parked on it moves on
- a walk never visits nodes appended after it started, which covers
  callbacks that were removed and re-added mid-walk
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Hashable, Iterator
from typing import Any

Callback = Callable[..., Any]


class _Node:
    __slots__ = ("callback", "seq", "prev", "next", "removed")

    def __init__(self, callback: Callback, seq: int):
        self.callback = callback
        self.seq = seq
        self.prev: _Node | None = None
        self.next: _Node | None = None
        self.removed = False


class CallbackSet:
    """Insertion-ordered set of callbacks with deletion-stable iteration."""

    def __init__(self, lock: threading.RLock | None = None):
        self._lock = lock or threading.RLock()
        self._nodes: dict[Callback, _Node] = {}
        self._head: _Node | None = None
        self._tail: _Node | None = None
        self._seq = itertools.count()

    def add(self, callback: Callback) -> bool:
        """Append ``callback``. Returns False if it was already present."""
        with self._lock:
            if callback in self._nodes:
                return False
            node = _Node(callback, next(self._seq))
            if self._tail is None:
                self._head = node
            else:
                self._tail.next = node
                node.prev = self._tail
            self._tail = node
            self._nodes[callback] = node
            return True

    def discard(self, callback: Callback) -> bool:
        """Remove ``callback``. Returns False if it was not present."""
        with self._lock:
            node = self._nodes.pop(callback, None)
            if node is None:
                return False
            node.removed = True
            if node.prev is None:
                self._head = node.next
            else:
                node.prev.next = node.next
            if node.next is None:
                self._tail = node.prev
            else:
                node.next.prev = node.prev
            # node.next stays set so an in-flight walk can step past it
            node.prev = None
            return True

    def walk(self) -> Iterator[Callback]:
        """
        Yield live callbacks in insertion order.

        Only callbacks present when the walk starts are candidates; each is
        yielded if it is still registered when the walk reaches it.
        """
        with self._lock:
            node = self._head
            last = self._tail.seq if self._tail is not None else -1
        while node is not None:
            with self._lock:
                while node is not None and node.removed:
                    node = node.next
                if node is None or node.seq > last:
                    return
                callback = node.callback
                node = node.next
            yield callback

    def __contains__(self, callback: object) -> bool:
        return callback in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Callback]:
        return self.walk()

    def __repr__(self) -> str:
        return f"CallbackSet({list(self._nodes)!r})"


class Registry:
    """
    Mapping from event key to :class:`CallbackSet`.

    All mutation happens under one re-entrant lock; callers invoke the
    callbacks they read outside of it.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._map: dict[Hashable, CallbackSet] = {}

    def add(self, key: Hashable, callback: Callback) -> bool:
        """Register ``callback`` under ``key``, creating the entry if absent."""
        with self._lock:
            callbacks = self._map.get(key)
            if callbacks is None:
                callbacks = self._map[key] = CallbackSet(self._lock)
            return callbacks.add(callback)

    def discard(self, key: Hashable, callback: Callback) -> bool:
        """Remove one (key, callback) pair, dropping the key if it empties."""
        with self._lock:
            callbacks = self._map.get(key)
            if callbacks is None:
                return False
            removed = callbacks.discard(callback)
            if not callbacks:
                del self._map[key]
            return removed

    def discard_everywhere(self, callback: Callback) -> list[Hashable]:
        """Remove ``callback`` under every key. Returns the keys it left."""
        with self._lock:
            touched = []
            for key, callbacks in list(self._map.items()):
                if callbacks.discard(callback):
                    touched.append(key)
                if not callbacks:
                    del self._map[key]
            return touched

    def drop(self, key: Hashable) -> int:
        """
        Delete the whole entry for ``key``. Returns how many callbacks went.

        The detached collection is left intact, so an emission already
        walking it finishes with the callbacks it had.
        """
        with self._lock:
            callbacks = self._map.pop(key, None)
            return len(callbacks) if callbacks is not None else 0

    def get(self, key: Hashable) -> CallbackSet | None:
        return self._map.get(key)

    def contains(self, key: Hashable, callback: Callback) -> bool:
        callbacks = self._map.get(key)
        return callbacks is not None and callback in callbacks

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._map)

    def count(self, key: Hashable | None = None) -> int:
        """Number of callbacks under ``key``, or under every key."""
        with self._lock:
            if key is not None:
                callbacks = self._map.get(key)
                return len(callbacks) if callbacks is not None else 0
            return sum(len(callbacks) for callbacks in self._map.values())

    def clear(self) -> None:
        with self._lock:
            self._map.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._map

    def __len__(self) -> int:
        return len(self._map)
