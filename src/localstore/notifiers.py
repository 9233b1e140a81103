"""Change stream and error slot attached to each store.

Both are scoped to a single store instance.  The change stream is hot:
subscribers only see mappings published after they subscribed.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import weakref
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

from localstore.exceptions import LocalStoreError, StoreDisposedError

_logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]
ErrorListener = Callable[[LocalStoreError], None]

_CLOSED = object()


class _Subscription:
    """Async iterator over one subscriber's queue.

    The owning stream only holds it weakly, so dropping an unused
    iterator ends the subscription.
    """

    def __init__(self, stream: ChangeStream) -> None:
        self._stream = stream
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._done = False

    def __aiter__(self) -> _Subscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finish()
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        self._finish()

    def put(self, item: Any) -> None:
        if not self._done:
            self._queue.put_nowait(item)

    def _finish(self) -> None:
        self._done = True
        self._stream._subscriptions.discard(self)  # noqa: SLF001


class ChangeStream:
    """Broadcast of the full store mapping after every change."""

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._listeners: list[Listener] = []
        self._subscriptions: weakref.WeakSet[_Subscription] = weakref.WeakSet()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._subscriptions)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        if self._closed:
            raise StoreDisposedError(f"Change stream of store {self._name!r} is closed")
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def listen(self) -> AsyncIterator[dict[str, Any]]:
        """Iterate over published mappings until the stream is closed.

        The subscription starts when ``listen()`` is called, not when the
        iterator is first awaited, and ends when the iterator is
        exhausted, closed or garbage collected.
        """
        if self._closed:
            raise StoreDisposedError(f"Change stream of store {self._name!r} is closed")
        subscription = _Subscription(self)
        self._subscriptions.add(subscription)
        return subscription

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self.listen()

    def publish(self, mapping: Mapping[str, Any]) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            try:
                listener(copy.deepcopy(dict(mapping)))
            except Exception:
                _logger.exception("Change listener failed for store %r", self._name)
        for subscription in list(self._subscriptions):
            subscription.put(copy.deepcopy(dict(mapping)))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        for subscription in list(self._subscriptions):
            subscription.put(_CLOSED)


class ErrorNotifier:
    """Single-slot holder for the most recent store error.

    Setting a new error replaces the previous one and notifies every
    watcher.  Success never clears the slot.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._value: LocalStoreError | None = None
        self._watchers: list[ErrorListener] = []

    @property
    def value(self) -> LocalStoreError | None:
        return self._value

    def set(self, error: LocalStoreError) -> None:
        self._value = error
        for watcher in list(self._watchers):
            try:
                watcher(error)
            except Exception:
                _logger.exception("Error watcher failed for store %r", self._name)

    def watch(self, listener: ErrorListener) -> Callable[[], None]:
        """Register a watcher; returns a function that removes it."""
        self._watchers.append(listener)

        def unwatch() -> None:
            if listener in self._watchers:
                self._watchers.remove(listener)

        return unwatch
