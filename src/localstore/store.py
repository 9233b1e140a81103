"""File-backed key-value store with debounced flushing.

The in-memory mapping is the single source of truth for reads.  The
backing file mirrors it and is rewritten in full by :meth:`KeyValueStore.flush`,
which mutations trigger through a coalescing timer.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, JsonValue

from localstore._json import decode_mapping, encode_mapping, to_json_value
from localstore.config import DEFAULT_FLUSH_DELAY
from localstore.exceptions import (
    LocalStoreError,
    SerializationError,
    StoreDisposedError,
    StoreIOError,
    StoreLoadError,
)
from localstore.file_store import FileStore
from localstore.notifiers import ChangeStream, ErrorNotifier

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a store operation.

    Failures are reported here instead of being raised so a bad disk
    never unwinds the caller; use :meth:`raise_for_error` to opt into
    exceptions.
    """

    error: LocalStoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class StoreStatus(BaseModel):
    """Point-in-time view of a store's lifecycle state."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    path: str
    initialized: bool
    pending_flush: bool
    disposed: bool
    entries: int
    last_error: str | None = None


class KeyValueStore:
    """One named, file-backed mapping of string keys to JSON values.

    Parameters
    ----------
    name : str
        Store name (identity, also used in log messages).
    file_store : FileStore
        Access to the backing file.
    flush_delay : float
        Debounce window in seconds between a mutation and its disk write.
    indent : int or None
        JSON indentation of the backing file.

    Create instances with :func:`open_store` (or a
    :class:`~localstore.registry.StoreRegistry`) so that :attr:`ready`
    is set.  Reads and writes before ``ready`` completes operate on
    whatever is in memory and are replaced once the file has loaded.
    """

    def __init__(
        self,
        name: str,
        file_store: FileStore,
        *,
        flush_delay: float = DEFAULT_FLUSH_DELAY,
        indent: int | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._name = name
        self._file_store = file_store
        self._flush_delay = flush_delay
        self._indent = indent
        self._loop = loop
        self._data: dict[str, JsonValue] = {}
        self._initialized = False
        self._pending_flush = False
        self._disposed = False
        # Bumped on every mutation; a flush only clears pending_flush if
        # nothing changed while its write was in flight.
        self._generation = 0
        self._flush_lock = asyncio.Lock()
        self._flush_handle: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task[StoreResult]] = set()
        self.stream = ChangeStream(name)
        self.errors = ErrorNotifier(name)
        self.ready: asyncio.Task[bool] | None = None

    def __repr__(self) -> str:
        return f"KeyValueStore(name={self._name!r}, path={str(self.path)!r})"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> Path:
        return self._file_store.path

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def pending_flush(self) -> bool:
        return self._pending_flush

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def last_error(self) -> LocalStoreError | None:
        return self.errors.value

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def snapshot(self) -> dict[str, JsonValue]:
        """Deep copy of the current mapping."""
        return copy.deepcopy(self._data)

    def status(self) -> StoreStatus:
        error = self.last_error
        return StoreStatus(
            name=self._name,
            path=str(self.path),
            initialized=self._initialized,
            pending_flush=self._pending_flush,
            disposed=self._disposed,
            entries=len(self._data),
            last_error=f"{type(error).__name__}: {error}" if error is not None else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self, initial_data: Mapping[str, Any] | None = None) -> bool:
        """Load the backing file, seeding it with ``initial_data`` if absent or empty.

        Returns ``True`` on success.  On failure the error slot is set and
        ``False`` is returned; the store is still marked initialized and
        stays usable in memory.
        """
        try:
            async with self._flush_lock:
                await self._load(initial_data or {})
        except LocalStoreError as exc:
            _logger.warning("Initializing store %r from %s failed: %s", self._name, self.path, exc)
            self._report(exc)
            return False
        finally:
            self._initialized = True

        self.stream.publish(self._data)
        return True

    async def _load(self, initial_data: Mapping[str, Any]) -> None:
        try:
            raw = await self._file_store.read_all()
        except LocalStoreError as exc:
            self._replace_data({})
            if exc.path is None:
                exc.path = self.path
            raise
        except OSError as exc:
            self._replace_data({})
            raise StoreIOError(f"Could not read {self.path}: {exc}", path=self.path) from exc

        if raw is not None and raw.strip():
            try:
                loaded = decode_mapping(raw)
            except StoreLoadError as exc:
                # Leave the unreadable file alone until the next mutation.
                self._replace_data({})
                exc.path = self.path
                raise
            self._replace_data(loaded)
            _logger.debug("Loaded store %r from %s (%d keys)", self._name, self.path, len(self._data))
            return

        try:
            seed = to_json_value(dict(initial_data))
        except SerializationError:
            self._replace_data({})
            raise
        self._replace_data(seed if isinstance(seed, dict) else {})
        self._pending_flush = True
        _logger.debug("Seeding store %r at %s with %d keys", self._name, self.path, len(self._data))
        await self._write_locked()

    def _replace_data(self, data: dict[str, JsonValue]) -> None:
        # Mutations made before the load are discarded together with any
        # flush they armed.
        self._data = data
        self._generation += 1
        self._pending_flush = False
        self._cancel_timer()

    def dispose(self) -> None:
        """Close the change stream and cancel a pending debounced flush.

        No final flush is performed; call :meth:`flush` first when the
        pending changes must reach disk.
        """
        if self._disposed:
            return
        self._disposed = True
        self._cancel_timer()
        self.stream.close()
        _logger.debug("Disposed store %r (pending_flush=%s)", self._name, self._pending_flush)

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def get_item(self, key: str, default: JsonValue = None) -> JsonValue:
        """Return the value stored under ``key``, or ``default`` when absent."""
        if not isinstance(key, str):
            self._report(LocalStoreError(f"Store keys must be strings, got {type(key).__name__}", path=self.path))
            return default
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set_item(
        self,
        key: str,
        value: Any,
        to_encodable: Callable[[Any], Any] | None = None,
    ) -> StoreResult:
        """Insert or replace ``key``.

        ``value`` is converted to JSON first (see
        :func:`~localstore._json.to_json_value`); if that fails the error
        slot is set and the store is left untouched.
        """
        if self._disposed:
            return self._disposed_result("set_item")
        if not isinstance(key, str):
            error = SerializationError(
                f"Store keys must be strings, got {type(key).__name__}",
                path=self.path,
            )
            self._report(error)
            return StoreResult(error)
        try:
            data = to_json_value(value, to_encodable, key=key)
        except SerializationError as exc:
            exc.path = self.path
            self._report(exc)
            return StoreResult(exc)

        self._data[key] = data
        self._changed()
        return StoreResult()

    def remove(self, key: str) -> StoreResult:
        """Delete ``key``; removing an absent key is not an error."""
        if self._disposed:
            return self._disposed_result("remove")
        if not isinstance(key, str):
            error = LocalStoreError(f"Store keys must be strings, got {type(key).__name__}", path=self.path)
            self._report(error)
            return StoreResult(error)
        self._data.pop(key, None)
        self._changed()
        return StoreResult()

    delete_item = remove

    def clear(self) -> StoreResult:
        """Remove every entry."""
        if self._disposed:
            return self._disposed_result("clear")
        self._data.clear()
        self._changed()
        return StoreResult()

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self) -> StoreResult:
        """Write the full current mapping to the backing file now.

        Always writes, even without pending changes, so it can be used as
        a synchronization point before shutdown.  On failure the error
        slot is set and ``pending_flush`` stays ``True``.
        """
        self._cancel_timer()
        return await self._flush(only_if_pending=False)

    async def _flush(self, *, only_if_pending: bool) -> StoreResult:
        async with self._flush_lock:
            # A debounced flush may have waited for a load that dropped
            # the changes it was armed for.
            if only_if_pending and not self._pending_flush:
                return StoreResult()
            try:
                await self._write_locked()
            except LocalStoreError as exc:
                _logger.warning("Flushing store %r to %s failed: %s", self._name, self.path, exc)
                self._report(exc)
                return StoreResult(exc)
        return StoreResult()

    async def _write_locked(self) -> None:
        generation = self._generation
        payload = encode_mapping(self._data, indent=self._indent)
        try:
            await self._file_store.write_all(payload)
        except LocalStoreError as exc:
            if exc.path is None:
                exc.path = self.path
            raise
        except OSError as exc:
            raise StoreIOError(f"Could not write {self.path}: {exc}", path=self.path) from exc
        if generation == self._generation:
            self._pending_flush = False
        _logger.debug("Flushed store %r (%d keys, %d bytes)", self._name, len(self._data), len(payload))

    def _changed(self) -> None:
        self._generation += 1
        self._pending_flush = True
        self.stream.publish(self._data)
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        self._cancel_timer()
        loop = self._loop or asyncio.get_running_loop()
        self._flush_handle = loop.call_later(self._flush_delay, self._on_flush_timer)

    def _cancel_timer(self) -> None:
        handle = self._flush_handle
        self._flush_handle = None
        if handle is not None:
            handle.cancel()

    def _on_flush_timer(self) -> None:
        self._flush_handle = None
        if self._disposed or not self._pending_flush:
            return
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._flush(only_if_pending=True), name=f"localstore-flush-{self._name}")
        self._background.add(task)
        task.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, task: asyncio.Task[StoreResult]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        # Failures the file store did not map to StoreIOError/OSError.
        _logger.error("Debounced flush of store %r failed", self._name, exc_info=exc)
        error = StoreIOError(f"Unexpected error writing {self.path}: {exc!r}", path=self.path)
        error.__cause__ = exc
        self._report(error)

    # ------------------------------------------------------------------
    # Error reporting
    # ------------------------------------------------------------------

    def _report(self, error: LocalStoreError) -> None:
        self.errors.set(error)

    def _disposed_result(self, operation: str) -> StoreResult:
        _logger.debug("Ignoring %s on disposed store %r", operation, self._name)
        return StoreResult(StoreDisposedError(f"Store {self._name!r} is disposed", path=self.path))


def open_store(
    name: str,
    file_store: FileStore,
    *,
    initial_data: Mapping[str, Any] | None = None,
    flush_delay: float = DEFAULT_FLUSH_DELAY,
    indent: int | None = None,
) -> KeyValueStore:
    """Create a store and start loading it in the background.

    The returned store's :attr:`~KeyValueStore.ready` task resolves to the
    result of :meth:`~KeyValueStore.init`; await it before first use.
    Must be called from a running event loop.
    """
    loop = asyncio.get_running_loop()
    store = KeyValueStore(name, file_store, flush_delay=flush_delay, indent=indent, loop=loop)
    store.ready = loop.create_task(store.init(initial_data), name=f"localstore-init-{name}")
    return store
