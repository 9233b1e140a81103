"""Per-name store sharing.

A :class:`StoreRegistry` hands out exactly one :class:`KeyValueStore` per
name.  Pass the registry to the code that needs stores instead of relying
on a module-level singleton.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from localstore.config import StoreConfig
from localstore.file_store import FileStore, LocalFileStore, resolve_store_path
from localstore.store import KeyValueStore, StoreResult, open_store

_logger = logging.getLogger(__name__)

FileStoreFactory = Callable[[Path], FileStore]


class StoreRegistry:
    """Create-if-absent cache of named stores.

    Usage::

        registry = StoreRegistry(StoreConfig(directory=Path("data")))
        store = registry.get("settings", initial_data={"theme": "dark"})
        await store.ready
        store.set_item("theme", "light")

    Stores are never evicted.  Disposing a store does not remove it, so
    a later :meth:`get` for the same name returns the disposed instance.
    """

    def __init__(
        self,
        config: StoreConfig | None = None,
        *,
        file_store_factory: FileStoreFactory | None = None,
    ) -> None:
        self._config = config or StoreConfig()
        self._file_store_factory = file_store_factory or self._default_file_store
        self._stores: dict[str, KeyValueStore] = {}

    @property
    def config(self) -> StoreConfig:
        return self._config

    def _default_file_store(self, path: Path) -> FileStore:
        return LocalFileStore(path, atomic=self._config.atomic_writes)

    def get(
        self,
        name: str,
        path: str | os.PathLike[str] | None = None,
        initial_data: Mapping[str, Any] | None = None,
    ) -> KeyValueStore:
        """Return the store for ``name``, creating and loading it on first use.

        ``path`` is the directory holding the store file and
        ``initial_data`` seeds an absent or empty file.  Both only apply
        to the first call for a name; later calls return the cached
        instance unchanged.
        """
        store = self._stores.get(name)
        if store is not None:
            if path is not None and resolve_store_path(name, path, config=self._config) != store.path:
                _logger.debug(
                    "Store %r already open at %s; ignoring requested directory %s",
                    name,
                    store.path,
                    path,
                )
            return store

        file_path = resolve_store_path(name, path, config=self._config)
        store = open_store(
            name,
            self._file_store_factory(file_path),
            initial_data=initial_data,
            flush_delay=self._config.flush_delay,
            indent=self._config.indent,
        )
        self._stores[name] = store
        _logger.debug("Opened store %r at %s", name, file_path)
        return store

    def __contains__(self, name: object) -> bool:
        return name in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    def names(self) -> list[str]:
        return list(self._stores)

    async def flush_all(self) -> dict[str, StoreResult]:
        """Flush every open store, e.g. before process exit."""
        names = list(self._stores)
        results = await asyncio.gather(*(self._stores[name].flush() for name in names))
        return dict(zip(names, results, strict=True))
