"""Backing file access for stores.

The store engine talks to its file only through the :class:`FileStore`
protocol so tests and embedders can inject their own implementation.
:class:`LocalFileStore` is the filesystem-backed default.
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
from pathlib import Path
from typing import Protocol

from localstore.config import StoreConfig
from localstore.exceptions import StoreIOError

_logger = logging.getLogger(__name__)


class FileStore(Protocol):
    """Structural interface for the single file behind one store."""

    @property
    def path(self) -> Path: ...

    async def exists(self) -> bool: ...

    async def read_all(self) -> bytes | None:
        """Return the file content, or ``None`` if the file does not exist."""
        ...

    async def write_all(self, data: bytes) -> None:
        """Replace the file content, creating parent directories as needed."""
        ...


def resolve_store_path(
    name: str,
    directory: str | os.PathLike[str] | None = None,
    *,
    config: StoreConfig | None = None,
) -> Path:
    """Build the backing file path for a store name.

    The file is ``<directory>/<name><suffix>``; without an explicit
    ``directory`` the configured (or platform) default is used.
    """
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("store name must be non-empty")
    if "/" in cleaned or "\\" in cleaned or cleaned in {".", ".."}:
        raise ValueError(f"store name must not contain path separators: {name!r}")

    cfg = config or StoreConfig()
    base = Path(directory).expanduser() if directory is not None else cfg.default_directory()
    return base / f"{cleaned}{cfg.file_suffix}"


class LocalFileStore:
    """Filesystem file accessed off the event loop.

    Parameters
    ----------
    path : Path
        Backing file path.
    atomic : bool
        Write a temporary sibling and ``os.replace`` it over ``path``.
    """

    def __init__(self, path: str | os.PathLike[str], *, atomic: bool = True) -> None:
        self._path = Path(path)
        self._atomic = atomic

    def __repr__(self) -> str:
        return f"LocalFileStore({str(self._path)!r})"

    @property
    def path(self) -> Path:
        return self._path

    async def exists(self) -> bool:
        return await asyncio.to_thread(self._path.is_file)

    async def read_all(self) -> bytes | None:
        return await asyncio.to_thread(self._read)

    async def write_all(self, data: bytes) -> None:
        await asyncio.to_thread(self._write, data)

    def _read(self) -> bytes | None:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreIOError(f"Could not read {self._path}: {exc}", path=self._path) from exc

    def _write(self, data: bytes) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._atomic:
                self._path.write_bytes(data)
                return
            tmp = self._path.with_name(f".{self._path.name}.{secrets.token_hex(4)}.tmp")
            try:
                with open(tmp, "wb") as fh:
                    fh.write(data)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, self._path)
            finally:
                tmp.unlink(missing_ok=True)
        except OSError as exc:
            raise StoreIOError(f"Could not write {self._path}: {exc}", path=self._path) from exc
        _logger.debug("Wrote %d bytes to %s", len(data), self._path)
