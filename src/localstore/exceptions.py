"""Custom exception hierarchy for localstore."""

from __future__ import annotations

from pathlib import Path


class LocalStoreError(Exception):
    """Base exception for all localstore errors."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class StoreLoadError(LocalStoreError):
    """Backing file content is not valid JSON or its root is not an object."""


class StoreIOError(LocalStoreError):
    """Reading, writing or creating the backing file failed.

    Covers permission problems, missing directories that cannot be
    created and full disks.  The underlying ``OSError`` is chained as
    ``__cause__``.
    """


class SerializationError(LocalStoreError):
    """A value cannot be represented as JSON."""

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        path: Path | None = None,
    ) -> None:
        self.key = key
        super().__init__(message, path=path)


class StoreDisposedError(LocalStoreError):
    """Operation attempted on a store (or stream) that has been disposed."""
