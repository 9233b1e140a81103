"""localstore - Async file-backed JSON key-value stores."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pylocalstore")
except PackageNotFoundError:
    __version__ = "0+local"
from localstore._json import ToJson, to_json_value
from localstore.config import StoreConfig
from localstore.exceptions import (
    LocalStoreError,
    SerializationError,
    StoreDisposedError,
    StoreIOError,
    StoreLoadError,
)
from localstore.file_store import FileStore, LocalFileStore, resolve_store_path
from localstore.notifiers import ChangeStream, ErrorNotifier
from localstore.registry import StoreRegistry
from localstore.store import KeyValueStore, StoreResult, StoreStatus, open_store

__all__ = [
    "__version__",
    "ChangeStream",
    "ErrorNotifier",
    "FileStore",
    "KeyValueStore",
    "LocalFileStore",
    "LocalStoreError",
    "SerializationError",
    "StoreConfig",
    "StoreDisposedError",
    "StoreIOError",
    "StoreLoadError",
    "StoreRegistry",
    "StoreResult",
    "StoreStatus",
    "ToJson",
    "open_store",
    "resolve_store_path",
    "to_json_value",
]
