"""Store configuration for localstore."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

import platformdirs

#: Default debounce window between a mutation and the disk write it triggers.
DEFAULT_FLUSH_DELAY: float = 0.05


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_optional_int(value: str) -> int | None:
    normalized = value.strip().lower()
    if normalized in {"", "none", "null"}:
        return None
    return int(normalized)


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Configuration shared by every store a registry opens.

    Parameters
    ----------
    directory : Path or None
        Directory holding the store files.  ``None`` resolves to the
        platform user data directory for ``app_name``.
    app_name : str
        Application name used for the platform data directory.
    flush_delay : float
        Debounce window in seconds.  Mutations inside one window are
        written to disk with a single flush.
    indent : int or None
        JSON indentation of the backing file.  ``None`` writes compact JSON.
    atomic_writes : bool
        Write through a temporary sibling file and rename it over the
        target, so a crash mid-write never leaves a truncated file.
    file_suffix : str
        Extension appended to the store name to build the file name.
    """

    directory: Path | None = None
    app_name: str = "localstore"
    flush_delay: float = DEFAULT_FLUSH_DELAY
    indent: int | None = None
    atomic_writes: bool = True
    file_suffix: str = ".json"

    def __post_init__(self) -> None:
        if self.directory is not None and not isinstance(self.directory, Path):
            object.__setattr__(self, "directory", Path(self.directory))
        if self.flush_delay < 0:
            raise ValueError("flush_delay must be >= 0")
        if self.indent is not None and self.indent < 0:
            raise ValueError("indent must be >= 0 or None")
        if not self.file_suffix.startswith("."):
            raise ValueError("file_suffix must start with '.'")
        if not self.app_name.strip():
            raise ValueError("app_name must be non-empty")

    def default_directory(self) -> Path:
        """Directory used when a store is opened without an explicit path."""
        if self.directory is not None:
            return self.directory
        return Path(platformdirs.user_data_dir(self.app_name, appauthor=False))

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from environment variables.

        Reads ``LOCALSTORE_DIR``, ``LOCALSTORE_APP_NAME``,
        ``LOCALSTORE_FLUSH_DELAY``, ``LOCALSTORE_INDENT``,
        ``LOCALSTORE_ATOMIC_WRITES`` and ``LOCALSTORE_FILE_SUFFIX``.
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        dir_env = env.get("LOCALSTORE_DIR")
        if dir_env:
            config_kwargs["directory"] = Path(dir_env).expanduser()

        app_env = env.get("LOCALSTORE_APP_NAME")
        if app_env is not None:
            config_kwargs["app_name"] = app_env

        delay_env = env.get("LOCALSTORE_FLUSH_DELAY")
        if delay_env is not None and "flush_delay" not in overrides:
            config_kwargs["flush_delay"] = float(delay_env)

        indent_env = env.get("LOCALSTORE_INDENT")
        if indent_env is not None and "indent" not in overrides:
            config_kwargs["indent"] = _env_optional_int(indent_env)

        if "atomic_writes" not in overrides:
            config_kwargs["atomic_writes"] = _env_bool(env.get("LOCALSTORE_ATOMIC_WRITES"), True)

        suffix_env = env.get("LOCALSTORE_FILE_SUFFIX")
        if suffix_env is not None:
            config_kwargs["file_suffix"] = suffix_env

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
