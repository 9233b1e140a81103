from __future__ import annotations

from pathlib import Path

import pytest

from localstore.config import StoreConfig
from localstore.exceptions import StoreIOError
from localstore.file_store import LocalFileStore, resolve_store_path


@pytest.mark.asyncio
async def test_missing_file_reads_as_none(tmp_path: Path) -> None:
    file_store = LocalFileStore(tmp_path / "missing.json")

    assert await file_store.exists() is False
    assert await file_store.read_all() is None


@pytest.mark.asyncio
async def test_write_creates_parent_directories(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "store.json"
    file_store = LocalFileStore(path)

    await file_store.write_all(b'{"a":1}')

    assert await file_store.exists() is True
    assert await file_store.read_all() == b'{"a":1}'


@pytest.mark.asyncio
async def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    file_store = LocalFileStore(path, atomic=True)

    await file_store.write_all(b"{}")
    await file_store.write_all(b'{"b":2}')

    assert [p.name for p in tmp_path.iterdir()] == ["store.json"]
    assert path.read_bytes() == b'{"b":2}'


@pytest.mark.asyncio
async def test_non_atomic_write(tmp_path: Path) -> None:
    path = tmp_path / "plain.json"

    await LocalFileStore(path, atomic=False).write_all(b"{}")

    assert path.read_bytes() == b"{}"


@pytest.mark.asyncio
async def test_write_failure_raises_store_io_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    file_store = LocalFileStore(blocker / "store.json")

    with pytest.raises(StoreIOError) as exc_info:
        await file_store.write_all(b"{}")

    assert exc_info.value.path == blocker / "store.json"
    assert isinstance(exc_info.value.__cause__, OSError)


def test_resolve_store_path_uses_explicit_directory(tmp_path: Path) -> None:
    assert resolve_store_path("settings", tmp_path) == tmp_path / "settings.json"


def test_resolve_store_path_uses_config_defaults(tmp_path: Path) -> None:
    config = StoreConfig(directory=tmp_path, file_suffix=".store")

    assert resolve_store_path(" cache ", config=config) == tmp_path / "cache.store"


def test_resolve_store_path_falls_back_to_platform_directory(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    calls: list[str] = []

    def fake_user_data_dir(app_name: str, appauthor: object = None) -> str:
        calls.append(app_name)
        return str(tmp_path / "platform")

    monkeypatch.setattr("localstore.config.platformdirs.user_data_dir", fake_user_data_dir)

    path = resolve_store_path("prefs", config=StoreConfig(app_name="myapp"))

    assert path == tmp_path / "platform" / "prefs.json"
    assert calls == ["myapp"]


@pytest.mark.parametrize("name", ["", "   ", "a/b", "a\\b", ".."])
def test_resolve_store_path_rejects_bad_names(name: str, tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        resolve_store_path(name, tmp_path)
