"""JSON encoding for store files and caller-side value adaptation.

The store core only ever holds already-normalized JSON values.  Anything
else is converted at the call boundary by :func:`to_json_value`, either via
an explicit ``to_encodable`` hook, the :class:`ToJson` capability or a
pydantic model dump.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, JsonValue

from localstore.exceptions import SerializationError, StoreLoadError


@runtime_checkable
class ToJson(Protocol):
    """Capability for caller types that know their JSON representation."""

    def to_json(self) -> JsonValue: ...


def _normalize(value: Any) -> JsonValue:
    # Round trip so tuples become lists and the stored value is exactly
    # what a later load from disk would produce.
    text = json.dumps(value, ensure_ascii=False, allow_nan=False)
    normalized: JsonValue = json.loads(text)
    return normalized


def _adapt(value: Any, to_encodable: Callable[[Any], Any] | None) -> Any:
    data: Any = None
    if to_encodable is not None:
        data = to_encodable(value)
    if data is not None:
        return data
    if isinstance(value, ToJson):
        return value.to_json()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def to_json_value(
    value: Any,
    to_encodable: Callable[[Any], Any] | None = None,
    *,
    key: str | None = None,
) -> JsonValue:
    """Convert a caller value into a JSON value the store accepts.

    Raises
    ------
    SerializationError
        When the (converted) value has no JSON representation.
    """
    label = f" for key {key!r}" if key is not None else ""
    try:
        data = _adapt(value, to_encodable)
    except Exception as exc:
        raise SerializationError(
            f"Converting value{label} to JSON failed: {exc!r}",
            key=key,
        ) from exc

    try:
        return _normalize(data)
    except (TypeError, ValueError, RecursionError) as exc:
        raise SerializationError(
            f"Value{label} is not JSON serializable: {exc}",
            key=key,
        ) from exc


def encode_mapping(data: Mapping[str, JsonValue], *, indent: int | None = None) -> bytes:
    """Serialize the whole store mapping as a UTF-8 JSON object."""
    separators = (",", ":") if indent is None else (",", ": ")
    try:
        text = json.dumps(
            dict(data),
            ensure_ascii=False,
            allow_nan=False,
            indent=indent,
            separators=separators,
        )
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Store content is not JSON serializable: {exc}") from exc
    return text.encode("utf-8")


def decode_mapping(raw: bytes) -> dict[str, JsonValue]:
    """Parse backing file bytes into a mapping.

    Raises
    ------
    StoreLoadError
        When the bytes are not UTF-8 JSON or the root is not an object.
    """
    try:
        decoded = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise StoreLoadError(f"Store file is not valid UTF-8: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise StoreLoadError(f"Store file is not valid JSON: {exc.msg} (line {exc.lineno})") from exc

    if not isinstance(decoded, dict):
        raise StoreLoadError(f"Store file root must be a JSON object, got {type(decoded).__name__}")
    return decoded
