#!/usr/bin/env python3
"""Inspect and edit a localstore file from the command line.

Examples::

    python scripts/store_shell.py settings dump
    python scripts/store_shell.py --dir ./data settings set theme '"dark"'
    python scripts/store_shell.py settings get theme
    python scripts/store_shell.py settings remove theme

Values passed to ``set`` are parsed as JSON; anything that is not valid
JSON is stored as a plain string.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from localstore import StoreConfig, StoreRegistry  # noqa: E402


def _parse_value(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--dir", type=Path, default=None, help="Store directory (default: LOCALSTORE_DIR or platform dir)")
    parser.add_argument("--indent", type=int, default=None, help="Indent written JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("name", help="Store name")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("dump", help="Print the whole store")
    get_cmd = sub.add_parser("get", help="Print one value")
    get_cmd.add_argument("key")
    set_cmd = sub.add_parser("set", help="Set one value")
    set_cmd.add_argument("key")
    set_cmd.add_argument("value")
    remove_cmd = sub.add_parser("remove", help="Remove one key")
    remove_cmd.add_argument("key")
    sub.add_parser("clear", help="Remove every key")
    sub.add_parser("status", help="Print store status")
    return parser


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.dir is not None:
        overrides["directory"] = args.dir
    if args.indent is not None:
        overrides["indent"] = args.indent
    registry = StoreRegistry(StoreConfig.from_env(**overrides))
    store = registry.get(args.name)
    await store.ready

    if store.last_error is not None:
        print(f"warning: {store.last_error}", file=sys.stderr)

    if args.command == "dump":
        print(json.dumps(store.snapshot(), indent=2, ensure_ascii=False))
        return 0
    if args.command == "get":
        if args.key not in store:
            print(f"{args.key}: not found", file=sys.stderr)
            return 1
        print(json.dumps(store.get_item(args.key), indent=2, ensure_ascii=False))
        return 0
    if args.command == "status":
        print(store.status().model_dump_json(indent=2))
        return 0

    if args.command == "set":
        result = store.set_item(args.key, _parse_value(args.value))
    elif args.command == "remove":
        result = store.remove(args.key)
    else:
        result = store.clear()
    if not result.ok:
        print(f"error: {result.error}", file=sys.stderr)
        return 1

    flushed = await store.flush()
    store.dispose()
    if not flushed.ok:
        print(f"error: {flushed.error}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
