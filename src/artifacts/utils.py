"""Serialization and file-writing helpers for spanguard artifacts."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import orjson


def _to_dict(obj: object) -> object:
    """Convert object to a JSON-ready structure."""
    from dataclasses import asdict, is_dataclass

    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (list, tuple)):
        return [_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _to_dict(value) for key, value in obj.items()}
    return obj


def dumps_json(obj: object, *, indent: bool = True) -> bytes:
    opts = orjson.OPT_SORT_KEYS
    if indent:
        opts |= orjson.OPT_INDENT_2
    return orjson.dumps(_to_dict(obj), option=opts)


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` via a temporary file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        if path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o7777)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _write_json(path: Path, obj: object) -> None:
    write_bytes_atomic(path, dumps_json(obj) + b"\n")


def _load_json(path: Path) -> dict[str, Any]:
    payload = orjson.loads(path.read_bytes())
    if not isinstance(payload, dict):
        msg = f"{path} does not contain a JSON object"
        raise ValueError(msg)
    return payload


__all__ = ["dumps_json", "write_bytes_atomic"]
