"""Atomic write helpers (temp + fsync + replace).

Cache entries and config files must never be observed half-written: a crash
mid-extraction leaves only a stray temp file, never a truncated payload under
its content hash.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable


def _fsync_dir(path: Path) -> None:
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        try:
            os.fsync(fd)
        except OSError:
            return
    finally:
        os.close(fd)


def atomic_write_chunks(path: Path, chunks: Iterable[bytes], *, fsync: bool = True) -> int:
    """Atomically write an iterable of byte chunks. Returns bytes written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    prefix = f".{path.name}."
    tmp_fd = None
    tmp_path = None
    written = 0
    try:
        tmp_fd, tmp_name = tempfile.mkstemp(prefix=prefix, suffix=".tmp", dir=str(path.parent))
        tmp_path = Path(tmp_name)
        with os.fdopen(tmp_fd, "wb") as handle:
            tmp_fd = None
            for chunk in chunks:
                handle.write(chunk)
                written += len(chunk)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        os.replace(str(tmp_path), str(path))
        tmp_path = None
        if fsync:
            _fsync_dir(path.parent)
    finally:
        if tmp_fd is not None:
            os.close(tmp_fd)
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
    return written


def atomic_write_bytes(path: Path, payload: bytes, *, fsync: bool = True) -> None:
    atomic_write_chunks(path, [payload], fsync=fsync)


def atomic_write_text(path: Path, text: str, *, fsync: bool = True) -> None:
    atomic_write_chunks(path, [text.encode("utf-8")], fsync=fsync)


def atomic_write_json(path: Path, payload: Any, *, sort_keys: bool = True, indent: int | None = 2) -> None:
    text = json.dumps(payload, sort_keys=bool(sort_keys), indent=indent)
    atomic_write_text(Path(path), text, fsync=True)
