"""Hash helpers for cached payloads."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

CHUNK_SIZE = 64 * 1024


def iter_stream_chunks(handle: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    for chunk in iter(lambda: handle.read(chunk_size), b""):
        yield chunk


def iter_file_chunks(path: str | Path, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with open(path, "rb") as handle:
        yield from iter_stream_chunks(handle, chunk_size)


def sha256_chunks(chunks: Iterable[bytes]) -> str:
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()


def sha256_file(path: str | Path) -> str:
    # Payloads are binary; hash the exact bytes with no newline normalization.
    return sha256_chunks(iter_file_chunks(path))


def is_sha256_hex(value: str) -> bool:
    if len(value) != 64:
        return False
    return all(ch in "0123456789abcdef" for ch in value)
