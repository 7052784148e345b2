"""Content-addressed payload cache.

Layout: a flat directory holding one file per payload, named by the lowercase
hex SHA-256 of its content (no extension). A file is only trusted after its
bytes re-hash to its name; anything else is removed and rewritten.

Payloads are read from a reopenable source in bounded chunks: one pass to
hash, and a second pass to write only when the entry is missing or corrupt.
"""

from __future__ import annotations

import hashlib
import io
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterator

from modhost.kernel.atomic_write import atomic_write_chunks
from modhost.kernel.errors import CacheIntegrityError
from modhost.kernel.hashing import is_sha256_hex, iter_stream_chunks, sha256_file
from modhost.kernel.logging import DiagnosticsSink, MemorySink

Opener = Callable[[], BinaryIO]


@dataclass(frozen=True)
class CacheIssue:
    digest: str
    actual: str
    path: Path


def _bounded_chunks(handle: BinaryIO, max_bytes: int | None) -> Iterator[bytes]:
    total = 0
    for chunk in iter_stream_chunks(handle):
        total += len(chunk)
        if max_bytes is not None and total > max_bytes:
            raise CacheIntegrityError(f"payload exceeds the {max_bytes} byte limit")
        yield chunk


class ContentCache:
    def __init__(
        self,
        root: str | Path,
        *,
        logger: DiagnosticsSink | None = None,
        fsync: bool = True,
        max_bytes: int | None = None,
    ) -> None:
        self.root = Path(root)
        self._logger = logger or MemorySink()
        self._fsync = fsync
        self._max_bytes = max_bytes

    def path_for(self, digest: str) -> Path:
        digest = str(digest).lower()
        if not is_sha256_hex(digest):
            raise CacheIntegrityError(f"not a sha256 hex digest: {digest!r}")
        return self.root / digest

    def materialize(self, data: bytes, expected_sha256: str | None = None) -> Path:
        return self.materialize_from(lambda: io.BytesIO(data), expected_sha256)

    def materialize_from(self, opener: Opener, expected_sha256: str | None = None) -> Path:
        """Store the payload produced by ``opener`` under its content hash.

        ``opener`` returns a fresh binary stream each time it is called. Writes
        nothing when a file with matching content already exists. A cached
        file whose content no longer matches its name is deleted and
        rewritten. Payloads over the size limit raise CacheIntegrityError
        before anything is written; OSError propagates to the caller.
        """
        hasher = hashlib.sha256()
        size = 0
        with opener() as handle:
            for chunk in _bounded_chunks(handle, self._max_bytes):
                hasher.update(chunk)
                size += len(chunk)
        digest = hasher.hexdigest()
        if expected_sha256 is not None and expected_sha256.lower() != digest:
            raise CacheIntegrityError(f"payload hashes to {digest}, expected {expected_sha256.lower()}")
        path = self.path_for(digest)
        if path.is_file():
            if sha256_file(path) == digest:
                return path
            self._logger.event(
                event="cache_entry_corrupt",
                level="warning",
                message=f"Cached file {path} does not match its hash, rewriting",
                digest=digest,
            )
            path.unlink()
        elif path.exists():
            raise CacheIntegrityError(f"cache path {path} exists and is not a regular file")
        self.root.mkdir(parents=True, exist_ok=True)
        with opener() as handle:
            atomic_write_chunks(path, _bounded_chunks(handle, self._max_bytes), fsync=self._fsync)
        actual = sha256_file(path)
        if actual != digest:
            path.unlink()
            raise CacheIntegrityError(f"cache write verification failed for {path}: got {actual}")
        self._logger.event(event="cache_entry_written", level="debug", digest=digest, size=size)
        return path

    def contains(self, digest: str) -> bool:
        path = self.path_for(digest)
        return path.is_file() and sha256_file(path) == path.name

    def entries(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(item.name for item in self.root.iterdir() if item.is_file() and is_sha256_hex(item.name))

    def verify(self) -> list[CacheIssue]:
        """Re-hash every cached file and report those that drifted from their name."""
        issues: list[CacheIssue] = []
        for digest in self.entries():
            path = self.root / digest
            actual = sha256_file(path)
            if actual != digest:
                issues.append(CacheIssue(digest=digest, actual=actual, path=path))
                self._logger.event(event="cache_entry_corrupt", level="warning", digest=digest, actual=actual)
        return issues
