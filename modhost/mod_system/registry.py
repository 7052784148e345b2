"""Loading entries and duplicate detection for discovered mods."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from modhost.kernel.errors import ManifestError, ModHostError
from modhost.kernel.logging import DiagnosticsSink

from .manifest import HOST_MOD_ID, ORDER_LAST_ID, ModInfo, host_mod_info
from .outcome import ErrorKind, LoadingProblems, Outcome
from .version import VersionRange

HOST_SOURCE = "<builtin>"


@dataclass
class LoadingEntry:
    info: ModInfo
    source_path: str
    module_path: Path | None = None
    pak_paths: list[Path] = field(default_factory=list)
    is_raw: bool = False
    # Resolved dependency targets; filled by the resolver.
    edges: list[str] = field(default_factory=list)

    @property
    def mod_id(self) -> str:
        return self.info.mod_id

    @property
    def load_last(self) -> bool:
        return self.info.load_last

    def set_module(self, path: Path) -> None:
        if self.module_path is not None:
            raise ManifestError("mod can only have one module at a time")
        self.module_path = Path(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mod_id": self.mod_id,
            "version": str(self.info.version),
            "source": self.source_path,
            "raw": self.is_raw,
            "module": str(self.module_path) if self.module_path is not None else None,
            "paks": [str(path) for path in self.pak_paths],
            "dependencies": list(self.edges),
        }


class ModRegistry:
    """Discovery-stage mapping from mod id to its loading entry.

    Holds exactly one entry per mod id, starting with the host's own entry.
    """

    def __init__(self, problems: LoadingProblems, logger: DiagnosticsSink) -> None:
        self._problems = problems
        self._logger = logger
        self._entries: dict[str, LoadingEntry] = {}
        self._finalized = False
        self._seed_host()

    def _seed_host(self) -> None:
        self._entries[HOST_MOD_ID] = LoadingEntry(info=host_mod_info(), source_path=HOST_SOURCE)

    def _ensure_open(self) -> None:
        if self._finalized:
            raise ModHostError("mod registry is finalized; discovery already completed")

    def _conflict(self, message: str, *, mod_id: str, path: str) -> Outcome[LoadingEntry]:
        problem = self._problems.report(ErrorKind.CONFLICT, message, mod_id=mod_id, path=path)
        self._logger.event(event="mod_conflict", level="fatal", mod_id=mod_id, message=problem.message, path=path)
        return Outcome(problem=problem)

    def register_entry(self, info: ModInfo, source_path: str | Path) -> Outcome[LoadingEntry]:
        self._ensure_open()
        source = Path(source_path).as_posix()
        existing = self._entries.get(info.mod_id)
        if existing is not None:
            return self._conflict(
                f"Found duplicate mods with same mod ID {info.mod_id}: {source} and {existing.source_path}",
                mod_id=info.mod_id,
                path=source,
            )
        entry = LoadingEntry(info=info, source_path=source)
        self._entries[info.mod_id] = entry
        self._logger.event(event="mod_registered", level="debug", mod_id=info.mod_id, path=source)
        return Outcome.success(entry)

    def register_raw_entry(self, mod_id: str, source_path: str | Path) -> Outcome[LoadingEntry]:
        """Register (or extend) an entry for a bare module/data file.

        Raw entries carry no real metadata; they depend on the load-last
        pseudo mod so they are ordered after every real mod. Raw files that
        derive the same id share one entry.
        """
        self._ensure_open()
        source = Path(source_path).as_posix()
        if mod_id == ORDER_LAST_ID:
            return self._conflict(f"Raw mod file uses reserved mod ID {mod_id}: {source}", mod_id=mod_id, path=source)
        existing = self._entries.get(mod_id)
        if existing is None:
            info = ModInfo.dummy(mod_id, dependencies={ORDER_LAST_ID: VersionRange.parse("1.0.0")})
            entry = LoadingEntry(info=info, source_path=source, is_raw=True)
            self._entries[mod_id] = entry
            self._logger.event(event="raw_mod_registered", level="debug", mod_id=mod_id, path=source)
            return Outcome.success(entry)
        if not existing.is_raw:
            return self._conflict(
                f"Found raw mod file conflicting with packed mod: {source}",
                mod_id=mod_id,
                path=source,
            )
        return Outcome.success(existing)

    def drop(self, mod_id: str) -> None:
        self._ensure_open()
        if mod_id == HOST_MOD_ID:
            return
        self._entries.pop(mod_id, None)

    def get(self, mod_id: str) -> LoadingEntry | None:
        return self._entries.get(mod_id)

    def entries(self) -> list[LoadingEntry]:
        return list(self._entries.values())

    def finalize(self) -> None:
        self._finalized = True

    @property
    def finalized(self) -> bool:
        return self._finalized

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, mod_id: object) -> bool:
        return mod_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LoadingEntry]:
        return iter(self.entries())
