"""Mod archive ingestion: manifest parsing and payload extraction."""

from __future__ import annotations

import zipfile
import zlib
from pathlib import Path

from modhost.kernel.atomic_write import atomic_write_chunks
from modhost.kernel.errors import CacheIntegrityError, ManifestError
from modhost.kernel.hashing import iter_stream_chunks
from modhost.kernel.logging import DiagnosticsSink
from modhost.kernel.paths import mod_config_path

from .cache import ContentCache
from .manifest import ArchiveObject, ModManifest, ObjectKind, load_manifest_bytes
from .outcome import ErrorKind, LoadingProblems, Outcome
from .registry import LoadingEntry, ModRegistry

DEFAULT_MANIFEST_NAME = "data.json"


def _member_name(path: str) -> str:
    name = path.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.lstrip("/")


def _lookup(archive: zipfile.ZipFile, path: str) -> zipfile.ZipInfo | None:
    try:
        info = archive.getinfo(_member_name(path))
    except KeyError:
        return None
    if info.is_dir():
        return None
    return info


class ArchiveReader:
    def __init__(
        self,
        cache: ContentCache,
        configs_dir: str | Path,
        problems: LoadingProblems,
        logger: DiagnosticsSink,
        *,
        manifest_name: str = DEFAULT_MANIFEST_NAME,
        max_payload_bytes: int | None = None,
    ) -> None:
        self._cache = cache
        self._configs_dir = Path(configs_dir)
        self._problems = problems
        self._logger = logger
        self._manifest_name = manifest_name
        self._max_payload_bytes = max_payload_bytes

    def _broken(self, archive_path: Path, kind: ErrorKind, reason: str, mod_id: str = "") -> Outcome[LoadingEntry]:
        path = archive_path.as_posix()
        problem = self._problems.report(kind, f"Failed to load zip mod from {path}: {reason}", mod_id=mod_id, path=path)
        self._logger.event(event="broken_zip_mod", level="fatal", mod_id=mod_id, message=problem.message, path=path)
        return Outcome(problem=problem)

    def read(self, archive_path: str | Path, registry: ModRegistry) -> Outcome[LoadingEntry]:
        """Register the mod packed in ``archive_path`` and extract its payloads.

        Every failure is recorded in the stage problems and returned as a
        failed outcome; nothing is raised for malformed archives.
        """
        archive_path = Path(archive_path)
        try:
            archive = zipfile.ZipFile(archive_path)
        except (zipfile.BadZipFile, OSError) as exc:
            return self._broken(archive_path, ErrorKind.MALFORMED_INPUT, f"not a readable zip archive: {exc}")
        with archive:
            manifest_info = _lookup(archive, self._manifest_name)
            if manifest_info is None:
                return self._broken(
                    archive_path, ErrorKind.MALFORMED_INPUT, f"{self._manifest_name} entry is missing in zip"
                )
            if self._max_payload_bytes is not None and manifest_info.file_size > self._max_payload_bytes:
                return self._broken(
                    archive_path, ErrorKind.MALFORMED_INPUT, f"{self._manifest_name} is over the size limit"
                )
            try:
                manifest = load_manifest_bytes(archive.read(manifest_info))
            except (ManifestError, zipfile.BadZipFile, zlib.error, RuntimeError) as exc:
                # RuntimeError: encrypted members or unsupported compression.
                return self._broken(
                    archive_path, ErrorKind.MALFORMED_INPUT, f"couldn't parse {self._manifest_name}: {exc}"
                )
            mod_id = manifest.info.mod_id
            try:
                members = self._check_objects(archive, manifest)
            except ManifestError as exc:
                return self._broken(
                    archive_path, ErrorKind.MALFORMED_INPUT, f"Failed to extract data objects: {exc}", mod_id
                )
            registered = registry.register_entry(manifest.info, archive_path)
            if not registered.ok:
                return registered
            entry = registered.unwrap()
            # Configs go last so a failed extraction never leaves a config
            # behind for a mod that was dropped.
            ordered = sorted(members, key=lambda item: item[0].kind is ObjectKind.CONFIG)
            try:
                for obj, info in ordered:
                    self._extract_object(archive, obj, info, entry)
            except (ManifestError, RuntimeError) as exc:
                registry.drop(mod_id)
                return self._broken(
                    archive_path, ErrorKind.MALFORMED_INPUT, f"Failed to extract data objects: {exc}", mod_id
                )
            except (CacheIntegrityError, OSError, zipfile.BadZipFile, zlib.error) as exc:
                registry.drop(mod_id)
                return self._broken(
                    archive_path, ErrorKind.CACHE_INTEGRITY, f"Failed to extract data objects: {exc}", mod_id
                )
        self._logger.event(
            event="zip_mod_loaded",
            level="info",
            mod_id=mod_id,
            path=archive_path.as_posix(),
            objects=len(members),
        )
        return Outcome.success(entry)

    def _check_objects(
        self, archive: zipfile.ZipFile, manifest: ModManifest
    ) -> list[tuple[ArchiveObject, zipfile.ZipInfo]]:
        members: list[tuple[ArchiveObject, zipfile.ZipInfo]] = []
        modules = 0
        for obj in manifest.objects:
            if obj.kind is ObjectKind.UNRECOGNIZED:
                raise ManifestError(f"unknown archive object type encountered: {obj.type_name!r}")
            if obj.kind is ObjectKind.CORE_MODULE:
                raise ManifestError("core mods are not supported by this version of the mod loader")
            if obj.kind is ObjectKind.MODULE:
                modules += 1
                if modules > 1:
                    raise ManifestError("mod can only have one module at a time")
            info = _lookup(archive, obj.path)
            if info is None:
                raise ManifestError(f"object {obj.path!r} specified in {self._manifest_name} is missing in zip")
            if self._max_payload_bytes is not None and info.file_size > self._max_payload_bytes:
                raise ManifestError(
                    f"object {obj.path!r} is {info.file_size} bytes, over the {self._max_payload_bytes} byte limit"
                )
            members.append((obj, info))
        return members

    def _extract_object(
        self,
        archive: zipfile.ZipFile,
        obj: ArchiveObject,
        info: zipfile.ZipInfo,
        entry: LoadingEntry,
    ) -> None:
        if obj.kind is ObjectKind.CONFIG:
            config_path = mod_config_path(self._configs_dir, entry.mod_id)
            # Never overwrite a config the user may have edited.
            if not config_path.exists():
                with archive.open(info) as handle:
                    atomic_write_chunks(config_path, iter_stream_chunks(handle))
                self._logger.event(event="mod_config_extracted", level="info", mod_id=entry.mod_id, path=str(config_path))
            return
        cached = self._cache.materialize_from(lambda: archive.open(info))
        if obj.kind is ObjectKind.PAK:
            entry.pak_paths.append(cached)
        elif obj.kind is ObjectKind.MODULE:
            entry.set_module(cached)
        else:
            raise ManifestError(f"unknown archive object type encountered: {obj.type_name!r}")
