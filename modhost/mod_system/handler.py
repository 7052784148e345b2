"""Mod loading pipeline: discovery -> dependency resolution -> load."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from modhost.kernel.errors import ManifestError, ModHostError
from modhost.kernel.logging import DiagnosticsSink, JsonlLogger

from .archive import ArchiveReader
from .cache import ContentCache
from .host import ModuleHost, PythonModuleHost
from .loader import LoadReport, ModContainer, ModLoader
from .outcome import ErrorKind, LoadingProblems
from .registry import LoadingEntry, ModRegistry
from .resolver import DependencyResolver

STAGE_DISCOVERY = "mod discovery"
STAGE_DEPENDENCIES = "dependency resolution"


def mod_id_from_file(path: Path, module_extensions: list[str], data_extensions: list[str]) -> str:
    """Derive a mod id from a raw file name.

    ``Name-Platform-Shipping.py`` -> ``Name``; ``Name_p.pak`` -> ``Name``.
    """
    stem = path.stem
    suffix = path.suffix.lower()
    if suffix in module_extensions:
        return stem.split("-", 1)[0]
    if suffix in data_extensions and stem.endswith("_p") and len(stem) > 2:
        return stem[:-2]
    return stem


def _max_payload_bytes(mods_cfg: dict[str, Any]) -> int | None:
    value = mods_cfg.get("max_payload_bytes")
    return int(value) if value else None


@dataclass
class LoadContext:
    """State shared by every stage of one loading run."""

    config: dict[str, Any]
    logger: DiagnosticsSink
    problems: LoadingProblems
    cache: ContentCache
    registry: ModRegistry

    @property
    def mods_cfg(self) -> dict[str, Any]:
        return self.config.get("mods", {})

    @property
    def paths_cfg(self) -> dict[str, Any]:
        return self.config.get("paths", {})


class ModHandler:
    def __init__(
        self,
        config: dict[str, Any],
        *,
        host: ModuleHost | None = None,
        logger: DiagnosticsSink | None = None,
    ) -> None:
        logger = logger or JsonlLogger.from_config(config)
        problems = LoadingProblems()
        paths_cfg = config.get("paths", {})
        max_bytes = _max_payload_bytes(config.get("mods", {}))
        self.context = LoadContext(
            config=config,
            logger=logger,
            problems=problems,
            cache=ContentCache(paths_cfg["cache_dir"], logger=logger, max_bytes=max_bytes),
            registry=ModRegistry(problems, logger),
        )
        self.host: ModuleHost = host if host is not None else PythonModuleHost()
        self._sorted: list[LoadingEntry] | None = None
        self._report: LoadReport | None = None
        self._loaded: dict[str, ModContainer] = {}

    @property
    def sorted_mods(self) -> list[LoadingEntry]:
        if self._sorted is None:
            raise ModHostError("dependencies have not been resolved yet")
        return list(self._sorted)

    @property
    def report(self) -> LoadReport | None:
        return self._report

    def discover_mods(self) -> list[LoadingEntry]:
        ctx = self.context
        mods_cfg = ctx.mods_cfg
        archive_exts = list(mods_cfg.get("archive_extensions", []))
        module_exts = list(mods_cfg.get("module_extensions", []))
        data_exts = list(mods_cfg.get("data_extensions", []))
        reader = ArchiveReader(
            ctx.cache,
            ctx.paths_cfg["configs_dir"],
            ctx.problems,
            ctx.logger,
            manifest_name=str(mods_cfg.get("manifest_name", "data.json")),
            max_payload_bytes=_max_payload_bytes(mods_cfg),
        )
        mods_dir = Path(ctx.paths_cfg["mods_dir"])
        mods_dir.mkdir(parents=True, exist_ok=True)
        ctx.logger.event(event="discovery_started", level="info", path=str(mods_dir))
        for path in sorted(mods_dir.iterdir(), key=lambda item: item.name):
            if not path.is_file():
                continue
            suffix = path.suffix.lower()
            if suffix in archive_exts:
                reader.read(path, ctx.registry)
            elif suffix in module_exts or suffix in data_exts:
                self._construct_raw_mod(path, module_exts, data_exts)
        ctx.problems.check_stage_errors(STAGE_DISCOVERY, ctx.logger)
        ctx.registry.finalize()
        return ctx.registry.entries()

    def _check_raw_allowed(self, path: Path) -> bool:
        ctx = self.context
        if not bool(ctx.mods_cfg.get("allow_raw_mods", False)):
            ctx.logger.error(f"Found raw mod in mods directory: {path.as_posix()}")
            ctx.logger.error("Raw mods are not supported in production mode and can be used only for development")
            ctx.problems.report(
                ErrorKind.MALFORMED_INPUT,
                f"Found unsupported raw mod file: {path.as_posix()}",
                path=path.as_posix(),
            )
            return False
        ctx.logger.warning(f"Loading development raw mod: {path.as_posix()}")
        ctx.logger.warning("Dependencies and versioning won't work!")
        return True

    def _construct_raw_mod(self, path: Path, module_exts: list[str], data_exts: list[str]) -> None:
        if not self._check_raw_allowed(path):
            return
        ctx = self.context
        mod_id = mod_id_from_file(path, module_exts, data_exts)
        if not mod_id:
            ctx.problems.report(
                ErrorKind.MALFORMED_INPUT,
                f"Couldn't derive a mod ID from raw mod file name: {path.as_posix()}",
                path=path.as_posix(),
            )
            return
        outcome = ctx.registry.register_raw_entry(mod_id, path)
        if not outcome.ok:
            return
        entry = outcome.unwrap()
        if path.suffix.lower() in module_exts:
            try:
                entry.set_module(path)
            except ManifestError:
                message = f"Found second raw module file for mod {mod_id}: {path.as_posix()}"
                ctx.problems.report(ErrorKind.CONFLICT, message, mod_id=mod_id, path=path.as_posix())
                ctx.logger.event(event="mod_conflict", level="fatal", mod_id=mod_id, message=message)
        else:
            entry.pak_paths.append(path)

    def check_dependencies(self) -> list[LoadingEntry]:
        ctx = self.context
        if not ctx.registry.finalized:
            raise ModHostError("mods must be discovered before resolving dependencies")
        outcome = DependencyResolver(ctx.problems, ctx.logger).resolve(ctx.registry)
        ctx.problems.check_stage_errors(STAGE_DEPENDENCIES, ctx.logger)
        self._sorted = outcome.unwrap()
        return list(self._sorted)

    def load_mods(self) -> LoadReport:
        ctx = self.context
        loader = ModLoader(self.host, ctx.logger, entry_point=str(ctx.mods_cfg.get("entry_point", "initialize_module")))
        report = loader.load(self.sorted_mods)
        self._report = report
        self._loaded = {container.info.mod_id: container for container in report.containers}
        return report

    def run_init_hooks(self) -> LoadReport:
        if self._report is None:
            raise ModHostError("mods must be loaded before running init hooks")
        loader = ModLoader(self.host, self.context.logger)
        return loader.run_init_hooks(self._report)

    def run(self) -> LoadReport:
        self.discover_mods()
        self.check_dependencies()
        self.load_mods()
        return self.run_init_hooks()

    def plan(self) -> list[LoadingEntry]:
        self.discover_mods()
        return self.check_dependencies()

    def loaded_mod_ids(self) -> list[str]:
        return list(self._loaded)

    def is_mod_loaded(self, mod_id: str) -> bool:
        return mod_id in self._loaded

    def get_loaded_mod(self, mod_id: str) -> ModContainer:
        container = self._loaded.get(mod_id)
        if container is None:
            raise ModHostError(f"Mod with ID {mod_id} is not loaded")
        return container