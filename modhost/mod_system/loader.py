"""Load orchestration: map modules, register data payloads, run init hooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from modhost.kernel.errors import HostError
from modhost.kernel.logging import DiagnosticsSink

from .host import ModuleHost
from .manifest import ModInfo
from .outcome import ErrorKind, LoadProblem
from .registry import LoadingEntry


class DefaultModule:
    """Interface given to mods that ship no code (or whose code failed)."""

    def startup(self) -> None:
        return None


@dataclass(frozen=True)
class ModContainer:
    info: ModInfo
    interface: Any
    has_code: bool

    def to_dict(self) -> dict[str, Any]:
        return {"mod_id": self.info.mod_id, "version": str(self.info.version), "has_code": self.has_code}


@dataclass
class LoadReport:
    order: list[str] = field(default_factory=list)
    containers: list[ModContainer] = field(default_factory=list)
    data_payloads: list[tuple[str, str]] = field(default_factory=list)
    pending_hooks: list[str] = field(default_factory=list)
    hooks_run: list[str] = field(default_factory=list)
    problems: list[LoadProblem] = field(default_factory=list)
    created_utc: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_utc": self.created_utc,
            "ok": self.ok,
            "order": list(self.order),
            "mods": [container.to_dict() for container in self.containers],
            "data_payloads": [{"mod_id": mod_id, "path": path} for mod_id, path in self.data_payloads],
            "pending_hooks": list(self.pending_hooks),
            "hooks_run": list(self.hooks_run),
            "problems": [problem.message for problem in self.problems],
        }


class ModLoader:
    """Drives the host through one ordered mod list.

    Host failures are per mod: they are logged and recorded in the report,
    and the affected mod continues without its code or hook.
    """

    def __init__(self, host: ModuleHost, logger: DiagnosticsSink, *, entry_point: str = "initialize_module") -> None:
        self._host = host
        self._logger = logger
        self._entry_point = entry_point

    def _problem(self, report: LoadReport, mod_id: str, message: str) -> None:
        report.problems.append(LoadProblem(kind=ErrorKind.HOST_INTEGRATION, message=message, mod_id=mod_id))
        self._logger.event(event="host_integration_failed", level="error", mod_id=mod_id, message=message)

    def load(self, ordered: list[LoadingEntry]) -> LoadReport:
        report = LoadReport(order=[entry.mod_id for entry in ordered])

        self._logger.info("Loading mods into the process address space...")
        handles: dict[str, Any] = {}
        for entry in ordered:
            if entry.module_path is None:
                continue
            try:
                handle = self._host.map_module(entry.module_path, mod_id=entry.mod_id)
                if handle is None:
                    raise HostError("module not loaded")
            except Exception as exc:
                self._problem(report, entry.mod_id, f"Failed to load module {entry.mod_id}: {exc}")
                continue
            handles[entry.mod_id] = handle

        self._logger.info("Initializing mod modules...")
        interfaces: dict[str, Any] = {}
        for entry in ordered:
            handle = handles.get(entry.mod_id)
            if handle is None:
                continue
            initializer = self._host.resolve_entry_point(handle, self._entry_point)
            if initializer is None:
                self._problem(
                    report,
                    entry.mod_id,
                    f"Failed to initialize module {entry.mod_id}: {self._entry_point}() function not found",
                )
                continue
            try:
                interfaces[entry.mod_id] = initializer()
            except Exception as exc:
                self._problem(report, entry.mod_id, f"Failed to initialize module {entry.mod_id}: {exc}")

        # The mod list must exist before data payloads are registered, since
        # payloads may refer to any mod loaded so far.
        self._logger.info("Populating mod list...")
        for entry in ordered:
            if entry.mod_id not in interfaces:
                report.containers.append(ModContainer(info=entry.info, interface=DefaultModule(), has_code=False))
            else:
                report.containers.append(ModContainer(info=entry.info, interface=interfaces[entry.mod_id], has_code=True))

        self._logger.info("Registering mod data payloads...")
        for entry in ordered:
            for pak_path in entry.pak_paths:
                try:
                    self._host.register_data_payload(entry.mod_id, pak_path)
                except Exception as exc:
                    self._problem(report, entry.mod_id, f"Failed to register data payload {pak_path}: {exc}")
                    continue
                report.data_payloads.append((entry.mod_id, str(pak_path)))

        # Code-less mods never run hooks, even if their module defined one.
        for entry in ordered:
            if entry.mod_id in interfaces and self._host.has_init_hook(entry.mod_id):
                report.pending_hooks.append(entry.mod_id)
        self._logger.event(
            event="mods_loaded",
            level="info",
            order=report.order,
            with_code=sorted(interfaces),
            hooks=list(report.pending_hooks),
        )
        return report

    def run_init_hooks(self, report: LoadReport) -> LoadReport:
        for mod_id in report.pending_hooks:
            try:
                self._host.invoke_init_hook(mod_id)
            except Exception as exc:
                self._problem(report, mod_id, f"Failed to call init hook on mod {mod_id}: {exc}")
                continue
            report.hooks_run.append(mod_id)
        report.pending_hooks = []
        return report
