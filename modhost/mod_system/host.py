"""Host collaborator contract and the in-process Python reference host."""

from __future__ import annotations

import importlib.util
import re
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Protocol

from modhost.kernel.errors import HostError

INIT_HOOK_NAME = "post_init"


class ModuleHost(Protocol):
    """What the loader needs from the process hosting the mods."""

    def map_module(self, path: Path, *, mod_id: str) -> Any:
        """Map a module payload into the process; raise HostError on failure."""
        ...

    def resolve_entry_point(self, handle: Any, symbol: str) -> Callable[..., Any] | None:
        ...

    def register_data_payload(self, mod_id: str, path: Path) -> None:
        ...

    def has_init_hook(self, mod_id: str) -> bool:
        ...

    def invoke_init_hook(self, mod_id: str) -> None:
        ...


def _module_name(mod_id: str) -> str:
    return "modhost_mod_" + re.sub(r"[^0-9A-Za-z_]", "_", mod_id)


class PythonModuleHost:
    """Loads module payloads as Python source.

    Cached payloads have no file extension, so the source is compiled
    directly instead of going through the import system's finders. A module
    level ``post_init`` callable is the mod's initialization hook.
    """

    def __init__(self) -> None:
        self.modules: dict[str, ModuleType] = {}
        self.data_payloads: list[tuple[str, Path]] = []
        self._hooks: dict[str, Callable[[], Any]] = {}

    def map_module(self, path: Path, *, mod_id: str) -> ModuleType:
        module_name = _module_name(mod_id)
        spec = importlib.util.spec_from_loader(module_name, loader=None, origin=str(path))
        if spec is None:
            raise HostError(f"Failed to create module spec for {path}")
        module = importlib.util.module_from_spec(spec)
        module.__file__ = str(path)
        try:
            source = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise HostError(f"Failed to read module {path}: {exc}") from exc
        sys.modules[module_name] = module
        try:
            code = compile(source, str(path), "exec")
            exec(code, module.__dict__)
        except Exception as exc:
            sys.modules.pop(module_name, None)
            raise HostError(f"Module {mod_id} failed to import: {type(exc).__name__}: {exc}") from exc
        self.modules[mod_id] = module
        hook = getattr(module, INIT_HOOK_NAME, None)
        if callable(hook):
            self._hooks[mod_id] = hook
        return module

    def resolve_entry_point(self, handle: Any, symbol: str) -> Callable[..., Any] | None:
        target = getattr(handle, symbol, None)
        return target if callable(target) else None

    def register_data_payload(self, mod_id: str, path: Path) -> None:
        if not Path(path).is_file():
            raise HostError(f"Data payload {path} for {mod_id} does not exist")
        self.data_payloads.append((mod_id, Path(path)))

    def has_init_hook(self, mod_id: str) -> bool:
        return mod_id in self._hooks

    def invoke_init_hook(self, mod_id: str) -> None:
        hook = self._hooks.get(mod_id)
        if hook is None:
            raise HostError(f"No init hook registered for {mod_id}")
        hook()

    def unload(self) -> None:
        for mod_id in list(self.modules):
            sys.modules.pop(_module_name(mod_id), None)
        self.modules.clear()
        self.data_payloads.clear()
        self._hooks.clear()
