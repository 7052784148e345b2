"""Path resolution helpers that avoid CWD dependence."""

from __future__ import annotations

import importlib.resources as resources
import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

from platformdirs import PlatformDirs


_CONFIG_ENV = "MODHOST_CONFIG_DIR"
_DATA_ENV = "MODHOST_DATA_DIR"
_MODS_ENV = "MODHOST_MODS_DIR"
_CACHE_ENV = "MODHOST_CACHE_DIR"
_APP_NAME = "ModHost"
_PACKAGE = "modhost"


def resource_path(rel_path: str) -> Path:
    """Filesystem path of a resource shipped inside the package."""
    target = resources.files(_PACKAGE).joinpath(rel_path)
    return Path(str(target))


def load_text(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def load_json(path: str | Path) -> dict[str, Any]:
    return json.loads(load_text(path))


def _resolve_dir(value: str | Path) -> Path:
    return Path(value).expanduser().absolute()


def default_config_dir() -> Path:
    override = os.getenv(_CONFIG_ENV)
    if override:
        return _resolve_dir(override)
    return Path(PlatformDirs(_APP_NAME, appauthor=False).user_config_dir)


def default_data_dir() -> Path:
    override = os.getenv(_DATA_ENV)
    if override:
        return _resolve_dir(override)
    return Path(PlatformDirs(_APP_NAME, appauthor=False).user_data_dir)


def mod_config_path(configs_dir: str | Path, mod_id: str) -> Path:
    return Path(configs_dir) / f"{mod_id}.cfg"


def apply_path_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """Fill unset directories and make every configured path absolute.

    Precedence per key: explicit config value, then environment, then the
    platform default derived from the data/config roots.
    """
    updated = deepcopy(config)
    paths = updated.get("paths")
    if not isinstance(paths, dict):
        paths = {}

    config_dir = _resolve_dir(paths.get("config_dir") or default_config_dir())
    data_dir = _resolve_dir(paths.get("data_dir") or default_data_dir())
    mods_dir = paths.get("mods_dir") or os.getenv(_MODS_ENV) or data_dir / "mods"
    cache_dir = paths.get("cache_dir") or os.getenv(_CACHE_ENV) or data_dir / "cache"
    configs_dir = paths.get("configs_dir") or config_dir / "configs"
    logs_dir = paths.get("logs_dir") or data_dir / "logs"

    paths["config_dir"] = str(config_dir)
    paths["data_dir"] = str(data_dir)
    paths["mods_dir"] = str(_resolve_dir(mods_dir))
    paths["cache_dir"] = str(_resolve_dir(cache_dir))
    paths["configs_dir"] = str(_resolve_dir(configs_dir))
    paths["logs_dir"] = str(_resolve_dir(logs_dir))
    updated["paths"] = paths
    return updated
