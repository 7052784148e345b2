"""Configuration loading, merging, and validation."""

from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .atomic_write import atomic_write_json
from .errors import ConfigError
from .paths import apply_path_defaults, default_config_dir, load_json, resource_path
from .schema_registry import SCHEMAS


@dataclass(frozen=True)
class ConfigPaths:
    default_path: Path
    user_path: Path
    schema_path: Path
    backup_dir: Path


def default_config_paths() -> ConfigPaths:
    config_root = default_config_dir()
    return ConfigPaths(
        default_path=resource_path("config/default.json"),
        user_path=(config_root / "user.json").absolute(),
        schema_path=resource_path("contracts/config_schema.json"),
        backup_dir=(config_root / "backup").absolute(),
    )


def _load_json(path: Path) -> dict[str, Any]:
    try:
        data = load_json(path)
    except FileNotFoundError:
        raise ConfigError(f"Missing config file: {path}")
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _normalize_extensions(config: dict[str, Any]) -> dict[str, Any]:
    mods_cfg = config.get("mods")
    if not isinstance(mods_cfg, dict):
        return config
    for key in ("archive_extensions", "module_extensions", "data_extensions"):
        raw = mods_cfg.get(key)
        if not isinstance(raw, list):
            continue
        normalized = []
        for item in raw:
            ext = str(item).strip().lower()
            if ext and not ext.startswith("."):
                ext = f".{ext}"
            if ext and ext not in normalized:
                normalized.append(ext)
        mods_cfg[key] = normalized
    return config


def validate_config(schema_path: Path, data: dict[str, Any]) -> None:
    SCHEMAS.check(schema_path, data, error=ConfigError, prefix="Invalid configuration")


def load_config(paths: ConfigPaths, safe_mode: bool = False, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    defaults = _load_json(paths.default_path)
    if safe_mode:
        config = deepcopy(defaults)
        mods_cfg = config.setdefault("mods", {})
        mods_cfg["safe_mode"] = True
        mods_cfg["allow_raw_mods"] = False
    else:
        user_config = _load_json(paths.user_path) if paths.user_path.exists() else {}
        config = _deep_merge(defaults, user_config)
    if overrides:
        config = _deep_merge(config, overrides)
    config = _normalize_extensions(config)
    config = apply_path_defaults(config)
    validate_config(paths.schema_path, config)
    return config


def reset_user_config(paths: ConfigPaths) -> None:
    defaults = _load_json(paths.default_path)
    backup_user_config(paths)
    atomic_write_json(paths.user_path, defaults)


def backup_user_config(paths: ConfigPaths) -> None:
    if not paths.user_path.exists():
        return
    paths.backup_dir.mkdir(parents=True, exist_ok=True)
    backup_path = paths.backup_dir / "user.json"
    with paths.user_path.open("rb") as src, backup_path.open("wb") as dst:
        dst.write(src.read())


def restore_user_config(paths: ConfigPaths) -> None:
    backup_path = paths.backup_dir / "user.json"
    if not backup_path.exists():
        raise ConfigError(f"No user config backup at {backup_path}")
    paths.user_path.parent.mkdir(parents=True, exist_ok=True)
    with backup_path.open("rb") as src, paths.user_path.open("wb") as dst:
        dst.write(src.read())
