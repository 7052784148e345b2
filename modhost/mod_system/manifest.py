"""Mod manifest models (data.json)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from modhost import __version__ as host_version
from modhost.kernel.errors import ManifestError
from modhost.kernel.paths import resource_path
from modhost.kernel.schema_registry import SCHEMAS

from .version import SemVersion, VersionRange

HOST_MOD_ID = "modhost"
ORDER_LAST_ID = "@ORDER:LAST"


class ObjectKind(str, Enum):
    CONFIG = "config"
    PAK = "pak"
    MODULE = "sml_mod"
    CORE_MODULE = "core_mod"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_type(cls, type_name: str) -> "ObjectKind":
        for kind in cls:
            if kind is not cls.UNRECOGNIZED and kind.value == type_name:
                return kind
        return cls.UNRECOGNIZED


@dataclass(frozen=True)
class ArchiveObject:
    kind: ObjectKind
    type_name: str
    path: str


def _frozen_ranges(raw: Mapping[str, VersionRange] | None) -> Mapping[str, VersionRange]:
    return MappingProxyType(dict(raw or {}))


@dataclass(frozen=True, eq=False)
class ModInfo:
    mod_id: str
    name: str
    version: SemVersion
    description: str = ""
    authors: tuple[str, ...] = ()
    dependencies: Mapping[str, VersionRange] = field(default_factory=dict)
    optional_dependencies: Mapping[str, VersionRange] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "authors", tuple(self.authors))
        object.__setattr__(self, "dependencies", _frozen_ranges(self.dependencies))
        object.__setattr__(self, "optional_dependencies", _frozen_ranges(self.optional_dependencies))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModInfo):
            return NotImplemented
        return self.mod_id == other.mod_id

    def __hash__(self) -> int:
        return hash(self.mod_id)

    @property
    def load_last(self) -> bool:
        return ORDER_LAST_ID in self.dependencies

    @classmethod
    def dummy(cls, mod_id: str, **overrides: Any) -> "ModInfo":
        """Minimal info for mods without real metadata."""
        values: dict[str, Any] = {
            "mod_id": mod_id,
            "name": mod_id,
            "version": SemVersion(1, 0, 0),
            "description": "",
            "authors": (),
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModInfo":
        mod_id = str(data.get("mod_id", ""))
        try:
            version = SemVersion.parse(str(data.get("version", "")))
        except ValueError as exc:
            raise ManifestError(f"invalid version for {mod_id}: {exc}") from exc
        return cls(
            mod_id=mod_id,
            name=str(data.get("name") or mod_id),
            version=version,
            description=str(data.get("description", "")),
            authors=tuple(str(item) for item in data.get("authors", []) or []),
            dependencies=_parse_ranges(mod_id, data.get("dependencies")),
            optional_dependencies=_parse_ranges(mod_id, data.get("optional_dependencies")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mod_id": self.mod_id,
            "name": self.name,
            "version": str(self.version),
            "description": self.description,
            "authors": list(self.authors),
            "dependencies": {key: str(value) for key, value in self.dependencies.items()},
            "optional_dependencies": {key: str(value) for key, value in self.optional_dependencies.items()},
        }


def _parse_ranges(mod_id: str, raw: Any) -> dict[str, VersionRange]:
    ranges: dict[str, VersionRange] = {}
    for dep_id, expr in (raw or {}).items():
        try:
            ranges[str(dep_id)] = VersionRange.parse(str(expr))
        except ValueError as exc:
            raise ManifestError(f"invalid version range for dependency {dep_id} of {mod_id}: {exc}") from exc
    return ranges


def host_mod_info() -> ModInfo:
    return ModInfo(
        mod_id=HOST_MOD_ID,
        name="ModHost",
        version=SemVersion.parse(host_version),
        description="Mod loading and compatibility layer",
        authors=("ModHost contributors",),
    )


@dataclass(frozen=True)
class ModManifest:
    info: ModInfo
    objects: tuple[ArchiveObject, ...]

    @classmethod
    def from_dict(cls, data: Any) -> "ModManifest":
        validate_manifest(data)
        info = ModInfo.from_dict(data)
        objects = tuple(
            ArchiveObject(
                kind=ObjectKind.from_type(str(entry["type"])),
                type_name=str(entry["type"]),
                path=str(entry["path"]),
            )
            for entry in data["objects"]
        )
        return cls(info=info, objects=objects)


def validate_manifest(data: Any) -> None:
    schema_path = resource_path("contracts/mod_manifest.schema.json")
    SCHEMAS.check(schema_path, data, error=ManifestError, prefix="invalid manifest")


def parse_json_lenient(payload: bytes) -> Any:
    """Decode manifest bytes, tolerating a BOM, padding whitespace and trailing NULs."""
    text = payload.decode("utf-8-sig", errors="strict").rstrip("\x00").strip()
    return json.loads(text)


def load_manifest_bytes(payload: bytes) -> ModManifest:
    try:
        data = parse_json_lenient(payload)
    except UnicodeDecodeError as exc:
        raise ManifestError(f"manifest is not valid UTF-8: {exc}") from exc
    except (ValueError, RecursionError) as exc:
        # ValueError covers JSONDecodeError and oversized integer literals.
        raise ManifestError(f"manifest is not valid JSON: {exc}") from exc
    try:
        return ModManifest.from_dict(data)
    except RecursionError as exc:
        raise ManifestError(f"manifest is nested too deeply: {exc}") from exc
