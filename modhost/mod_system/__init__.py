"""Mod discovery, extraction, dependency ordering and loading."""

from __future__ import annotations

from .cache import ContentCache
from .handler import LoadContext, ModHandler
from .host import ModuleHost, PythonModuleHost
from .loader import LoadReport, ModContainer, ModLoader
from .manifest import HOST_MOD_ID, ORDER_LAST_ID, ModInfo, ModManifest, ObjectKind
from .outcome import ErrorKind, LoadingProblems, LoadProblem, Outcome
from .registry import LoadingEntry, ModRegistry
from .resolver import DependencyResolver
from .version import SemVersion, VersionRange

__all__ = [
    "ContentCache",
    "DependencyResolver",
    "ErrorKind",
    "HOST_MOD_ID",
    "LoadContext",
    "LoadProblem",
    "LoadReport",
    "LoadingEntry",
    "LoadingProblems",
    "ModContainer",
    "ModHandler",
    "ModInfo",
    "ModLoader",
    "ModManifest",
    "ModRegistry",
    "ModuleHost",
    "ORDER_LAST_ID",
    "ObjectKind",
    "Outcome",
    "PythonModuleHost",
    "SemVersion",
    "VersionRange",
]
