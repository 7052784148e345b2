"""Kernel error types."""

from __future__ import annotations


class ModHostError(Exception):
    """Base error for ModHost."""


class ConfigError(ModHostError):
    """Raised when configuration validation or loading fails."""


class ManifestError(ModHostError):
    """Raised when a mod archive or its manifest is malformed."""


class CacheIntegrityError(ModHostError):
    """Raised when cached content does not hash to its expected digest."""


class HostError(ModHostError):
    """Raised by host collaborators when a module or hook cannot be used."""


class LoadingHaltedError(ModHostError):
    """Raised when a loading stage finishes with problems."""

    def __init__(self, stage: str, problems: list[str]) -> None:
        self.stage = stage
        self.problems = list(problems)
        lines = "\n".join(self.problems)
        super().__init__(f"Errors occurred during mod loading stage '{stage}'. Loading cannot continue:\n{lines}")
