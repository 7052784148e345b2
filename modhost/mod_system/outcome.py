"""Per-operation results and stage diagnostics."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from modhost.kernel.errors import LoadingHaltedError
from modhost.kernel.logging import DiagnosticsSink

T = TypeVar("T")


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    CONFLICT = "conflict"
    MISSING_DEPENDENCY = "missing_dependency"
    CYCLIC_DEPENDENCY = "cyclic_dependency"
    HOST_INTEGRATION = "host_integration"
    CACHE_INTEGRITY = "cache_integrity"


@dataclass(frozen=True)
class LoadProblem:
    kind: ErrorKind
    message: str
    mod_id: str = ""
    path: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success value or a problem; callers branch on ``ok``."""

    value: T | None = None
    problem: LoadProblem | None = None

    @property
    def ok(self) -> bool:
        return self.problem is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, *, mod_id: str = "", path: str = "") -> "Outcome[T]":
        return cls(problem=LoadProblem(kind=kind, message=message, mod_id=mod_id, path=path))

    def unwrap(self) -> T:
        if self.problem is not None:
            raise ValueError(f"unwrap on failed outcome: {self.problem.message}")
        return self.value  # type: ignore[return-value]


@dataclass
class LoadingProblems:
    """Ordered diagnostics accumulated by one pipeline stage."""

    items: list[LoadProblem] = field(default_factory=list)

    def add(self, problem: LoadProblem) -> None:
        self.items.append(problem)

    def report(self, kind: ErrorKind, message: str, *, mod_id: str = "", path: str = "") -> LoadProblem:
        problem = LoadProblem(kind=kind, message=message, mod_id=mod_id, path=path)
        self.items.append(problem)
        return problem

    def messages(self) -> list[str]:
        return [item.message for item in self.items]

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    def check_stage_errors(self, stage: str, logger: DiagnosticsSink) -> None:
        """Halt the pipeline if the stage recorded any problem."""
        if not self.items:
            return
        messages = self.messages()
        self.items.clear()
        error = LoadingHaltedError(stage, messages)
        logger.event(event="stage_failed", level="fatal", message=str(error), stage=stage, problems=messages)
        raise error
