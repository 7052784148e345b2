"""Semantic versions and version-range predicates.

Range grammar (npm-style subset):

- ``1.2.3`` / ``=1.2.3``: exact match; partial versions (``1.2``, ``1.x``)
  match every version with that prefix.
- ``>``, ``>=``, ``<``, ``<=`` comparators, optionally space-separated from
  the version.
- ``~1.2.3``: patch-level changes; ``^1.2.3``: changes that keep the left-most
  non-zero component.
- ``1.0.0 - 2.0.0``: inclusive hyphen range.
- Space-separated comparators are AND-ed; ``||`` separates alternatives.
- ``*``, ``x`` or an empty string match any version.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Any

_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_PARTIAL_RE = re.compile(
    r"^v?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)
_COMPARATOR_RE = re.compile(r"(<=|>=|<|>|=|\^|~)?\s*([^\s<>=^~]+)")
_HYPHEN_RE = re.compile(r"\s+-\s+")
_WILDCARDS = {"x", "X", "*"}


def _prerelease_key(prerelease: tuple[str, ...]) -> tuple[Any, ...]:
    if not prerelease:
        # A release sorts after every prerelease of the same core version.
        return (1,)
    parts = tuple((0, int(item), "") if item.isdigit() else (1, 0, item) for item in prerelease)
    return (0, parts)


@total_ordering
@dataclass(frozen=True)
class SemVersion:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def parse(cls, text: str) -> "SemVersion":
        match = _SEMVER_RE.match(str(text).strip())
        if match is None:
            raise ValueError(f"invalid semantic version: {text!r}")
        major, minor, patch, pre, build = match.groups()
        return cls(
            major=int(major),
            minor=int(minor),
            patch=int(patch),
            prerelease=tuple(pre.split(".")) if pre else (),
            build=tuple(build.split(".")) if build else (),
        )

    def _key(self) -> tuple[Any, ...]:
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __lt__(self, other: "SemVersion") -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def _floor(major: int, minor: int = 0, patch: int = 0) -> SemVersion:
    """Lowest version with the given core, below every prerelease of it."""
    return SemVersion(major, minor, patch, ("0",))


@dataclass(frozen=True)
class Comparator:
    op: str
    version: SemVersion

    def matches(self, version: SemVersion) -> bool:
        if self.op == ">=":
            return version >= self.version
        if self.op == ">":
            return version > self.version
        if self.op == "<=":
            return version <= self.version
        if self.op == "<":
            return version < self.version
        return version == self.version

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class _Partial:
    major: int | None
    minor: int | None
    patch: int | None
    prerelease: tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> "_Partial":
        match = _PARTIAL_RE.match(text)
        if match is None:
            raise ValueError(f"invalid version in range: {text!r}")
        raw_major, raw_minor, raw_patch, pre = match.groups()
        parts: list[int | None] = []
        for raw in (raw_major, raw_minor, raw_patch):
            if raw is None or raw in _WILDCARDS or (parts and parts[-1] is None):
                parts.append(None)
            else:
                parts.append(int(raw))
        return cls(parts[0], parts[1], parts[2], tuple(pre.split(".")) if pre else ())

    @property
    def is_full(self) -> bool:
        return self.patch is not None

    def lower(self) -> SemVersion:
        return SemVersion(self.major or 0, self.minor or 0, self.patch or 0, self.prerelease)

    def next_floor(self) -> SemVersion:
        """Floor of the first version past this partial's prefix."""
        if self.minor is None:
            return _floor((self.major or 0) + 1)
        if self.patch is None:
            return _floor(self.major or 0, self.minor + 1)
        return _floor(self.major or 0, self.minor, self.patch + 1)


def _expand(op: str, partial: _Partial) -> list[Comparator]:
    if partial.major is None:
        return [] if op in ("", "=", ">=", "<=", "^", "~") else [Comparator("<", _floor(0))]
    lower = partial.lower()
    if op in ("", "="):
        if partial.is_full:
            return [Comparator("==", lower)]
        return [Comparator(">=", lower), Comparator("<", partial.next_floor())]
    if op == ">=":
        return [Comparator(">=", lower)]
    if op == ">":
        if partial.is_full:
            return [Comparator(">", lower)]
        return [Comparator(">=", partial.next_floor())]
    if op == "<":
        return [Comparator("<", lower if partial.is_full else _floor(lower.major, lower.minor, lower.patch))]
    if op == "<=":
        if partial.is_full:
            return [Comparator("<=", lower)]
        return [Comparator("<", partial.next_floor())]
    if op == "~":
        if partial.minor is None:
            upper = _floor(lower.major + 1)
        else:
            upper = _floor(lower.major, lower.minor + 1)
        return [Comparator(">=", lower), Comparator("<", upper)]
    # caret
    if lower.major > 0 or partial.minor is None:
        upper = _floor(lower.major + 1)
    elif lower.minor > 0 or partial.patch is None:
        upper = _floor(0, lower.minor + 1)
    else:
        upper = _floor(0, 0, lower.patch + 1)
    return [Comparator(">=", lower), Comparator("<", upper)]


def _parse_set(text: str) -> tuple[Comparator, ...]:
    text = text.strip()
    if text in ("", "*", "x", "X"):
        return ()
    hyphen = _HYPHEN_RE.split(text)
    if len(hyphen) == 2:
        low = _Partial.parse(hyphen[0].strip())
        high = _Partial.parse(hyphen[1].strip())
        return tuple(_expand(">=", low) + _expand("<=", high))
    if len(hyphen) > 2:
        raise ValueError(f"invalid hyphen range: {text!r}")
    comparators: list[Comparator] = []
    pos = 0
    for match in _COMPARATOR_RE.finditer(text):
        if text[pos : match.start()].strip():
            raise ValueError(f"invalid version range: {text!r}")
        comparators.extend(_expand(match.group(1) or "", _Partial.parse(match.group(2))))
        pos = match.end()
    if text[pos:].strip():
        raise ValueError(f"invalid version range: {text!r}")
    return tuple(comparators)


@dataclass(frozen=True)
class VersionRange:
    raw: str
    alternatives: tuple[tuple[Comparator, ...], ...]

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        raw = str(text).strip()
        alternatives = tuple(_parse_set(part) for part in raw.split("||"))
        return cls(raw=raw, alternatives=alternatives)

    @classmethod
    def exact(cls, version: SemVersion) -> "VersionRange":
        return cls(raw=str(version), alternatives=((Comparator("==", version),),))

    def matches(self, version: SemVersion) -> bool:
        return any(all(comp.matches(version) for comp in group) for group in self.alternatives)

    def __str__(self) -> str:
        return self.raw or "*"
