"""Validators for the packaged JSON contracts (configuration, mod manifests).

Issues are reported with a dotted location and a short message that never
echoes the offending value: manifests come from untrusted archives and a
value can be arbitrarily large.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, ValidationError

from .errors import ModHostError
from .paths import load_json

MAX_REPORTED_ISSUES = 5


@dataclass(frozen=True)
class SchemaIssue:
    location: str
    keyword: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


def _location(error: ValidationError) -> str:
    text = ""
    for part in error.absolute_path:
        if isinstance(part, int):
            text += f"[{part}]"
        else:
            text += f".{part}" if text else str(part)
    return text or "<root>"


def _message(error: ValidationError) -> str:
    keyword = str(error.validator)
    if keyword == "required":
        return error.message
    if keyword == "type":
        return f"must be of type {error.validator_value!r}"
    if keyword == "pattern":
        return f"must match {error.validator_value!r}"
    if keyword in ("minimum", "minLength", "minItems"):
        return f"below {keyword} {error.validator_value!r}"
    return f"fails {keyword!r}"


class SchemaRegistry:
    """Compiles each schema file once and keeps the validator by path."""

    def __init__(self, *, max_issues: int = MAX_REPORTED_ISSUES) -> None:
        self._max_issues = max(1, int(max_issues))
        self._validators: dict[str, Draft202012Validator] = {}

    def validator_for(self, schema_path: str | Path) -> Draft202012Validator:
        key = str(Path(schema_path).resolve())
        validator = self._validators.get(key)
        if validator is not None:
            return validator
        try:
            schema = load_json(key)
        except (OSError, json.JSONDecodeError) as exc:
            raise ModHostError(f"Cannot load schema {schema_path}: {exc}") from exc
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as exc:
            raise ModHostError(f"Schema {schema_path} is not a valid JSON schema: {exc.message}") from exc
        validator = Draft202012Validator(schema)
        self._validators[key] = validator
        return validator

    def issues(self, schema_path: str | Path, instance: Any) -> list[SchemaIssue]:
        validator = self.validator_for(schema_path)
        found = [
            SchemaIssue(location=_location(err), keyword=str(err.validator), message=_message(err))
            for err in validator.iter_errors(instance)
        ]
        return sorted(found, key=lambda issue: (issue.location, issue.keyword, issue.message))

    def format_issues(self, issues: list[SchemaIssue]) -> str:
        shown = "; ".join(str(issue) for issue in issues[: self._max_issues])
        hidden = len(issues) - self._max_issues
        if hidden > 0:
            shown += f" (and {hidden} more)"
        return shown

    def check(self, schema_path: str | Path, instance: Any, *, error: type[ModHostError], prefix: str) -> None:
        issues = self.issues(schema_path, instance)
        if issues:
            raise error(f"{prefix}: {self.format_issues(issues)}")


SCHEMAS = SchemaRegistry()
