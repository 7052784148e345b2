"""Structured JSONL diagnostics logging.

Design goals:
- Lightweight: no background threads, one JSON object per line.
- Stable key ordering in JSON serialization.
- Archive-only rotation: never delete local logs.
- Never raise: a broken log sink must not break mod loading.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, TextIO

LEVELS = ("debug", "info", "warning", "error", "fatal")
_ECHO_LEVELS = {"warning", "error", "fatal"}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)


def _build_payload(event: str, level: str, mod_id: str | None, fields: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts_utc": _utc_now_iso(),
        "level": level if level in LEVELS else "info",
        "event": str(event or "event"),
        "mod_id": str(mod_id or ""),
    }
    for k, v in fields.items():
        if k in payload:
            continue
        payload[str(k)] = v
    return payload


class DiagnosticsSink(Protocol):
    def event(self, *, event: str, level: str = "info", mod_id: str | None = None, **fields: Any) -> None:
        ...


class _LevelMethods:
    """Message-style helpers shared by every sink."""

    def event(self, *, event: str, level: str = "info", mod_id: str | None = None, **fields: Any) -> None:
        raise NotImplementedError

    def debug(self, message: str, **fields: Any) -> None:
        self.event(event="message", level="debug", message=message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.event(event="message", level="info", message=message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.event(event="message", level="warning", message=message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.event(event="message", level="error", message=message, **fields)

    def fatal(self, message: str, **fields: Any) -> None:
        self.event(event="message", level="fatal", message=message, **fields)


@dataclass(frozen=True)
class JsonlLoggerConfig:
    path: Path
    rotate_max_bytes: int
    echo: bool = False


class JsonlLogger(_LevelMethods):
    def __init__(self, cfg: JsonlLoggerConfig, *, stream: TextIO | None = None) -> None:
        self._cfg = cfg
        self._stream = stream
        self._cfg.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: dict[str, Any], *, name: str = "mods") -> "JsonlLogger":
        paths = config.get("paths", {}) if isinstance(config, dict) else {}
        logging_cfg = config.get("logging", {}) if isinstance(config, dict) else {}
        logs_dir = Path(str(paths.get("logs_dir") or "logs"))
        logs_dir.mkdir(parents=True, exist_ok=True)
        rotate_max_bytes = _safe_int(logging_cfg.get("rotate_max_bytes", 5_000_000), 5_000_000)
        return cls(
            JsonlLoggerConfig(
                path=logs_dir / f"{name}.jsonl",
                rotate_max_bytes=max(1024, rotate_max_bytes),
                echo=bool(logging_cfg.get("echo", False)),
            )
        )

    @property
    def path(self) -> str:
        return str(self._cfg.path)

    def _rotate_if_needed(self) -> None:
        try:
            if not self._cfg.path.exists():
                return
            if self._cfg.path.stat().st_size < self._cfg.rotate_max_bytes:
                return
            # Archive-only rotation: rename current file into logs/archive/.
            archive_dir = self._cfg.path.parent / "archive"
            archive_dir.mkdir(parents=True, exist_ok=True)
            ts = _utc_now_iso().replace(":", "").replace("-", "").replace(".", "")
            archived = archive_dir / f"{self._cfg.path.stem}.{ts}{self._cfg.path.suffix}"
            if not archived.exists():
                self._cfg.path.replace(archived)
        except OSError:
            return

    def _echo(self, payload: dict[str, Any]) -> None:
        if not self._cfg.echo or payload["level"] not in _ECHO_LEVELS:
            return
        stream = self._stream or sys.stderr
        text = payload.get("message") or payload["event"]
        prefix = f"[{payload['mod_id']}] " if payload["mod_id"] else ""
        try:
            stream.write(f"{payload['level'].upper()}: {prefix}{text}\n")
        except (OSError, ValueError):
            return

    def event(self, *, event: str, level: str = "info", mod_id: str | None = None, **fields: Any) -> None:
        payload = _build_payload(event, level, mod_id, fields)
        self._echo(payload)
        line = json.dumps(payload, sort_keys=True, default=str)
        self._rotate_if_needed()
        try:
            with self._cfg.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            return


@dataclass
class MemorySink(_LevelMethods):
    """Keeps events in memory; used when no log directory is wanted."""

    events: list[dict[str, Any]] = field(default_factory=list)

    def event(self, *, event: str, level: str = "info", mod_id: str | None = None, **fields: Any) -> None:
        self.events.append(_build_payload(event, level, mod_id, fields))

    def messages(self, level: str | None = None) -> list[str]:
        return [
            str(item.get("message", item["event"]))
            for item in self.events
            if level is None or item["level"] == level
        ]
