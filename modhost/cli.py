"""Command line interface for ModHost."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from modhost.kernel.config import default_config_paths, load_config, reset_user_config, restore_user_config
from modhost.kernel.errors import ModHostError
from modhost.kernel.logging import JsonlLogger
from modhost.mod_system.cache import ContentCache
from modhost.mod_system.handler import ModHandler


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _load(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    paths: dict[str, Any] = {}
    if getattr(args, "mods_dir", None):
        paths["mods_dir"] = args.mods_dir
    if getattr(args, "cache_dir", None):
        paths["cache_dir"] = args.cache_dir
    if paths:
        overrides["paths"] = paths
    return load_config(default_config_paths(), safe_mode=args.safe_mode, overrides=overrides or None)


def cmd_plan(args: argparse.Namespace) -> int:
    handler = ModHandler(_load(args))
    ordered = handler.plan()
    _print_json({"ok": True, "order": [entry.mod_id for entry in ordered], "mods": [entry.to_dict() for entry in ordered]})
    return 0


def cmd_load(args: argparse.Namespace) -> int:
    handler = ModHandler(_load(args))
    report = handler.run()
    _print_json(report.to_dict())
    return 0 if report.ok else 1


def cmd_cache_list(args: argparse.Namespace) -> int:
    config = _load(args)
    cache = ContentCache(config["paths"]["cache_dir"])
    entries = cache.entries()
    _print_json({"cache_dir": str(cache.root), "count": len(entries), "entries": entries})
    return 0


def cmd_cache_verify(args: argparse.Namespace) -> int:
    config = _load(args)
    cache = ContentCache(config["paths"]["cache_dir"], logger=JsonlLogger.from_config(config))
    issues = cache.verify()
    _print_json(
        {
            "ok": not issues,
            "issues": [{"digest": issue.digest, "actual": issue.actual, "path": str(issue.path)} for issue in issues],
        }
    )
    return 0 if not issues else 1


def cmd_config_show(args: argparse.Namespace) -> int:
    _print_json(_load(args))
    return 0


def cmd_config_reset(args: argparse.Namespace) -> int:
    paths = default_config_paths()
    reset_user_config(paths)
    _print_json({"ok": True, "user_path": str(paths.user_path)})
    return 0


def cmd_config_restore(args: argparse.Namespace) -> int:
    paths = default_config_paths()
    restore_user_config(paths)
    _print_json({"ok": True, "user_path": str(paths.user_path)})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modhost")
    parser.add_argument("--safe-mode", action="store_true", help="Ignore user config and reject raw mods")
    parser.add_argument("--mods-dir", default=None, help="Override the mods directory")
    parser.add_argument("--cache-dir", default=None, help="Override the payload cache directory")

    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Discover mods and print the resolved load order")
    plan.set_defaults(func=cmd_plan)

    load = sub.add_parser("load", help="Discover, order and load mods, then run init hooks")
    load.set_defaults(func=cmd_load)

    cache = sub.add_parser("cache")
    cache_sub = cache.add_subparsers(dest="cache_cmd", required=True)
    cache_list = cache_sub.add_parser("list")
    cache_list.set_defaults(func=cmd_cache_list)
    cache_verify = cache_sub.add_parser("verify")
    cache_verify.set_defaults(func=cmd_cache_verify)

    cfg = sub.add_parser("config")
    cfg_sub = cfg.add_subparsers(dest="config_cmd", required=True)
    cfg_show = cfg_sub.add_parser("show")
    cfg_show.set_defaults(func=cmd_config_show)
    cfg_reset = cfg_sub.add_parser("reset")
    cfg_reset.set_defaults(func=cmd_config_reset)
    cfg_restore = cfg_sub.add_parser("restore")
    cfg_restore.set_defaults(func=cmd_config_restore)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        exit_code = int(args.func(args))
    except ModHostError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        exit_code = 1
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
