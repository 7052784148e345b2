import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from modhost.cli import build_parser, main

from tests._mod_support import manifest, write_archive


class ModHostCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tempdir.name)
        self.env = mock.patch.dict(
            os.environ,
            {"MODHOST_CONFIG_DIR": str(self.root / "cfg"), "MODHOST_DATA_DIR": str(self.root / "data")},
        )
        self.env.start()
        os.environ.pop("MODHOST_MODS_DIR", None)
        os.environ.pop("MODHOST_CACHE_DIR", None)
        self.mods_dir = self.root / "mods"

    def tearDown(self) -> None:
        self.env.stop()
        self.tempdir.cleanup()

    def _run(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_parser_exposes_commands(self) -> None:
        parser = build_parser()
        subactions = [a for a in parser._actions if getattr(a, "choices", None)]  # type: ignore[attr-defined]
        choices = set(subactions[0].choices.keys())  # type: ignore[index]
        self.assertEqual(choices, {"plan", "load", "cache", "config"})

    def test_plan_prints_load_order(self) -> None:
        write_archive(self.mods_dir / "Alpha.smod", manifest("Alpha", objects=[{"type": "pak", "path": "a.pak"}]), {"a.pak": b"A"})
        write_archive(self.mods_dir / "Bravo.smod", manifest("Bravo", dependencies={"Alpha": "*"}))
        code, out, _err = self._run("--mods-dir", str(self.mods_dir), "plan")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["order"], ["modhost", "Alpha", "Bravo"])
        self.assertEqual(payload["mods"][2]["dependencies"], ["Alpha"])

        code, out, _err = self._run("cache", "list")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["count"], 1)

    def test_load_reports_and_fails_on_host_problems(self) -> None:
        write_archive(
            self.mods_dir / "Alpha.smod",
            manifest("Alpha", objects=[{"type": "sml_mod", "path": "Alpha.py"}]),
            {"Alpha.py": "x = 1\n"},
        )
        code, out, _err = self._run("--mods-dir", str(self.mods_dir), "load")
        self.assertEqual(code, 1)
        payload = json.loads(out)
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["problems"], ["Failed to initialize module Alpha: initialize_module() function not found"])

    def test_halted_stage_prints_error(self) -> None:
        write_archive(self.mods_dir / "A1.smod", manifest("Alpha"))
        write_archive(self.mods_dir / "A2.smod", manifest("Alpha"))
        code, _out, err = self._run("--mods-dir", str(self.mods_dir), "plan")
        self.assertEqual(code, 1)
        self.assertIn("ERROR: Errors occurred during mod loading stage 'mod discovery'", err)

    def test_cache_verify_flags_corruption(self) -> None:
        cache_dir = self.root / "cache"
        cache_dir.mkdir()
        (cache_dir / ("0" * 64)).write_bytes(b"not the zero hash")
        code, out, _err = self._run("--cache-dir", str(cache_dir), "cache", "verify")
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["issues"][0]["digest"], "0" * 64)

    def test_config_show_reset_restore(self) -> None:
        code, out, _err = self._run("--safe-mode", "config", "show")
        self.assertEqual(code, 0)
        self.assertFalse(json.loads(out)["mods"]["allow_raw_mods"])

        code, _out, err = self._run("config", "restore")
        self.assertEqual(code, 1)
        self.assertIn("ERROR: No user config backup", err)

        user_path = self.root / "cfg" / "user.json"
        user_path.parent.mkdir(parents=True)
        user_path.write_text(json.dumps({"mods": {"manifest_name": "mod.json"}}), encoding="utf-8")
        self.assertEqual(self._run("config", "reset")[0], 0)
        self.assertEqual(json.loads(user_path.read_text(encoding="utf-8"))["mods"]["manifest_name"], "data.json")
        self.assertEqual(self._run("config", "restore")[0], 0)
        self.assertEqual(json.loads(user_path.read_text(encoding="utf-8"))["mods"]["manifest_name"], "mod.json")


if __name__ == "__main__":
    unittest.main()
