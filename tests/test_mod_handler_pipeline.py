import tempfile
import unittest
from pathlib import Path

from modhost.kernel.errors import LoadingHaltedError, ModHostError
from modhost.kernel.logging import MemorySink
from modhost.mod_system.handler import ModHandler, mod_id_from_file
from modhost.mod_system.manifest import HOST_MOD_ID

from tests._mod_support import MODULE_SOURCE, make_config, manifest, write_archive


def _populate(mods_dir: Path) -> None:
    write_archive(
        mods_dir / "Alpha.smod",
        manifest(
            "Alpha",
            "1.2.0",
            objects=[
                {"type": "sml_mod", "path": "Alpha.py"},
                {"type": "pak", "path": "Alpha_p.pak"},
                {"type": "config", "path": "Alpha.cfg"},
            ],
        ),
        {"Alpha.py": MODULE_SOURCE, "Alpha_p.pak": b"ALPHA", "Alpha.cfg": "enabled=1\n"},
    )
    write_archive(
        mods_dir / "Bravo.smod",
        manifest("Bravo", objects=[{"type": "pak", "path": "Bravo_p.pak"}], dependencies={"Alpha": "^1.0.0"}),
        {"Bravo_p.pak": b"BRAVO"},
    )
    (mods_dir / "Delta-Win64-Shipping.py").write_text(MODULE_SOURCE, encoding="utf-8")
    (mods_dir / "Delta_p.pak").write_bytes(b"DELTA")
    (mods_dir / "README.txt").write_text("ignored", encoding="utf-8")


class ModHandlerPipelineTests(unittest.TestCase):
    def test_full_run_loads_mods_in_dependency_order(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            config = make_config(root)
            _populate(root / "mods")
            handler = ModHandler(config, logger=MemorySink())
            try:
                report = handler.run()
                self.assertTrue(report.ok, [problem.message for problem in report.problems])
                self.assertEqual(report.order, [HOST_MOD_ID, "Alpha", "Bravo", "Delta"])
                self.assertEqual(handler.loaded_mod_ids(), [HOST_MOD_ID, "Alpha", "Bravo", "Delta"])
                self.assertTrue(handler.get_loaded_mod("Alpha").has_code)
                self.assertFalse(handler.get_loaded_mod("Bravo").has_code)
                self.assertTrue(handler.get_loaded_mod("Delta").has_code)
                self.assertEqual([mod_id for mod_id, _path in report.data_payloads], ["Alpha", "Bravo", "Delta"])
                self.assertTrue((root / "configs" / "Alpha.cfg").exists())
                self.assertFalse(handler.is_mod_loaded("Ghost"))
                with self.assertRaises(ModHostError):
                    handler.get_loaded_mod("Ghost")
            finally:
                handler.host.unload()

    def test_plan_resolves_without_loading(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _populate(root / "mods")
            handler = ModHandler(make_config(root), logger=MemorySink())
            ordered = handler.plan()
            self.assertEqual([entry.mod_id for entry in ordered], [HOST_MOD_ID, "Alpha", "Bravo", "Delta"])
            delta = ordered[-1]
            self.assertTrue(delta.is_raw)
            self.assertEqual(delta.module_path.name, "Delta-Win64-Shipping.py")
            self.assertEqual([path.name for path in delta.pak_paths], ["Delta_p.pak"])
            self.assertIsNone(handler.report)
            self.assertEqual(handler.loaded_mod_ids(), [])

    def test_discovery_problems_halt_loading(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            mods_dir = root / "mods"
            write_archive(mods_dir / "A1.smod", manifest("Alpha"))
            write_archive(mods_dir / "A2.smod", manifest("Alpha", "2.0.0"))
            write_archive(mods_dir / "Broken.smod", None, {"x.pak": b"x"})
            handler = ModHandler(make_config(root), logger=MemorySink())
            with self.assertRaises(LoadingHaltedError) as ctx:
                handler.discover_mods()
            self.assertEqual(ctx.exception.stage, "mod discovery")
            self.assertEqual(len(ctx.exception.problems), 2)
            self.assertIn("Found duplicate mods with same mod ID Alpha", ctx.exception.problems[0])
            self.assertIn("data.json entry is missing in zip", ctx.exception.problems[1])
            self.assertIn("Loading cannot continue", str(ctx.exception))

    def test_safe_mode_rejects_raw_mods(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "mods").mkdir()
            (root / "mods" / "Raw.py").write_text("pass\n", encoding="utf-8")
            sink = MemorySink()
            handler = ModHandler(make_config(root, safe_mode=True), logger=sink)
            with self.assertRaises(LoadingHaltedError) as ctx:
                handler.discover_mods()
            self.assertEqual(ctx.exception.problems, [f"Found unsupported raw mod file: {(root / 'mods' / 'Raw.py').as_posix()}"])
            self.assertTrue(any("Raw mods are not supported" in message for message in sink.messages("error")))

    def test_second_raw_module_for_same_id_is_a_conflict(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "mods").mkdir()
            (root / "mods" / "Delta-Linux.py").write_text("pass\n", encoding="utf-8")
            (root / "mods" / "Delta-Win64.py").write_text("pass\n", encoding="utf-8")
            handler = ModHandler(make_config(root), logger=MemorySink())
            with self.assertRaises(LoadingHaltedError) as ctx:
                handler.discover_mods()
            self.assertEqual(len(ctx.exception.problems), 1)
            self.assertIn("Found second raw module file for mod Delta", ctx.exception.problems[0])

    def test_raw_file_without_mod_id_is_malformed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "mods").mkdir()
            nameless = root / "mods" / "-Win64.py"
            nameless.write_text("pass\n", encoding="utf-8")
            handler = ModHandler(make_config(root), logger=MemorySink())
            with self.assertRaises(LoadingHaltedError) as ctx:
                handler.discover_mods()
            self.assertEqual(
                ctx.exception.problems,
                [f"Couldn't derive a mod ID from raw mod file name: {nameless.as_posix()}"],
            )
            self.assertNotIn("", handler.context.registry)


    def test_missing_dependencies_halt_resolution(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            write_archive(root / "mods" / "Bravo.smod", manifest("Bravo", dependencies={"Alpha": ">=1.0.0"}))
            handler = ModHandler(make_config(root), logger=MemorySink())
            handler.discover_mods()
            with self.assertRaises(LoadingHaltedError) as ctx:
                handler.check_dependencies()
            self.assertEqual(ctx.exception.stage, "dependency resolution")
            self.assertEqual(ctx.exception.problems, ["Bravo requires Alpha(>=1.0.0): not installed"])

    def test_stages_must_run_in_order(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = ModHandler(make_config(Path(tmp)), logger=MemorySink())
            with self.assertRaises(ModHostError):
                handler.check_dependencies()
            with self.assertRaises(ModHostError):
                handler.load_mods()
            with self.assertRaises(ModHostError):
                handler.run_init_hooks()

    def test_host_failures_do_not_halt(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            write_archive(
                root / "mods" / "Alpha.smod",
                manifest("Alpha", objects=[{"type": "sml_mod", "path": "Alpha.py"}]),
                {"Alpha.py": "raise RuntimeError('bad import')\n"},
            )
            handler = ModHandler(make_config(root), logger=MemorySink())
            try:
                report = handler.run()
            finally:
                handler.host.unload()
            self.assertFalse(report.ok)
            self.assertTrue(report.problems[0].message.startswith("Failed to load module Alpha: "))
            self.assertFalse(handler.get_loaded_mod("Alpha").has_code)


class ModIdFromFileTests(unittest.TestCase):
    def test_derivation(self) -> None:
        modules, data = [".py"], [".pak"]
        self.assertEqual(mod_id_from_file(Path("Delta-Win64-Shipping.py"), modules, data), "Delta")
        self.assertEqual(mod_id_from_file(Path("Delta.py"), modules, data), "Delta")
        self.assertEqual(mod_id_from_file(Path("Delta_p.pak"), modules, data), "Delta")
        self.assertEqual(mod_id_from_file(Path("Delta.pak"), modules, data), "Delta")
        self.assertEqual(mod_id_from_file(Path("_p.pak"), modules, data), "_p")


if __name__ == "__main__":
    unittest.main()
