import json
import unittest

from modhost.kernel.errors import ManifestError
from modhost.mod_system.manifest import (
    HOST_MOD_ID,
    ORDER_LAST_ID,
    ModInfo,
    ObjectKind,
    host_mod_info,
    load_manifest_bytes,
)
from modhost.mod_system.version import SemVersion

from tests._mod_support import manifest


class ModManifestTests(unittest.TestCase):
    def test_parses_objects_and_dependencies(self) -> None:
        data = manifest(
            "Alpha",
            "1.2.0",
            objects=[{"type": "sml_mod", "path": "Alpha.py"}, {"type": "pak", "path": "Alpha_p.pak"}],
            dependencies={"Beta": "^1.0.0"},
            optional_dependencies={"Gamma": ">=2.0.0"},
        )
        parsed = load_manifest_bytes(json.dumps(data).encode("utf-8"))
        self.assertEqual(parsed.info.mod_id, "Alpha")
        self.assertEqual(parsed.info.version, SemVersion(1, 2, 0))
        self.assertEqual([obj.kind for obj in parsed.objects], [ObjectKind.MODULE, ObjectKind.PAK])
        self.assertTrue(parsed.info.dependencies["Beta"].matches(SemVersion(1, 4, 0)))
        self.assertIn("Gamma", parsed.info.optional_dependencies)
        self.assertFalse(parsed.info.load_last)

    def test_tolerates_bom_and_trailing_nuls(self) -> None:
        payload = b"\xef\xbb\xbf" + json.dumps(manifest("Alpha")).encode("utf-8") + b"\n\x00\x00"
        parsed = load_manifest_bytes(payload)
        self.assertEqual(parsed.info.mod_id, "Alpha")

    def test_unknown_object_types_are_unrecognized(self) -> None:
        data = manifest("Alpha", objects=[{"type": "shader", "path": "a.bin"}, {"type": "core_mod", "path": "b"}])
        parsed = load_manifest_bytes(json.dumps(data).encode("utf-8"))
        self.assertEqual(parsed.objects[0].kind, ObjectKind.UNRECOGNIZED)
        self.assertEqual(parsed.objects[0].type_name, "shader")
        self.assertEqual(parsed.objects[1].kind, ObjectKind.CORE_MODULE)

    def test_malformed_manifests_raise(self) -> None:
        cases = {
            "not json": b"{mod_id:",
            "not utf8": b"\xff\xfe\x00",
            "missing id": json.dumps({"version": "1.0.0", "objects": []}).encode("utf-8"),
            "bad version": json.dumps(manifest("Alpha", "one")).encode("utf-8"),
            "bad range": json.dumps(manifest("Alpha", dependencies={"Beta": "^^"})).encode("utf-8"),
            "object without path": json.dumps(manifest("Alpha", objects=[{"type": "pak"}])).encode("utf-8"),
            "reserved order id": json.dumps(manifest(ORDER_LAST_ID)).encode("utf-8"),
            "array root": b"[]",
        }
        for label, payload in cases.items():
            with self.subTest(case=label):
                with self.assertRaises(ManifestError):
                    load_manifest_bytes(payload)

    def test_mod_info_identity_is_mod_id(self) -> None:
        first = ModInfo.dummy("Alpha")
        second = ModInfo.dummy("Alpha", version=SemVersion(2, 0, 0))
        self.assertEqual(first, second)
        self.assertEqual(len({first, second}), 1)
        self.assertNotEqual(first, ModInfo.dummy("Beta"))

    def test_dummy_and_host_info(self) -> None:
        dummy = ModInfo.dummy("Raw")
        self.assertEqual(dummy.name, "Raw")
        self.assertEqual(dummy.version, SemVersion(1, 0, 0))
        self.assertEqual(dict(dummy.dependencies), {})
        host = host_mod_info()
        self.assertEqual(host.mod_id, HOST_MOD_ID)
        self.assertEqual(host.to_dict()["dependencies"], {})

    def test_dependencies_are_read_only(self) -> None:
        parsed = load_manifest_bytes(json.dumps(manifest("Alpha", dependencies={"Beta": "1.0.0"})).encode("utf-8"))
        with self.assertRaises(TypeError):
            parsed.info.dependencies["Gamma"] = parsed.info.dependencies["Beta"]  # type: ignore[index]


if __name__ == "__main__":
    unittest.main()
