import json
import tempfile
import unittest
from pathlib import Path

from ordersheet.errors import StructuralError, ValidationError
from ordersheet.mapping.ruleset import MappingRuleSet
from ordersheet.mapping.store import RuleSetStore


def _ruleset(key, kind="manufacturer", **extra):
    data = {"destinationKey": key, "destinationKind": kind}
    data.update(extra)
    return MappingRuleSet.from_dict(data)


class TestRuleSetStore(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.store = RuleSetStore(self.root)

    def tearDown(self):
        self._tmp.cleanup()

    def test_upsert_and_get(self):
        ruleset = _ruleset("12", fieldBindings={"recipientName": "B"})
        report = self.store.upsert(ruleset)

        self.assertIn("address", report.missing_required)
        self.assertTrue((self.root / "manufacturer" / "12.json").exists())
        self.assertEqual(self.store.get("manufacturer", "12"), ruleset)

    def test_saved_file_is_camel_case_json(self):
        self.store.upsert(_ruleset("12", fieldBindings={"recipientName": "B"}))
        with open(self.root / "manufacturer" / "12.json", encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data["fieldBindings"], {"recipientName": "B"})
        self.assertEqual(data["dataStartRow"], 2)

    def test_duplicate_binding_blocks_save_without_force(self):
        ruleset = _ruleset("12", fieldBindings={"recipientName": "B"}, fieldFallbacks={"recipientName": "x"})

        with self.assertRaises(ValidationError) as ctx:
            self.store.upsert(ruleset)
        self.assertEqual(ctx.exception.report.duplicate_field_bindings, ["recipientName"])
        self.assertIsNone(self.store.get("manufacturer", "12"))

        report = self.store.upsert(ruleset, force=True)
        self.assertEqual(report.duplicate_field_bindings, ["recipientName"])
        self.assertIsNotNone(self.store.get("manufacturer", "12"))

    def test_get_missing_returns_none(self):
        self.assertIsNone(self.store.get("manufacturer", "404"))

    def test_list_and_delete(self):
        self.store.upsert(_ruleset("2"))
        self.store.upsert(_ruleset("1"))
        self.store.upsert(_ruleset("default", kind="common"))

        self.assertEqual(self.store.list_keys("manufacturer"), ["1", "2"])
        self.assertTrue(self.store.delete("manufacturer", "1"))
        self.assertFalse(self.store.delete("manufacturer", "1"))
        self.assertEqual(self.store.list_keys("manufacturer"), ["2"])
        self.assertEqual(self.store.list_keys("invoice"), [])

    def test_unknown_kind(self):
        with self.assertRaises(ValidationError):
            self.store.get("warehouse", "1")

    def test_file_location_is_identity(self):
        path = self.root / "manufacturer" / "5.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"destinationKey": "other", "columnMappings": {"memo": "A"}}), encoding="utf-8")

        ruleset = self.store.get("manufacturer", "5")
        self.assertEqual(ruleset.destination_key, "5")
        self.assertEqual(ruleset.field_bindings, {"memo": "A"})


class TestResolveForManufacturer(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = RuleSetStore(Path(self._tmp.name))

    def tearDown(self):
        self._tmp.cleanup()

    def test_own_rule_set_wins(self):
        self.store.upsert(_ruleset("12", fieldBindings={"recipientName": "A"}))
        self.store.upsert(_ruleset("default", kind="common", fieldBindings={"address": "A"}))

        ruleset, origin = self.store.resolve_for_manufacturer(12)
        self.assertEqual(origin, "manufacturer")
        self.assertEqual(ruleset.destination_key, "12")

    def test_empty_own_rule_set_falls_back_to_common(self):
        self.store.upsert(_ruleset("12"))
        self.store.upsert(_ruleset("default", kind="common", fieldBindings={"address": "A"}))

        ruleset, origin = self.store.resolve_for_manufacturer("12")
        self.assertEqual(origin, "common")
        self.assertEqual(ruleset.field_bindings, {"address": "A"})

    def test_nothing_configured(self):
        with self.assertRaises(StructuralError):
            self.store.resolve_for_manufacturer("12")


if __name__ == "__main__":
    unittest.main()
