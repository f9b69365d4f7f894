"""
Mapping rule sets: schema checks, legacy shape conversion, tagged column rules
and binding validation.
"""

import unittest

from ordersheet.errors import ValidationError
from ordersheet.mapping.ruleset import (
    ConstSource,
    EmptyColumnRule,
    FieldColumnRule,
    InputSource,
    MappingRuleSet,
    TemplateColumnRule,
)
from ordersheet.mapping.validator import RuleSetValidator, validate_ruleset


class TestRuleSetSchema(unittest.TestCase):

    def test_letters_are_normalized(self):
        ruleset = MappingRuleSet.from_dict({"destinationKey": "12", "fieldBindings": {"recipientName": " b "}})
        self.assertEqual(ruleset.field_bindings, {"recipientName": "B"})

    def test_defaults(self):
        ruleset = MappingRuleSet.from_dict({"destinationKey": "12"})
        self.assertEqual(ruleset.destination_kind, "manufacturer")
        self.assertEqual((ruleset.header_row, ruleset.data_start_row), (1, 2))
        self.assertFalse(ruleset.has_bindings)

    def test_invalid_column_letter(self):
        with self.assertRaises(ValidationError) as ctx:
            MappingRuleSet.from_dict({"destinationKey": "12", "fieldBindings": {"recipientName": "1A"}})
        self.assertTrue(ctx.exception.issues)

    def test_data_start_must_follow_header(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({"destinationKey": "12", "headerRow": 3, "dataStartRow": 3})

    def test_header_row_must_be_positive(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({"destinationKey": "12", "headerRow": 0})

    def test_malformed_template_rejected(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({"destinationKey": "12", "templateBindings": {"A": "{{manufacturerName"}})
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({"destinationKey": "12", "fieldFallbacks": {"memo": "{{a || }}"}})

    def test_one_rule_per_column(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({
                "destinationKey": "12",
                "fieldBindings": {"recipientName": "A"},
                "templateBindings": {"A": "고정"},
            })

    def test_unknown_destination_kind(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({"destinationKey": "12", "destinationKind": "warehouse"})

    def test_dict_round_trip(self):
        data = {
            "destinationKey": "12",
            "fieldBindings": {"recipientName": "B"},
            "templateBindings": {"A": "{{manufacturerName}}"},
            "fieldFallbacks": {"orderName": "{{recipientName}}"},
            "exportPipeline": {"columns": [{"from": 2}, {"const": "Z", "header": "비고"}]},
        }
        ruleset = MappingRuleSet.from_dict(data)
        self.assertEqual(MappingRuleSet.from_dict(ruleset.to_dict()), ruleset)
        self.assertEqual(ruleset.to_dict()["exportPipeline"]["columns"],
                         [{"from": 2}, {"const": "Z", "header": "비고"}])


class TestLegacyShape(unittest.TestCase):

    def test_manufacturer_column_mappings_and_fixed_values(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "7",
            "headerRow": 2,
            "dataStartRow": 3,
            "columnMappings": {"recipientName": "B", "address": "c"},
            "fixedValues": {"FIELD:orderName": "{{recipientName}}", "A": "{{manufacturerName}}"},
        })
        self.assertEqual(ruleset.field_bindings, {"recipientName": "B", "address": "C"})
        self.assertEqual(ruleset.field_fallbacks, {"orderName": "{{recipientName}}"})
        self.assertEqual(ruleset.template_bindings, {"A": "{{manufacturerName}}"})

    def test_shopping_mall_column_mappings_are_header_bindings(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "mall-a",
            "destinationKind": "shopping_mall",
            "columnMappings": {"수령자": "recipientName", "주문번호": "orderNumber"},
            "fixedValues": {"memo": "부재시 문앞"},
        })
        self.assertEqual(ruleset.header_bindings, {"수령자": "recipientName", "주문번호": "orderNumber"})
        self.assertEqual(ruleset.field_bindings, {})
        self.assertEqual(ruleset.field_fallbacks, {"memo": "부재시 문앞"})

    def test_tagged_export_sources(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "mall-a",
            "exportPipeline": {
                "copyPrefixRows": False,
                "columns": [
                    {"source": {"type": "input", "columnIndex": 2}},
                    {"header": "구분", "source": {"type": "const", "value": 1}},
                ],
            },
        })
        columns = ruleset.export_pipeline.columns
        self.assertFalse(ruleset.export_pipeline.copy_prefix_rows)
        self.assertIsInstance(columns[0].source, InputSource)
        self.assertEqual(columns[0].source.column_index, 2)
        self.assertIsInstance(columns[1].source, ConstSource)
        self.assertEqual(columns[1].source.value, "1")

    def test_input_column_index_starts_at_one(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({"destinationKey": "x", "exportPipeline": {"columns": [{"from": 0}]}})


class TestColumnRules(unittest.TestCase):

    def test_tagged_rule_per_column(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "12",
            "fieldBindings": {"recipientName": "B"},
            "templateBindings": {"D": "{{manufacturerName}}"},
        })
        rules = ruleset.column_rules(width=5)

        self.assertEqual(list(rules), ["A", "B", "C", "D", "E"])
        self.assertIsInstance(rules["A"], EmptyColumnRule)
        self.assertEqual(rules["B"], FieldColumnRule(column="B", field="recipientName"))
        self.assertIsInstance(rules["D"], TemplateColumnRule)
        self.assertEqual(ruleset.max_column_index, 4)

    def test_rules_sorted_by_column_position(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "12",
            "fieldBindings": {"memo": "AA", "address": "C", "recipientName": "B"},
        })
        self.assertEqual(list(ruleset.column_rules()), ["B", "C", "AA"])


class TestRuleSetValidator(unittest.TestCase):

    def test_empty_template_binding_leaves_required_missing(self):
        ruleset = MappingRuleSet.from_dict({"destinationKey": "12", "templateBindings": {"A": ""}})
        report = validate_ruleset(ruleset)

        self.assertIn("recipientName", report.missing_required)
        self.assertEqual(report.duplicate_field_bindings, [])
        self.assertFalse(report.ok)

    def test_non_empty_fallback_satisfies_field(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "12",
            "fieldFallbacks": {"recipientName": "{{orderName}}", "address": "   "},
        })
        report = RuleSetValidator(["recipientName", "address"]).validate(ruleset)
        self.assertEqual(report.missing_required, ["address"])

    def test_column_binding_plus_fixed_value_is_duplicate(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "12",
            "fieldBindings": {"recipientName": "B"},
            "fieldFallbacks": {"recipientName": "홍길동"},
        })
        report = validate_ruleset(ruleset)
        self.assertEqual(report.duplicate_field_bindings, ["recipientName"])
        self.assertEqual(report.to_dict()["duplicateFieldBindings"], ["recipientName"])

    def test_two_columns_for_one_field_is_duplicate(self):
        ruleset = MappingRuleSet.from_dict({"destinationKey": "12", "columnBindings": {"A": "memo", "B": "memo"}})
        self.assertEqual(validate_ruleset(ruleset, ["memo"]).duplicate_field_bindings, ["memo"])

    def test_key_and_label_of_one_field_is_duplicate(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "12",
            "fieldBindings": {"recipientName": "A", "받는인": "B"},
        })
        self.assertEqual(ruleset.field_bindings, {"recipientName": "A"})
        self.assertEqual(ruleset.column_bindings, {"B": "recipientName"})
        self.assertEqual(validate_ruleset(ruleset).duplicate_field_bindings, ["recipientName"])

    def test_labels_become_canonical_keys(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "mall",
            "destinationKind": "shopping_mall",
            "fieldBindings": {"배송지": "C"},
            "headerBindings": {"수령자": "받는인"},
            "fieldFallbacks": {"전언": "부재시 문앞"},
        })
        self.assertEqual(ruleset.field_bindings, {"address": "C"})
        self.assertEqual(ruleset.header_bindings, {"수령자": "recipientName"})
        self.assertEqual(ruleset.field_fallbacks, {"memo": "부재시 문앞"})

    def test_unknown_field_key_rejected(self):
        for bindings in ({"fieldBindings": {"recipientNmae": "C"}},
                         {"columnBindings": {"C": "recipientNmae"}},
                         {"headerBindings": {"수령자": "recipientNmae"}},
                         {"fieldFallbacks": {"recipientNmae": "x"}}):
            with self.assertRaises(ValidationError):
                MappingRuleSet.from_dict({"destinationKey": "12", **bindings})

    def test_two_fallbacks_for_one_field_rejected(self):
        with self.assertRaises(ValidationError):
            MappingRuleSet.from_dict({
                "destinationKey": "12",
                "fieldFallbacks": {"memo": "a", "전언": "b"},
            })

    def test_fully_bound_rule_set_is_ok(self):
        ruleset = MappingRuleSet.from_dict({
            "destinationKey": "12",
            "fieldBindings": {"recipientName": "A", "address": "B"},
        })
        report = validate_ruleset(ruleset, ["recipientName", "address"])
        self.assertTrue(report.ok)
        self.assertEqual(report.to_issues(), [])


if __name__ == "__main__":
    unittest.main()
