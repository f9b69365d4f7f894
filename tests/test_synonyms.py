"""
Synonym dictionary: exact header resolution and conflict detection.
"""

import unittest

from ordersheet.blueprint.synonyms import SynonymDictionary, SynonymEntry
from ordersheet.errors import ValidationError


class TestSynonymDictionary(unittest.TestCase):

    def setUp(self):
        self.synonyms = SynonymDictionary.default()

    def test_resolves_seeded_synonym(self):
        self.assertEqual(self.synonyms.resolve("수취인"), "recipientName")
        self.assertEqual(self.synonyms.resolve("사방넷주문번호"), "orderNumber")

    def test_trims_before_matching(self):
        self.assertEqual(self.synonyms.resolve("  수취인 "), "recipientName")

    def test_field_key_and_label_resolve_directly(self):
        self.assertEqual(self.synonyms.resolve("recipientName"), "recipientName")
        self.assertEqual(self.synonyms.resolve("받는인"), "recipientName")

    def test_matching_is_case_sensitive(self):
        self.assertEqual(self.synonyms.resolve("qty"), "quantity")
        self.assertIsNone(self.synonyms.resolve("QTY"))

    def test_unknown_and_blank_headers(self):
        self.assertIsNone(self.synonyms.resolve("전혀 모르는 헤더"))
        self.assertIsNone(self.synonyms.resolve(""))
        self.assertIsNone(self.synonyms.resolve(None))

    def test_no_fuzzy_matching(self):
        self.assertIsNone(self.synonyms.resolve("수취인 이름"))

    def test_conflicting_enabled_synonyms_raise(self):
        entries = [SynonymEntry("address", "주소지"), SynonymEntry("memo", "주소지")]
        with self.assertRaises(ValidationError) as ctx:
            SynonymDictionary(entries)
        self.assertEqual(len(ctx.exception.issues), 1)

    def test_disabled_entry_is_ignored(self):
        entries = [SynonymEntry("address", "주소지"), SynonymEntry("memo", "주소지", enabled=False)]
        synonyms = SynonymDictionary(entries)
        self.assertEqual(synonyms.resolve("주소지"), "address")
        self.assertEqual(synonyms.synonyms_for("memo"), [])

    def test_same_synonym_same_field_is_not_a_conflict(self):
        entries = [SynonymEntry("address", "주소지"), SynonymEntry("address", "주소지")]
        self.assertEqual(SynonymDictionary(entries).resolve("주소지"), "address")

    def test_resolution_is_deterministic(self):
        headers = ["수취인", "주소", "상품명", "qty", "메모", "없는헤더"]
        other = SynonymDictionary(self.synonyms.entries)
        self.assertEqual([self.synonyms.resolve(h) for h in headers], [other.resolve(h) for h in headers])

    def test_as_map_groups_by_field(self):
        synonyms = SynonymDictionary.from_mapping({"memo": ["비고", "메모"]})
        self.assertEqual(synonyms.as_map(), {"memo": ["비고", "메모"]})


if __name__ == "__main__":
    unittest.main()
