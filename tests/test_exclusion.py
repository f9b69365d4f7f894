import unittest

from ordersheet.errors import ValidationError
from ordersheet.ingest.exclusion import ExclusionFilter
from ordersheet.models import CanonicalOrderRecord
from ordersheet.settings import EngineSettings, ExclusionPattern


class TestExclusionFilter(unittest.TestCase):

    def setUp(self):
        self.filter = ExclusionFilter([
            ExclusionPattern(pattern="센터택배", description="센터 출고"),
            ExclusionPattern(pattern=r"^직배송\d+$", is_regex=True),
            ExclusionPattern(pattern="일반", enabled=False),
        ])

    def test_substring_match(self):
        self.assertTrue(self.filter.is_excluded("[30] 센터택배"))
        self.assertTrue(self.filter.is_excluded("센터택배"))

    def test_regex_match(self):
        self.assertTrue(self.filter.is_excluded("직배송12"))
        self.assertFalse(self.filter.is_excluded("직배송 12"))

    def test_disabled_pattern_never_matches(self):
        self.assertFalse(self.filter.is_excluded("일반"))

    def test_empty_type_is_not_excluded(self):
        self.assertFalse(self.filter.is_excluded(""))
        self.assertFalse(self.filter.is_excluded(None))

    def test_reason(self):
        self.assertEqual(self.filter.excluded_reason("센터택배"), "센터 출고")
        self.assertEqual(self.filter.excluded_reason("직배송3"), r"^직배송\d+$")
        self.assertIsNone(self.filter.excluded_reason("일반"))

    def test_global_switch(self):
        switched_off = ExclusionFilter([ExclusionPattern(pattern="센터택배")], enabled=False)
        self.assertFalse(switched_off.is_excluded("센터택배"))

    def test_invalid_regex(self):
        with self.assertRaises(ValidationError) as ctx:
            ExclusionFilter([ExclusionPattern(pattern="([", is_regex=True)])
        self.assertEqual(len(ctx.exception.issues), 1)

    def test_partition(self):
        records = [
            CanonicalOrderRecord(order_number="1", fulfillment_type="센터택배"),
            CanonicalOrderRecord(order_number="2", fulfillment_type="일반"),
            CanonicalOrderRecord(order_number="3"),
        ]
        sendable, excluded = self.filter.partition(records)
        self.assertEqual([r.order_number for r in sendable], ["2", "3"])
        self.assertEqual([r.order_number for r in excluded], ["1"])

    def test_from_settings(self):
        settings = EngineSettings.model_validate({
            "exclusionEnabled": True,
            "exclusionPatterns": [{"pattern": "센터택배", "isRegex": False}],
        })
        self.assertTrue(ExclusionFilter.from_settings(settings).is_excluded("센터택배"))


if __name__ == "__main__":
    unittest.main()
