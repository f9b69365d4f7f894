"""
Source sheet parsing: primary export and channel uploads.
"""

import datetime
import unittest
from decimal import Decimal

from ordersheet.blueprint.synonyms import SynonymDictionary
from ordersheet.errors import StructuralError
from ordersheet.ingest.order_parser import OrderParser, build_record
from ordersheet.mapping.ruleset import MappingRuleSet
from tests.workbook_factory import make_workbook

PRIMARY_HEADER = ["사방넷주문번호", "상품명", "옵션", "수량", "받는인", "핸드폰", "배송지", "제조사", "결제금액", "F"]


def _channel_ruleset(**extra):
    data = {
        "destinationKey": "mall-a",
        "destinationKind": "shopping_mall",
        "displayName": "몰A",
        "headerRow": 2,
        "dataStartRow": 3,
        "headerBindings": {"주문번호": "orderNumber", "상품번호": "mallProductNumber",
                           "수령자": "recipientName", "수량": "quantity"},
        "fieldFallbacks": {"memo": "부재시 문앞", "orderName": "{{recipientName}}"},
        "exportPipeline": {"columns": [{"from": 1}]},
    }
    data.update(extra)
    return MappingRuleSet.from_dict(data)


class TestBuildRecord(unittest.TestCase):

    def test_typed_conversion(self):
        record = build_record({
            "orderNumber": "A-1", "quantity": "3", "paymentAmount": "12,000원",
            "cjDate": "2026-01-05", "manufacturerName": "미지정",
        })
        self.assertEqual(record.quantity, 3)
        self.assertEqual(record.payment_amount, Decimal("12000"))
        self.assertEqual(record.cj_date, datetime.date(2026, 1, 5))
        self.assertIsNone(record.manufacturer_name)
        self.assertEqual(record.status, "pending")

    def test_quantity_defaults_to_one(self):
        self.assertEqual(build_record({"orderNumber": "A-1", "quantity": ""}).quantity, 1)

    def test_zero_or_unreadable_quantity_rejected(self):
        for text in ("0", "-2", "1.5", "두개"):
            with self.assertRaises(ValueError):
                build_record({"orderNumber": "A-1", "quantity": text})
        self.assertEqual(build_record({"orderNumber": "A-1", "quantity": "2.0"}).quantity, 2)

    def test_order_number_is_immutable(self):
        record = build_record({"orderNumber": "A-1"})
        with self.assertRaises(AttributeError):
            record.order_number = "B-2"
        record.manufacturer_id = "7"
        self.assertEqual(record.manufacturer_id, "7")


class TestPrimaryExport(unittest.TestCase):

    def setUp(self):
        self.parser = OrderParser(SynonymDictionary.default())

    def test_parse_rows(self):
        content = make_workbook([
            PRIMARY_HEADER,
            ["1001", "사과", "5kg", 2, "홍길동", "010-1111-2222", "서울시", "해피푸드", 15000, "일반"],
            ["1002", "배", "", 1, "김철수", "010-3333-4444", "부산시", "-", 9000, "센터택배"],
        ])
        result = self.parser.parse_primary(content)

        self.assertEqual(len(result.orders), 2)
        self.assertEqual(result.errors, [])
        first = result.orders[0]
        self.assertEqual(first.order_number, "1001")
        self.assertEqual(first.recipient_name, "홍길동")
        self.assertEqual(first.quantity, 2)
        self.assertEqual(first.payment_amount, Decimal("15000"))
        self.assertEqual(first.manufacturer_name, "해피푸드")
        self.assertIsNone(first.manufacturer_id)
        self.assertIsNone(result.orders[1].manufacturer_name)
        self.assertEqual(result.orders[1].fulfillment_type, "센터택배")

    def test_rows_without_order_number_are_skipped(self):
        content = make_workbook([PRIMARY_HEADER, ["", "사과"], ["1001", "배"]])
        result = self.parser.parse_primary(content)
        self.assertEqual([o.order_number for o in result.orders], ["1001"])
        self.assertEqual(result.skipped_rows, 1)

    def test_duplicate_order_number_is_a_row_error(self):
        content = make_workbook([PRIMARY_HEADER, ["1001", "사과"], ["1001", "배"]])
        result = self.parser.parse_primary(content)
        self.assertEqual(len(result.orders), 1)
        self.assertEqual(result.errors[0].row, 3)

    def test_zero_quantity_is_a_row_error(self):
        content = make_workbook([
            PRIMARY_HEADER,
            ["1001", "사과", "", 0, "홍길동"],
            ["1002", "배", "", 3, "김철수"],
        ])
        result = self.parser.parse_primary(content)

        self.assertEqual([o.order_number for o in result.orders], ["1002"])
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].row, 2)
        self.assertIn("quantity", result.errors[0].message)

    def test_leftmost_non_empty_column_wins(self):
        content = make_workbook([["주문번호", "수취인", "받는사람"], ["1", "", "B"], ["2", "A", "B"]])
        result = self.parser.parse_primary(content)
        self.assertEqual([o.recipient_name for o in result.orders], ["B", "A"])

    def test_missing_order_number_column(self):
        with self.assertRaises(StructuralError):
            self.parser.parse_primary(make_workbook([["상품명", "수량"], ["사과", 1]]))

    def test_empty_sheet(self):
        with self.assertRaises(StructuralError):
            self.parser.parse_primary(make_workbook([]))


class TestChannelUpload(unittest.TestCase):

    def setUp(self):
        self.parser = OrderParser(SynonymDictionary.default())

    def test_parse_through_header_bindings(self):
        content = make_workbook([
            ["몰A 주문 다운로드"],
            ["주문번호", "상품번호", "수령자", "수량", "기타"],
            ["M-1", "P100", "홍길동", 2, "x"],
            ["M-2", "", "김철수", 1, "y"],
            ["", "P300", "이영희", 1, "z"],
        ])
        result = self.parser.parse_channel(content, _channel_ruleset())

        self.assertEqual(len(result.orders), 1)
        order = result.orders[0]
        self.assertEqual(order.order_number, "M-1")
        self.assertEqual(order.shopping_mall, "몰A")
        self.assertEqual(order.product_code, "몰A::P100")
        self.assertEqual(order.memo, "부재시 문앞")
        self.assertEqual(order.order_name, "홍길동")
        self.assertEqual(order.quantity, 2)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.skipped_rows, 1)

        # Only rows that became orders are kept for re-export
        self.assertEqual(result.snapshot.data_rows, [["M-1", "P100", "홍길동", "2", "x"]])
        self.assertEqual(result.snapshot.prefix_rows[0][0], "몰A 주문 다운로드")

    def test_missing_bound_header(self):
        content = make_workbook([[], ["주문번호", "수령자", "수량"], ["M-1", "홍길동", 1]])
        with self.assertRaises(StructuralError) as ctx:
            self.parser.parse_channel(content, _channel_ruleset())
        self.assertIn("상품번호", str(ctx.exception))

    def test_display_name_required(self):
        with self.assertRaises(StructuralError):
            self.parser.parse_channel(make_workbook([["a"]]), _channel_ruleset(displayName=""))


if __name__ == "__main__":
    unittest.main()
