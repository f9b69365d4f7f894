"""
Canonical Fields - Single Source of Truth for order attributes.

This module defines:
1. The canonical field catalogue (key -> label, record attribute, value kind)
2. Which fields a destination sheet must fill (required set)
3. The default synonym seed used to resolve raw spreadsheet headers
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


# Value kinds drive display formatting at render time
KIND_TEXT = "text"
KIND_INT = "int"
KIND_CURRENCY = "currency"
KIND_DATE = "date"


@dataclass(frozen=True)
class FieldDefinition:
    """Defines one canonical order attribute."""
    key: str                 # Canonical key used in rule sets and tokens (e.g. 'recipientName')
    label: str               # Primary-export header text (e.g. '받는인')
    attr: str                # Attribute name on CanonicalOrderRecord
    kind: str = KIND_TEXT
    required: bool = False


class CanonicalFields:
    """Central registry of canonical order fields."""

    FIELDS: Dict[str, FieldDefinition] = {
        f.key: f for f in [
            FieldDefinition("productName", "상품명", "product_name", required=True),
            FieldDefinition("quantity", "수량", "quantity", kind=KIND_INT, required=True),
            FieldDefinition("orderName", "주문인", "order_name"),
            FieldDefinition("recipientName", "받는인", "recipient_name", required=True),
            FieldDefinition("orderPhone", "주문인연락처", "order_phone"),
            FieldDefinition("orderMobile", "주문인핸드폰", "order_mobile"),
            FieldDefinition("recipientPhone", "받는인연락처", "recipient_phone"),
            FieldDefinition("recipientMobile", "핸드폰", "recipient_mobile", required=True),
            FieldDefinition("postalCode", "우편", "postal_code"),
            FieldDefinition("address", "배송지", "address", required=True),
            FieldDefinition("memo", "전언", "memo"),
            FieldDefinition("shoppingMall", "쇼핑몰", "shopping_mall"),
            FieldDefinition("manufacturerName", "제조사", "manufacturer_name", required=True),
            FieldDefinition("courier", "택배", "courier"),
            FieldDefinition("trackingNumber", "송장번호", "tracking_number"),
            FieldDefinition("orderNumber", "주문번호", "order_number", required=True),
            FieldDefinition("mallOrderNumber", "쇼핑몰주문번호", "mall_order_number"),
            FieldDefinition("mallProductNumber", "쇼핑몰상품번호", "mall_product_number"),
            FieldDefinition("optionName", "옵션", "option_name"),
            FieldDefinition("fulfillmentType", "주문유형", "fulfillment_type"),
            FieldDefinition("paymentAmount", "결제금액", "payment_amount", kind=KIND_CURRENCY),
            FieldDefinition("productAbbr", "상품약어", "product_abbr"),
            FieldDefinition("cjDate", "씨제이날짜", "cj_date", kind=KIND_DATE),
            FieldDefinition("logisticsNote", "물류전달사항", "logistics_note"),
            FieldDefinition("collectedAt", "수집일시", "collected_at", kind=KIND_DATE),
            FieldDefinition("subOrderNumber", "부주문번호", "sub_order_number"),
            FieldDefinition("productCode", "품번코드", "product_code"),
            FieldDefinition("modelNumber", "모델번호", "model_number"),
            FieldDefinition("cost", "원가(상품)", "cost", kind=KIND_CURRENCY),
            FieldDefinition("shippingCost", "택배비", "shipping_cost", kind=KIND_CURRENCY),
        ]
    }

    _BY_LABEL: Dict[str, FieldDefinition] = {f.label: f for f in FIELDS.values()}

    @classmethod
    def get(cls, key: str) -> Optional[FieldDefinition]:
        return cls.FIELDS.get(key)

    @classmethod
    def get_by_label(cls, label: str) -> Optional[FieldDefinition]:
        return cls._BY_LABEL.get(label)

    @classmethod
    def resolve_direct(cls, text: str) -> Optional[str]:
        """A header equal to a field's own key or label resolves without any synonym."""
        if text in cls.FIELDS:
            return text
        definition = cls._BY_LABEL.get(text)
        return definition.key if definition else None

    @classmethod
    def keys(cls) -> List[str]:
        return list(cls.FIELDS.keys())

    @classmethod
    def required_keys(cls) -> List[str]:
        return [f.key for f in cls.FIELDS.values() if f.required]

    @classmethod
    def label_for(cls, key: str) -> str:
        definition = cls.FIELDS.get(key)
        return definition.label if definition else key


# Default synonym seed (standard key -> alternate header texts).
# Loaded when the settings file does not carry its own synonym list.
DEFAULT_SYNONYMS: Dict[str, List[str]] = {
    "productName": ["상품", "품명", "품목명", "주문내역", "주문내역-1"],
    "quantity": ["주문수량", "택배수량", "qty", "갯수", "개수"],
    "orderName": ["주문자", "주문자명", "보내는분", "보내시는분", "보내는사람"],
    "recipientName": ["받는사람", "수취인", "수취인명", "인수자", "받으시는분", "받는분", "고객명"],
    "orderPhone": ["주문인전화", "보내는전화", "보내시는분전화", "주문자전화"],
    "orderMobile": ["주문인휴대폰", "보내는분핸드폰", "주문자휴대폰"],
    "recipientPhone": ["받는인전화", "받는집전화", "받으시는분전화", "수취인전화", "전화1"],
    "recipientMobile": [
        "받는인핸드폰", "받는휴대폰", "받는분핸드폰", "수취인휴대폰", "수취인연락처",
        "휴대폰번호", "휴대전화", "전화2", "연락처",
    ],
    "postalCode": ["우편번호", "받는분우편번호", "수취인우편번호", "zipcode"],
    "address": ["주소", "받는주소", "수취인주소", "배송주소", "받는분총주소", "받으시는분주소", "상세주소"],
    "memo": ["배송메시지", "배송메모", "주문메모", "고객배송요청사항", "배송요청메모", "특기사항", "메모", "비고"],
    "shoppingMall": ["사이트", "판매처", "몰"],
    "manufacturerName": ["업체명", "공급사", "거래처"],
    "courier": ["택배사", "배송업체", "운송업체"],
    "trackingNumber": ["운송장번호", "운송장", "송장"],
    "orderNumber": ["사방넷주문번호", "통합주문번호", "배송번호"],
    "optionName": ["옵션명", "단품상세", "단품명"],
    "fulfillmentType": ["F", "배송유형", "출고유형"],
    "paymentAmount": ["판매가", "금액", "결제금액(부가세포함)"],
    "productCode": ["상품코드", "자체상품코드", "단품코드"],
    "cost": ["원가", "공급금액", "매입가", "원가(상품)*수량"],
    "shippingCost": ["배송비", "배송료", "운송비"],
}
