"""
Domain records shared across ingestion, rendering and sending.
"""

import datetime
from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ordersheet.blueprint.fields import CanonicalFields


@dataclass
class CanonicalOrderRecord:
    """One normalized order line. `order_number` is the immutable identity."""
    order_number: str
    sub_order_number: str = ""
    mall_order_number: str = ""
    product_name: str = ""
    option_name: str = ""
    quantity: int = 1
    product_code: str = ""
    product_abbr: str = ""
    mall_product_number: str = ""
    model_number: str = ""
    order_name: str = ""
    recipient_name: str = ""
    order_phone: str = ""
    order_mobile: str = ""
    recipient_phone: str = ""
    recipient_mobile: str = ""
    postal_code: str = ""
    address: str = ""
    memo: str = ""
    courier: str = ""
    tracking_number: str = ""
    logistics_note: str = ""
    payment_amount: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    shipping_cost: Optional[Decimal] = None
    manufacturer_id: Optional[str] = None
    manufacturer_name: Optional[str] = None
    shopping_mall: str = ""
    fulfillment_type: str = ""
    collected_at: Optional[datetime.datetime] = None
    cj_date: Optional[datetime.date] = None
    created_at: Optional[datetime.datetime] = None
    status: str = "pending"

    def __setattr__(self, name, value):
        # Identity is fixed once the record exists
        if name == "order_number" and "order_number" in self.__dict__:
            raise AttributeError("order_number is immutable")
        super().__setattr__(name, value)

    def get_field(self, key: str) -> Any:
        """Value of a canonical field by key ('recipientName') or label ('받는인')."""
        definition = CanonicalFields.get(key) or CanonicalFields.get_by_label(key)
        if definition is None:
            return None
        return getattr(self, definition.attr, None)

    def to_field_map(self) -> Dict[str, Any]:
        return {f.key: getattr(self, f.attr, None) for f in CanonicalFields.FIELDS.values()}

    @classmethod
    def from_field_map(cls, values: Dict[str, Any]) -> "CanonicalOrderRecord":
        kwargs = {}
        known = {f.name for f in fields(cls)}
        for key, value in values.items():
            definition = CanonicalFields.get(key)
            attr = definition.attr if definition else key
            if attr in known:
                kwargs[attr] = value
        return cls(**kwargs)


@dataclass
class Manufacturer:
    id: str
    name: str
    email: str = ""
    cc_email: str = ""


@dataclass(frozen=True)
class ProductMapping:
    product_code: str
    manufacturer_id: str


@dataclass(frozen=True)
class OptionMapping:
    product_key: str  # product code, or product name when the source has no code
    option_name: str
    manufacturer_id: str


@dataclass
class SendRecord:
    """Append-only log entry of one order-sheet send."""
    manufacturer_id: str
    sent_at: datetime.datetime
    recipient_addresses: List[str] = field(default_factory=list)
    manufacturer_name: str = ""
    email: str = ""
    reason: Optional[str] = None
    order_count: int = 0
    total_amount: Decimal = Decimal("0")
    status: str = "success"
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manufacturerId": self.manufacturer_id,
            "manufacturerName": self.manufacturer_name,
            "email": self.email,
            "recipientAddresses": list(self.recipient_addresses),
            "sentAt": self.sent_at.isoformat(),
            "reason": self.reason,
            "orderCount": self.order_count,
            "totalAmount": str(self.total_amount),
            "status": self.status,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SendRecord":
        return cls(
            manufacturer_id=str(data["manufacturerId"]),
            manufacturer_name=data.get("manufacturerName", ""),
            email=data.get("email", ""),
            recipient_addresses=list(data.get("recipientAddresses") or []),
            sent_at=datetime.datetime.fromisoformat(data["sentAt"]),
            reason=data.get("reason"),
            order_count=int(data.get("orderCount") or 0),
            total_amount=Decimal(str(data.get("totalAmount") or "0")),
            status=data.get("status", "success"),
            error_message=data.get("errorMessage"),
        )
