"""
Cell Value Resolver - evaluates one output cell for one canonical record.

Field-bound columns take the record's value, formatted by field kind; an
empty value falls back to the field's template when one is configured.
Template-bound columns evaluate their compiled template. Empty columns stay
empty. No cell depends on another cell of the same row.
"""

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional

from ordersheet.blueprint.fields import CanonicalFields, KIND_CURRENCY, KIND_DATE, KIND_INT
from ordersheet.mapping.ruleset import (
    ColumnRule,
    EmptyColumnRule,
    FieldColumnRule,
    MappingRuleSet,
    TemplateColumnRule,
)
from ordersheet.models import CanonicalOrderRecord
from ordersheet.utils.text import cell_text, format_currency, format_date, to_decimal, to_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderContext:
    """Batch-level values available to templates as computed variables."""
    manufacturer_name: str = ""
    order_date: datetime.date = None
    total_quantity: int = 0
    total_amount: Decimal = Decimal("0")
    order_count: int = 0

    @classmethod
    def for_batch(cls, records: Iterable[CanonicalOrderRecord], manufacturer_name: str = "",
                  today: Optional[datetime.date] = None) -> "RenderContext":
        records = list(records)
        return cls(
            manufacturer_name=manufacturer_name,
            order_date=today or datetime.date.today(),
            total_quantity=sum(r.quantity or 0 for r in records),
            total_amount=sum((to_decimal(r.payment_amount) or Decimal("0") for r in records), Decimal("0")),
            order_count=len(records),
        )

    def computed(self, name: str, record: CanonicalOrderRecord, row_index: int) -> Optional[str]:
        order_date = self.order_date or datetime.date.today()
        if name in ("today", "date", "orderDate"):
            return order_date.strftime("%Y-%m-%d")
        if name == "fileDate":
            return order_date.strftime("%Y%m%d")
        if name == "manufacturerName":
            return self.manufacturer_name or (record.manufacturer_name or "")
        if name == "totalQuantity":
            return str(self.total_quantity)
        if name == "totalAmount":
            return format_currency(self.total_amount)
        if name == "orderCount":
            return str(self.order_count)
        if name == "rowIndex":
            return str(row_index)
        return None


class CellValueResolver:
    """Resolves cells for one rule set."""

    def __init__(self, ruleset: MappingRuleSet):
        self.ruleset = ruleset

    def field_value(self, record: CanonicalOrderRecord, field_key: str) -> Any:
        """Record value formatted for the destination cell ("" when empty)."""
        definition = CanonicalFields.get(field_key) or CanonicalFields.get_by_label(field_key)
        if definition is None:
            return ""
        raw = getattr(record, definition.attr, None)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return ""

        if definition.kind == KIND_DATE:
            return format_date(raw)
        if definition.kind == KIND_CURRENCY:
            if self.ruleset.currency_as_number:
                number = to_decimal(raw)
                if number is None:
                    return cell_text(raw)
                return int(number) if number == number.to_integral_value() else float(number)
            return format_currency(raw)
        if definition.kind == KIND_INT:
            return to_int(raw)
        return cell_text(raw)

    def _lookup(self, record: CanonicalOrderRecord, context: RenderContext,
                row_index: int) -> Callable[[str], Any]:
        def lookup(name: str) -> Any:
            computed = context.computed(name, record, row_index)
            if computed:
                return computed
            value = self.field_value(record, name)
            return cell_text(value) if value != "" else ""
        return lookup

    def resolve(self, rule: ColumnRule, record: CanonicalOrderRecord, context: RenderContext,
                row_index: int = 1) -> Any:
        if isinstance(rule, FieldColumnRule):
            value = self.field_value(record, rule.field)
            if value != "":
                return value
            fallback = self.ruleset.fallback_for(rule.field)
            if fallback is None:
                return ""
            return fallback.render(self._lookup(record, context, row_index))

        if isinstance(rule, TemplateColumnRule):
            return rule.template.render(self._lookup(record, context, row_index))

        if isinstance(rule, EmptyColumnRule):
            return ""

        raise TypeError(f"Unknown column rule: {rule!r}")

    def resolve_row(self, record: CanonicalOrderRecord, context: RenderContext, row_index: int,
                    rules: Optional[Dict[str, ColumnRule]] = None) -> Dict[str, Any]:
        """Column letter -> value for every rule of the rule set."""
        rules = rules if rules is not None else self.ruleset.column_rules()
        return {letter: self.resolve(rule, record, context, row_index) for letter, rule in rules.items()}
