# This module contains utilities for cell text extraction, date parsing and value formatting.

import datetime
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

# The python-dateutil library is required for free-form date parsing.
# Install it using: pip install python-dateutil
from dateutil.parser import parse, ParserError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def excel_number_to_datetime(excel_num: Any) -> Optional[datetime.datetime]:
    """Converts an Excel date number to a Python datetime object."""
    try:
        excel_num = float(excel_num)
        # Excel's 1900 leap year bug needs to be accounted for.
        if excel_num > 59:
            excel_num -= 1
        delta = datetime.timedelta(days=excel_num - 1)
        return datetime.datetime(1900, 1, 1) + delta
    except (ValueError, TypeError, OverflowError):
        return None


def cell_text(value: Any) -> str:
    """
    Plain text of a raw cell value.

    Rich text collapses to its joined runs (str() of CellRichText), formulas are
    expected to be loaded with data_only=True so the cached result arrives here,
    and dates render as ISO dates.
    """
    if value is None:
        return ""
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_whitespace(text: str) -> str:
    """Replace non-breaking spaces, collapse runs of whitespace, trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.replace("\u00a0", " ")).strip()


def parse_date_value(value: Any) -> Optional[datetime.datetime]:
    """Intelligently parses a string, Excel serial number or date into a datetime."""
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return excel_number_to_datetime(value) if value >= 1 else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return parse(text)
    except (ParserError, ValueError, OverflowError):
        logger.debug(f"Unparseable date value: {text!r}")
        return None


def format_date(value: Any) -> str:
    """YYYY-MM-DD for anything date-like, the original text otherwise."""
    parsed = parse_date_value(value)
    if parsed is None:
        return cell_text(value)
    return parsed.strftime("%Y-%m-%d")


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # Round away float noise such as 0.30000000000000004
        value_str = f"{value:.14f}".rstrip("0").rstrip(".")
        return Decimal(value_str) if value_str and value_str != "-" else None
    text = str(value).strip().replace(",", "").replace("원", "").replace("₩", "")
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        logger.debug(f"Could not convert {value!r} to a number")
        return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """Numeric cell text (with thousands separators or a currency sign) to Decimal; NaN and Infinity give None."""
    number = _parse_decimal(value)
    if number is not None and not number.is_finite():
        logger.debug(f"Ignoring non-finite number {value!r}")
        return None
    return number


def to_int(value: Any, default: int = 0) -> int:
    number = to_decimal(value)
    if number is None:
        return default
    return int(number)


def format_currency(value: Any) -> str:
    """Thousands-grouped integer amount, e.g. 12,000. Non-numeric text passes through."""
    number = to_decimal(value)
    if number is None:
        return cell_text(value)
    return f"{int(number.to_integral_value()):,}"


_QUANTITY_SUFFIX_RE = re.compile(r"\s*\[\d+\]\s*$")
_DOTS_ONLY_RE = re.compile(r"^[.\s]+$")
_DASHES_ONLY_RE = re.compile(r"^[-–—]+$")
_MANUFACTURER_PLACEHOLDERS = {"미지정", "미등록", "없음", "n/a", "na"}


def normalize_option_name(raw: Any) -> str:
    """
    Canonical form of an option name used as a mapping key.

    '블랙 / L  [2]' -> '블랙 / L'; dot-only values and '없음' mean no option.
    """
    text = normalize_whitespace(cell_text(raw))
    if not text:
        return ""
    text = _QUANTITY_SUFFIX_RE.sub("", text).strip()
    if not text or _DOTS_ONLY_RE.match(text) or text == "없음":
        return ""
    return text


def normalize_manufacturer_name(raw: Any) -> Optional[str]:
    """Manufacturer text from a source file, or None for placeholders like '미지정' or '-'."""
    name = normalize_whitespace(cell_text(raw))
    if not name or _DASHES_ONLY_RE.match(name):
        return None
    if name.lower() in _MANUFACTURER_PLACEHOLDERS:
        return None
    return name
