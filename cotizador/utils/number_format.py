"""Number normalization helpers shared by the quote algorithms and the API."""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_decimal(value: Any, default: Optional[Decimal] = Decimal('0')) -> Optional[Decimal]:
    """
    Convert an API/UI value to Decimal.

    Accepts Decimal, int, float and numeric strings (a comma is read as the
    decimal separator). None, empty strings, unparseable values and
    non-finite numbers (NaN, Infinity) return ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip().replace(',', '.')
        if not value:
            return default
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            return default
    return value if value.is_finite() else default


def normalize_field(value: Any) -> str:
    """
    Normalize a field value to a comparison string.

    Numbers compare by value, so 5, 5.0 and "5.00" all normalize to "5".
    Anything else compares as its stripped text; None is the empty string.
    """
    if value is None:
        return ''
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        number = to_decimal(value, None)
    else:
        text = str(value).strip()
        number = to_decimal(text, None) if text else None
        if number is None:
            return text
    if number is None or not number.is_finite():
        return str(value).strip()
    if number == number.to_integral_value():
        return str(number.quantize(Decimal('1')))
    return format(number.normalize(), 'f')


def to_number(value: Any) -> Any:
    """Render Decimals as JSON numbers and dates as ISO strings."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
