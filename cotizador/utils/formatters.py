"""
Utilidades de formateo para los PDFs de cotizaciones.
Números y fechas en estilo argentino: punto para miles, coma para decimales.
"""
from decimal import Decimal
from datetime import date, datetime
from typing import Union, Optional
from cotizador.utils.number_format import to_decimal


def _group_thousands(integer_part: str) -> str:
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    return '.'.join(groups)[::-1]


def num_ar(value: Union[int, float, Decimal, str, None], decimals: Optional[int] = None) -> str:
    """
    Formatea un número en estilo argentino, sin decimales no significativos.

    Examples:
        num_ar(1500) -> "1.500"
        num_ar(1500.5) -> "1.500,5"
        num_ar(12.500) -> "12,5"
        num_ar(None) -> "-"
    """
    num = to_decimal(value, None)
    if num is None or not num.is_finite():
        return "-"
    if num == 0:
        return "0"
    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals)

    num_str = format(num, 'f')
    sign = '-' if num_str.startswith('-') else ''
    num_str = num_str.lstrip('-')
    integer_part, _, decimal_part = num_str.partition('.')
    decimal_part = decimal_part.rstrip('0')

    if decimal_part:
        return f"{sign}{_group_thousands(integer_part)},{decimal_part}"
    return f"{sign}{_group_thousands(integer_part)}"


def money_ar_2(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formatea un monto con exactamente 2 decimales (ej: 1.500,00).
    Devuelve "-" si es inválido.
    """
    num = to_decimal(value, None)
    if num is None or not num.is_finite():
        return "-"
    num = num.quantize(Decimal('0.01'))

    sign = "-" if num < 0 else ""
    integer_part, decimal_part = f"{abs(num):.2f}".split(".")
    return f"{sign}{_group_thousands(integer_part)},{decimal_part}"


def date_ar(value: Union[date, datetime, str, None]) -> str:
    """
    Formatea una fecha como DD/MM/YYYY.

    Acepta también fechas ISO tal como quedan guardadas en las versiones.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return "-"
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return "-"
    return value.strftime("%d/%m/%Y")
