"""Quote totals: net, IVA, discounts and percepciones."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from cotizador.utils.number_format import to_decimal, to_number

DEFAULT_TAX_RATE = Decimal('21')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')


def calculate_withholdings(customer: Optional[Dict[str, Any]], net: Decimal, tax: Decimal) -> List[Dict[str, Any]]:
    """
    Compute the customer's percepciones on the final amounts.

    Each rule chooses its base ("NET" or "NET_TAX"), is skipped when the base
    is below its minimum taxable amount, and is discarded when the resulting
    amount is below its minimum withholding. Amounts are rounded to cents
    per rule.

    Args:
        customer: Customer data with a ``withholdings`` list (may be None)
        net: Net amount after every discount
        tax: IVA after every discount

    Returns:
        List of applied withholdings
    """
    if not customer or not customer.get('withholdings'):
        return []

    applied = []
    for rule in customer['withholdings']:
        base_type = (rule.get('base') or 'NET').upper()
        base = net + tax if base_type == 'NET_TAX' else net

        if base < to_decimal(rule.get('min_taxable')):
            continue

        rate = to_decimal(rule.get('rate'))
        amount = base * rate / HUNDRED

        if amount < to_decimal(rule.get('min_amount')):
            continue

        applied.append({
            'code': rule.get('code'),
            'description': rule.get('description'),
            'tax_type': rule.get('tax_type'),
            'base_type': base_type,
            'base': base,
            'rate': rate,
            'amount': amount.quantize(CENT, rounding=ROUND_HALF_UP),
        })

    return applied


def compute_totals(quote: Optional[Dict[str, Any]], items: List[Dict[str, Any]],
                   customer: Optional[Dict[str, Any]] = None,
                   default_tax_rate: Decimal = DEFAULT_TAX_RATE) -> Dict[str, Any]:
    """
    Compute quote totals.

    Order of operations (each stage feeds the next):
    1. Per item: price after item discount, accumulated net and IVA
    2. General discount as one factor over both net and IVA
    3. Percepciones over the final net / net + IVA
    4. Total = net + IVA + percepciones

    Deleted items are ignored. Pure and linear in the number of items.
    """
    net_before_general = Decimal('0')
    tax_before_general = Decimal('0')
    gross = Decimal('0')
    item_discount = Decimal('0')

    for item in items:
        if item.get('is_deleted'):
            continue
        quantity = to_decimal(item.get('quantity'))
        unit_price = to_decimal(item.get('unit_price'))
        discount_pct = to_decimal(item.get('discount_pct'))
        tax_rate = to_decimal(item.get('tax_rate'), default_tax_rate)

        effective_price = unit_price * (1 - discount_pct / HUNDRED)
        line_net = effective_price * quantity

        net_before_general += line_net
        tax_before_general += line_net * tax_rate / HUNDRED
        gross += unit_price * quantity
        item_discount += unit_price * quantity * discount_pct / HUNDRED

    general_discount_pct = to_decimal((quote or {}).get('general_discount_pct'))
    factor = 1 - general_discount_pct / HUNDRED
    net = net_before_general * factor
    tax = tax_before_general * factor
    subtotal = net + tax
    general_discount = (net_before_general + tax_before_general) - subtotal

    withholdings = calculate_withholdings(customer, net, tax)
    withholdings_total = sum((w['amount'] for w in withholdings), Decimal('0'))

    return {
        'gross': gross,
        'item_discount': item_discount,
        'net': net,
        'tax': tax,
        'subtotal': subtotal,
        'general_discount_pct': general_discount_pct,
        'general_discount': general_discount,
        'discount_total': item_discount + general_discount,
        'withholdings': withholdings,
        'withholdings_total': withholdings_total,
        'total': subtotal + withholdings_total,
    }


def serialize_totals(totals: Dict[str, Any]) -> Dict[str, Any]:
    """JSON form of compute_totals() output, amounts rounded to cents."""
    def money(value):
        return to_number(value.quantize(CENT, rounding=ROUND_HALF_UP))

    data = {key: money(value) for key, value in totals.items() if isinstance(value, Decimal)}
    data['general_discount_pct'] = to_number(totals['general_discount_pct'])
    data['withholdings'] = [
        {
            'code': w['code'],
            'description': w['description'],
            'tax_type': w['tax_type'],
            'base_type': w['base_type'],
            'base': money(w['base']),
            'rate': to_number(w['rate']),
            'amount': money(w['amount']),
        }
        for w in totals['withholdings']
    ]
    return data
