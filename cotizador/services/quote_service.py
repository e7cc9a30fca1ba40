"""Quote service: quotes, their header and line items."""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cotizador.exceptions import BusinessLogicError, NotFoundError
from cotizador.models import Customer, Quote, QuoteItem, QuoteState, HEADER_FIELDS
from cotizador.principal import Principal
from cotizador.services.lock_service import ensure_lock_held
from cotizador.services.totals_service import DEFAULT_TAX_RATE, compute_totals
from cotizador.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

# Transitions a user may request; "converted" is only reached through the ERP.
STATE_TRANSITIONS = {
    QuoteState.CREATED.value: {QuoteState.SENT.value, QuoteState.APPROVED.value,
                               QuoteState.REJECTED.value, QuoteState.ARCHIVED.value},
    QuoteState.SENT.value: {QuoteState.APPROVED.value, QuoteState.REJECTED.value,
                            QuoteState.CREATED.value, QuoteState.ARCHIVED.value},
    QuoteState.APPROVED.value: {QuoteState.SENT.value, QuoteState.REJECTED.value, QuoteState.ARCHIVED.value},
    QuoteState.REJECTED.value: {QuoteState.CREATED.value, QuoteState.ARCHIVED.value},
    QuoteState.CONVERTED.value: {QuoteState.ARCHIVED.value},
    QuoteState.ARCHIVED.value: set(),
}

def generate_quote_number(session: Session, now: Optional[datetime] = None) -> str:
    """Generate a unique quote number: COT-YYYYMMDD-HHMMSS-NNNN."""
    now = now or datetime.now()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    count = session.query(Quote).filter(Quote.created_at >= today_start).count()
    return f"COT-{now.strftime('%Y%m%d-%H%M%S')}-{str(count + 1).zfill(4)}"


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise BusinessLogicError(f'Fecha inválida: {value}')


def parse_header(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validated header fields present in ``data``."""
    values = {}
    for field in HEADER_FIELDS:
        if field not in data:
            continue
        raw = data[field]
        if field == 'general_discount_pct':
            pct = to_decimal(raw, None)
            if pct is None or not (0 <= pct <= 100):
                raise BusinessLogicError('La bonificación general debe estar entre 0 y 100.')
            values[field] = pct
        elif field == 'valid_until':
            values[field] = _parse_date(raw)
        elif field == 'currency':
            currency = (raw or 'ARS').strip().upper()
            if len(currency) != 3:
                raise BusinessLogicError('Moneda inválida.')
            values[field] = currency
        else:
            values[field] = str(raw).strip() if raw is not None and str(raw).strip() else None
    return values


def _item_values(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validated item fields present in ``data``.

    With ``partial=False`` the code and quantity are required and missing
    numeric fields get their defaults.
    """
    values = {}

    if 'code' in data or not partial:
        code = str(data.get('code') or '').strip()
        if not code:
            raise BusinessLogicError('El código de artículo es obligatorio.')
        values['code'] = code

    if 'description' in data or not partial:
        values['description'] = str(data.get('description') or '').strip()

    if 'quantity' in data or not partial:
        quantity = to_decimal(data.get('quantity'), None)
        if quantity is None or quantity <= 0:
            raise BusinessLogicError('La cantidad debe ser mayor a 0.')
        values['quantity'] = quantity

    if 'unit_price' in data or not partial:
        unit_price = to_decimal(data.get('unit_price'), None)
        if unit_price is None or unit_price < 0:
            raise BusinessLogicError('El precio unitario no puede ser negativo.')
        values['unit_price'] = unit_price

    if 'discount_pct' in data or not partial:
        discount = to_decimal(data.get('discount_pct'), None)
        if discount is None or not (0 <= discount <= 100):
            raise BusinessLogicError('La bonificación debe estar entre 0 y 100.')
        values['discount_pct'] = discount

    if 'tax_rate' in data or not partial:
        raw = data.get('tax_rate')
        tax_rate = DEFAULT_TAX_RATE if raw is None or raw == '' else to_decimal(raw, None)
        if tax_rate is None or tax_rate < 0:
            raise BusinessLogicError('La alícuota de IVA no puede ser negativa.')
        values['tax_rate'] = tax_rate

    if 'metadata' in data:
        values['item_metadata'] = data.get('metadata')

    return values


def get_quote(session: Session, quote_id: int) -> Quote:
    quote = session.query(Quote).filter(Quote.id == quote_id).first()
    if not quote:
        raise NotFoundError(f'Cotización {quote_id} no encontrada.')
    return quote


def list_quotes(session: Session, state: Optional[str] = None, customer_code: Optional[str] = None,
                limit: int = 100) -> List[Quote]:
    query = session.query(Quote)
    if state:
        query = query.filter(Quote.state == state)
    if customer_code:
        query = query.filter(Quote.customer_code == customer_code)
    return query.order_by(Quote.id.desc()).limit(limit).all()


def _renumber(quote: Quote) -> None:
    for position, item in enumerate(sorted(quote.items, key=lambda i: (i.order, i.id or 0)), start=1):
        item.order = position


def replace_items(quote: Quote, items: List[Dict[str, Any]]) -> None:
    """Overwrite the live items of a quote with ``items`` (positions 1..n)."""
    quote.items[:] = []
    for position, data in enumerate(items, start=1):
        values = _item_values(data)
        values.setdefault('item_metadata', data.get('metadata'))
        quote.items.append(QuoteItem(order=position, **values))


def create_quote(session: Session, data: Dict[str, Any], principal: Principal,
                 valid_days: int = 15) -> Quote:
    """
    Create a quote with its initial items as version 1.

    Args:
        data: Header fields plus an optional ``items`` list
        valid_days: Default validity when ``valid_until`` is not given
    """
    header = parse_header(data)
    items = data.get('items') or []
    if not isinstance(items, list):
        raise BusinessLogicError('Los artículos deben enviarse como lista.')

    try:
        quote = Quote(
            quote_number=generate_quote_number(session),
            version=1,
            state=QuoteState.CREATED.value,
            currency='ARS',
            general_discount_pct=Decimal('0'),
            created_by=principal.id,
            version_reason='Versión inicial',
            version_modified_by=principal.id,
            version_modified_by_name=principal.name,
            version_modified_at=datetime.now(),
            created_at=datetime.now(),
            updated_at=datetime.now(),
        )
        for field, value in header.items():
            setattr(quote, field, value)
        if quote.valid_until is None:
            quote.valid_until = date.today() + timedelta(days=valid_days)

        replace_items(quote, items)
        session.add(quote)
        session.commit()
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise

    logger.info(f"Quote {quote.quote_number} created by user {principal.id} with {len(items)} items")
    return quote


def update_header(session: Session, quote_id: int, data: Dict[str, Any], principal: Principal) -> Quote:
    """Update header fields (and optionally the state) of a locked quote."""
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)

    values = parse_header(data)
    try:
        for field, value in values.items():
            setattr(quote, field, value)
        if data.get('state'):
            _apply_state(quote, data['state'])
        quote.updated_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise
    return quote


def _apply_state(quote: Quote, state: str) -> None:
    state = str(state).lower()
    if state == quote.state:
        return
    valid = {s.value for s in QuoteState}
    if state not in valid:
        raise BusinessLogicError(f'Estado inválido: {state}')
    if state not in STATE_TRANSITIONS.get(quote.state, set()):
        raise BusinessLogicError(f'No se puede pasar de "{quote.state}" a "{state}".')
    quote.state = state


def _get_item(quote: Quote, item_id: int) -> QuoteItem:
    item = next((i for i in quote.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError(f'Artículo {item_id} no encontrado en la cotización {quote.id}.')
    return item


def add_item(session: Session, quote_id: int, data: Dict[str, Any], principal: Principal) -> QuoteItem:
    """
    Add an item to a locked quote.

    ``data['order']`` is the 1-based position to insert at; later items
    shift down. Without it, the item is appended.
    """
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)
    values = _item_values(data)

    try:
        ordered = sorted(quote.items, key=lambda i: i.order)
        position = data.get('order')
        position = int(position) if position not in (None, '') else len(ordered) + 1
        position = max(1, min(position, len(ordered) + 1))

        for existing in ordered:
            if existing.order >= position:
                existing.order += 1

        item = QuoteItem(order=position, **values)
        quote.items.append(item)
        _renumber(quote)
        quote.updated_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise
    return item


def update_item(session: Session, quote_id: int, item_id: int, data: Dict[str, Any],
                principal: Principal) -> QuoteItem:
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)
    item = _get_item(quote, item_id)
    values = _item_values(data, partial=True)

    try:
        for field, value in values.items():
            setattr(item, field, value)
        quote.updated_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise
    return item


def delete_item(session: Session, quote_id: int, item_id: int, principal: Principal) -> None:
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)
    item = _get_item(quote, item_id)

    try:
        quote.items.remove(item)
        _renumber(quote)
        quote.updated_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise


def reorder_items(session: Session, quote_id: int, item_ids: List[int], principal: Principal) -> Quote:
    """
    Set the item order of a locked quote in one operation.

    Raises:
        BusinessLogicError: unless ``item_ids`` lists every item exactly once
    """
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)

    try:
        item_ids = [int(i) for i in item_ids or []]
    except (TypeError, ValueError):
        raise BusinessLogicError('Orden de artículos inválido.')

    by_id = {item.id: item for item in quote.items}
    if len(item_ids) != len(by_id) or set(item_ids) != set(by_id):
        raise BusinessLogicError('El nuevo orden debe incluir todos los artículos una sola vez.')

    try:
        for position, item_id in enumerate(item_ids, start=1):
            by_id[item_id].order = position
        quote.updated_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise
    return quote


def get_customer_data(session: Session, customer_code: Optional[str]) -> Optional[Dict[str, Any]]:
    """Customer with its withholding rules, as the totals calculator expects it."""
    if not customer_code:
        return None
    customer = session.query(Customer).filter(Customer.code == customer_code).first()
    return customer.to_dict() if customer else None


def quote_totals(session: Session, quote_id: int, default_tax_rate: Any = DEFAULT_TAX_RATE) -> Dict[str, Any]:
    """Totals of the live version, with the customer's percepciones."""
    quote = get_quote(session, quote_id)
    customer = get_customer_data(session, quote.customer_code)
    items = [item.to_dict() for item in quote.items]
    return compute_totals(quote.header(), items, customer, to_decimal(default_tax_rate, DEFAULT_TAX_RATE))
