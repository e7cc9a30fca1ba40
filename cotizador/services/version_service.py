"""
Quote versioning: history, restore and combine.

The live quote row and its items are always the current version. Every
operation that starts a new version first archives the live content as an
immutable QuoteVersion, then bumps ``quote.version``.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from cotizador.exceptions import BusinessLogicError, MergeAnalysisError, NotFoundError
from cotizador.models import HEADER_FIELDS, Product, Quote, QuoteVersion
from cotizador.principal import Principal
from cotizador.services import history_service, merge_service
from cotizador.services.change_tracking import clean_item
from cotizador.services.lock_service import ensure_lock_held
from cotizador.services.quote_service import get_customer_data, get_quote, parse_header, replace_items
from cotizador.services.totals_service import compute_totals
from cotizador.utils.number_format import to_number

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def _live_items(quote: Quote) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in quote.items]


def _total(session: Session, header: Dict[str, Any], items: List[Dict[str, Any]]) -> Decimal:
    customer = get_customer_data(session, header.get('customer_code'))
    total = compute_totals(header, items, customer)['total']
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def _current_entry(session: Session, quote: Quote) -> Dict[str, Any]:
    header = quote.header()
    items = _live_items(quote)
    return {
        'version': quote.version,
        'reason': quote.version_reason,
        'modified_by': quote.version_modified_by,
        'modified_by_name': quote.version_modified_by_name,
        'modified_at': to_number(quote.version_modified_at or quote.updated_at),
        'header': header,
        'items': items,
        'total': to_number(_total(session, header, items)),
        'current': True,
    }


def list_versions(session: Session, quote_id: int) -> List[Dict[str, Any]]:
    """Archived versions (oldest first) followed by the live one flagged ``current``."""
    quote = get_quote(session, quote_id)
    versions = [v.to_dict() for v in quote.versions]
    versions.append(_current_entry(session, quote))
    return versions


def get_version_content(session: Session, quote: Quote, version: int) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Header and items of any version, archived or live."""
    if version == quote.version:
        return quote.header(), _live_items(quote)
    snapshot = session.query(QuoteVersion).filter(
        QuoteVersion.quote_id == quote.id,
        QuoteVersion.version == version
    ).first()
    if not snapshot:
        raise NotFoundError(f'La versión {version} de la cotización {quote.id} no existe.')
    return dict(snapshot.header or {}), list(snapshot.items or [])


def refresh_prices(session: Session, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Copy of ``items`` with unit prices taken from the active catalog.

    Items whose product is missing, inactive or unpriced keep their
    historical price.
    """
    codes = {item.get('code') for item in items}
    products = session.query(Product).filter(Product.code.in_(codes), Product.active.is_(True)).all()
    prices = {p.code: p.unit_price for p in products if p.unit_price is not None}

    refreshed = []
    for item in items:
        item = dict(item)
        if item.get('code') in prices:
            item['unit_price'] = to_number(prices[item['code']])
        refreshed.append(item)

    logger.info(f"[VERSION] Prices refreshed for {len(prices)} of {len(codes)} codes")
    return refreshed


def _archive_current(session: Session, quote: Quote) -> QuoteVersion:
    header = quote.header()
    items = _live_items(quote)
    snapshot = QuoteVersion(
        quote_id=quote.id,
        version=quote.version,
        reason=quote.version_reason,
        modified_by=quote.version_modified_by,
        modified_by_name=quote.version_modified_by_name,
        modified_at=quote.version_modified_at or datetime.now(),
        header=header,
        items=items,
        total=_total(session, header, items),
    )
    session.add(snapshot)
    return snapshot


def _start_version(session: Session, quote: Quote, reason: str, principal: Principal) -> None:
    """Archive the live content and open the next version number."""
    _archive_current(session, quote)
    now = datetime.now()
    quote.version += 1
    quote.version_reason = reason
    quote.version_modified_by = principal.id
    quote.version_modified_by_name = principal.name
    quote.version_modified_at = now
    quote.updated_at = now


def _require_reason(reason: Optional[str], error=BusinessLogicError) -> str:
    reason = (reason or '').strip()
    if not reason:
        raise error('Debe indicar el motivo de la nueva versión.')
    return reason


def create_version(session: Session, quote_id: int, principal: Principal, reason: Optional[str],
                   update_prices: bool = False) -> Quote:
    """
    Start a new version of a locked quote.

    The live content is archived under the current number; the caller's
    next item changes land in the new version.
    """
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)
    reason = _require_reason(reason)

    try:
        _start_version(session, quote, reason, principal)
        if update_prices:
            replace_items(quote, refresh_prices(session, _live_items(quote)))
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[VERSION] Quote {quote_id} v{quote.version} created by user {principal.id}: {reason}")
    return quote


def restore_version(session: Session, quote_id: int, version: int, principal: Principal,
                    reason: Optional[str] = None, update_prices: bool = False) -> Quote:
    """Make an archived version the content of a new current version."""
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)

    if version == quote.version:
        raise BusinessLogicError(f'La versión {version} ya es la versión actual.')
    header, items = get_version_content(session, quote, version)
    reason = (reason or '').strip() or f'Restaurada desde la versión {version}'
    items = [clean_item(item) for item in items]
    if update_prices:
        items = refresh_prices(session, items)

    try:
        _start_version(session, quote, reason, principal)
        for field, value in parse_header(_snapshot_header(header)).items():
            setattr(quote, field, value)
        replace_items(quote, items)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[VERSION] Quote {quote_id} restored v{version} as v{quote.version}")
    return quote


def _snapshot_header(header: Dict[str, Any]) -> Dict[str, Any]:
    """Header fields of a JSON snapshot, with missing numbers back at their defaults."""
    header = {field: header.get(field) for field in HEADER_FIELDS}
    if header.get('general_discount_pct') is None:
        header['general_discount_pct'] = 0
    return header


def _two_versions(session: Session, quote: Quote, version_a: Any, version_b: Any):
    try:
        version_a, version_b = int(version_a), int(version_b)
    except (TypeError, ValueError):
        raise MergeAnalysisError('Debe indicar dos versiones a comparar.')
    if version_a == version_b:
        raise MergeAnalysisError('Seleccione dos versiones distintas.')
    return (version_a, version_b,
            get_version_content(session, quote, version_a),
            get_version_content(session, quote, version_b))


def analyze(session: Session, quote_id: int, version_a: Any, version_b: Any) -> Dict[str, Any]:
    """Code-level classification of two versions, with their items for display."""
    quote = get_quote(session, quote_id)
    version_a, version_b, (header_a, items_a), (header_b, items_b) = _two_versions(
        session, quote, version_a, version_b)

    analysis = merge_service.analyze_versions(items_a, items_b)
    analysis.update({
        'version_a': version_a,
        'version_b': version_b,
        'items_a': items_a,
        'items_b': items_b,
        'header_a': header_a,
        'header_b': header_b,
    })
    return analysis


def combine(session: Session, quote_id: int, principal: Principal, data: Dict[str, Any]) -> Quote:
    """
    Write the combination of two versions as the new current version.

    Args:
        data: ``version_a``, ``version_b``, ``reason``, optional
            ``selections`` (defaults from ``default_version``),
            ``commercial_fields_source`` ("A" or "B") and ``update_prices``

    Raises:
        MergeAnalysisError: missing reason, same or unknown versions,
            or nothing selected; nothing is written
    """
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)

    reason = _require_reason(data.get('reason'), MergeAnalysisError)
    try:
        version_a, version_b, (header_a, items_a), (header_b, items_b) = _two_versions(
            session, quote, data.get('version_a'), data.get('version_b'))
    except NotFoundError as e:
        raise MergeAnalysisError(e.message)

    selections = data.get('selections', data.get('item_selections'))
    if selections is None:
        analysis = merge_service.analyze_versions(items_a, items_b)
        selections = merge_service.initial_selections(analysis, data.get('default_version') or 'B')

    items = merge_service.combine_items(items_a, items_b, selections)
    commercial = merge_service.select_commercial_fields(
        header_a, header_b, data.get('commercial_fields_source') or 'B')
    if commercial.get('general_discount_pct') is None:
        commercial['general_discount_pct'] = 0
    commercial = parse_header(commercial)
    if data.get('update_prices'):
        items = refresh_prices(session, items)

    try:
        _start_version(session, quote, reason, principal)
        for field, value in commercial.items():
            setattr(quote, field, value)
        replace_items(quote, items)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"[VERSION] Quote {quote_id} combined v{version_a}+v{version_b} into v{quote.version} "
        f"({len(items)} items)"
    )
    return quote


def version_diff(session: Session, quote_id: int, version: int) -> Dict[str, Any]:
    """What changed in ``version`` relative to the version before it."""
    quote = get_quote(session, quote_id)
    header, items = get_version_content(session, quote, version)
    if version > 1:
        previous_header, previous_items = get_version_content(session, quote, version - 1)
    else:
        previous_header, previous_items = {}, []

    diff = history_service.compare_items(items, previous_items)
    return {
        'version': version,
        'previous_version': version - 1 if version > 1 else None,
        'items': diff,
        'summary': history_service.summarize(diff),
        'commercial_fields': history_service.compare_commercial_fields(header, previous_header) if version > 1 else [],
    }
