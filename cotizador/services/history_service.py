"""Version history diff for display: what changed between two versions."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from cotizador.utils.number_format import normalize_field, to_decimal

ADDED = 'added'
REMOVED = 'removed'
UNCHANGED = 'unchanged'
MODIFIED = 'modified'
MOVED = 'moved'
MOVED_MODIFIED = 'moved_modified'

ITEM_DIFF_FIELDS = ('quantity', 'unit_price', 'discount_pct')

HISTORY_HEADER_FIELDS = (
    'valid_until', 'sales_condition', 'price_list', 'document_series',
    'carrier_code', 'currency', 'general_discount_pct',
)

DISCOUNT_TOLERANCE = Decimal('0.001')


def _instances_by_code(items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    by_code = {}
    for index, item in enumerate(items):
        order = item.get('order')
        by_code.setdefault(item.get('code'), []).append({
            'item': item,
            'order': order if order is not None else index + 1,
            'used': False,
        })
    return by_code


def _best_match(instances, order):
    """Unused instance at the same position, else the nearest unused one."""
    if not instances:
        return None
    match = next((i for i in instances if i['order'] == order and not i['used']), None)
    if match is None:
        unused = [i for i in instances if not i['used']]
        if unused:
            match = min(unused, key=lambda i: abs(i['order'] - order))
    if match is not None:
        match['used'] = True
    return match


def compare_items(current: List[Dict[str, Any]], previous: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Row-level diff between a version and the one before it.

    Rows are matched by code; when a code appears several times the
    instance at the same position wins, then the nearest unused one. A row
    whose position changed is "moved" even if its values did not, which is
    why this is kept apart from the code-keyed merge analysis.

    Returns:
        One entry per row with ``status``, ``order``, ``previous_order``,
        ``changes`` and the item itself, sorted by current position
    """
    previous_by_code = _instances_by_code(previous)
    result = []

    for index, item in enumerate(current):
        order = item.get('order') if item.get('order') is not None else index + 1
        match = _best_match(previous_by_code.get(item.get('code')), order)

        if match is None:
            result.append({'status': ADDED, 'order': order, 'previous_order': None, 'changes': [], 'item': item})
            continue

        old = match['item']
        changes = [
            {'field': field, 'previous': old.get(field), 'current': item.get(field)}
            for field in ITEM_DIFF_FIELDS
            if normalize_field(old.get(field)) != normalize_field(item.get(field))
        ]
        moved = match['order'] != order

        if moved and changes:
            status = MOVED_MODIFIED
        elif moved:
            status = MOVED
        elif changes:
            status = MODIFIED
        else:
            status = UNCHANGED

        result.append({'status': status, 'order': order, 'previous_order': match['order'],
                       'changes': changes, 'item': item})

    for instances in previous_by_code.values():
        for instance in instances:
            if not instance['used']:
                result.append({'status': REMOVED, 'order': None, 'previous_order': instance['order'],
                               'changes': [], 'item': instance['item']})

    # Removed rows have no current position and sort first
    return sorted(result, key=lambda entry: entry['order'] or 0)


def _as_date(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)[:10]).date()


def compare_commercial_fields(current: Dict[str, Any], previous: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Header fields that differ between two versions."""
    changes = []
    for field in HISTORY_HEADER_FIELDS:
        new_value = (current or {}).get(field)
        old_value = (previous or {}).get(field)

        if field == 'general_discount_pct':
            changed = abs(to_decimal(new_value) - to_decimal(old_value)) > DISCOUNT_TOLERANCE
        elif field == 'valid_until':
            changed = _as_date(new_value) != _as_date(old_value)
        else:
            changed = str(new_value or '').strip() != str(old_value or '').strip()

        if changed:
            changes.append({'field': field, 'previous': old_value, 'current': new_value})
    return changes


def summarize(diff: List[Dict[str, Any]]) -> Dict[str, int]:
    """Counts shown next to a version: moved_modified rows count as both."""
    return {
        ADDED: sum(1 for d in diff if d['status'] == ADDED),
        REMOVED: sum(1 for d in diff if d['status'] == REMOVED),
        MODIFIED: sum(1 for d in diff if d['status'] in (MODIFIED, MOVED_MODIFIED)),
        MOVED: sum(1 for d in diff if d['status'] in (MOVED, MOVED_MODIFIED)),
    }
