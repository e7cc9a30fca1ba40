"""Change tracking for quote items: decides when a save needs a new version."""

from typing import Any, Dict, List, Optional

from cotizador.utils.number_format import normalize_field

# Fields whose change makes a save structural (new version instead of update in place)
COMPARISON_FIELDS = ('code', 'description', 'quantity', 'discount_pct', 'unit_price', 'tax_rate')

# Compared by numeric value; the rest of COMPARISON_FIELDS compare as text
NUMERIC_FIELDS = ('quantity', 'discount_pct', 'unit_price', 'tax_rate')

# Header fields whose change also requires a new version
VERSIONED_HEADER_FIELDS = ('sales_condition', 'price_list', 'document_series')

# Client-only item flags; never sent to the backend as item data
ITEM_FLAGS = ('is_new', 'is_modified', 'is_deleted', 'is_replaced', 'recovered')


def _comparable(field: str, value: Any) -> str:
    if field in NUMERIC_FIELDS:
        return normalize_field(value)
    return str(value if value is not None else '').strip()


def has_real_changes(snapshot: List[Dict[str, Any]], current: List[Dict[str, Any]]) -> bool:
    """
    Compare the live item list against the snapshot taken at load/save time.

    Pure function of its two arguments. An empty snapshot means there is no
    baseline, so it never reports changes. Items deleted from both sides are
    not visible here: only snapshot/survivor pairs and the survivor count
    are compared.

    Args:
        snapshot: Items as they were persisted (immutable copy)
        current: Live items, including client flags

    Returns:
        True when the difference is structural
    """
    if not snapshot:
        return False

    original_by_id = {item.get('id'): item for item in snapshot if not item.get('is_new')}

    for item in current:
        if item.get('is_new') and not item.get('is_deleted'):
            return True

    surviving = {
        item.get('id'): item
        for item in current
        if not item.get('is_deleted') and not item.get('is_new')
    }
    if len(surviving) != len(original_by_id):
        return True

    for item_id, item in surviving.items():
        original = original_by_id.get(item_id)
        if original is None:
            return True
        for field in COMPARISON_FIELDS:
            if _comparable(field, item.get(field)) != _comparable(field, original.get(field)):
                return True

    return False


def requires_new_version(quote: Optional[Dict[str, Any]], snapshot: List[Dict[str, Any]],
                         current: List[Dict[str, Any]], header_changed: bool = False) -> bool:
    """
    A persisted quote with saved items must be saved as a new version when
    its items really changed or a versioned header field was edited
    (``header_changed``).
    """
    if not quote or quote.get('id') is None:
        return False
    has_saved_items = any(not item.get('is_new') and not item.get('is_deleted') for item in current)
    if not has_saved_items:
        return False
    return header_changed or has_real_changes(snapshot, current)


def has_pending_changes(item: Dict[str, Any]) -> bool:
    """Whether an item carries an unsaved edit that autosave should persist."""
    return bool(
        (item.get('is_new') or item.get('is_modified') or item.get('is_deleted'))
        and not item.get('recovered')
    )


def clean_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of an item without client flags or positional bookkeeping."""
    return {key: value for key, value in item.items() if key not in ITEM_FLAGS and key != 'index'}
