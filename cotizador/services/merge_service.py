"""Version merge: code-keyed analysis and combination of two quote versions."""

from collections import OrderedDict
from typing import Any, Dict, List, Optional

from cotizador.exceptions import MergeAnalysisError
from cotizador.models.quote import COMMERCIAL_FIELDS
from cotizador.services.change_tracking import clean_item
from cotizador.utils.number_format import normalize_field, to_decimal, to_number

VERSION_SOURCES = ('A', 'B')

# Fields that make the same code differ between two versions
CONFLICT_FIELDS = ('quantity', 'unit_price', 'discount_pct')

# Fields a user may override by hand when combining
OVERRIDE_FIELDS = ('quantity', 'discount_pct')


def _positioned(items: List[Dict[str, Any]]) -> List[tuple]:
    """(order, item) pairs for live items; rows without ``order`` use their 1-based index."""
    positioned = []
    for index, item in enumerate(items):
        if item.get('is_deleted'):
            continue
        order = item.get('order')
        positioned.append((order if order is not None else index + 1, item))
    return positioned


def group_by_code(items: List[Dict[str, Any]]) -> 'OrderedDict[str, List[tuple]]':
    """Group (order, item) pairs by product code, in first-appearance order."""
    groups = OrderedDict()
    for order, item in _positioned(items):
        groups.setdefault(item.get('code'), []).append((order, item))
    return groups


def _signature(instances: List[tuple]) -> List[tuple]:
    # Row order is ignored: the comparison is on the multiset of values
    return sorted(
        tuple(normalize_field(item.get(field)) for field in CONFLICT_FIELDS)
        for _, item in instances
    )


def analyze_versions(items_a: List[Dict[str, Any]], items_b: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    Classify every product code of two versions.

    Returns:
        Dict with ``only_in_a``, ``only_in_b`` and ``in_both`` (a partition of
        all codes) plus ``conflicts``: the codes in both versions whose
        values differ.
    """
    groups_a = group_by_code(items_a)
    groups_b = group_by_code(items_b)

    only_in_a = [code for code in groups_a if code not in groups_b]
    only_in_b = [code for code in groups_b if code not in groups_a]
    in_both = [code for code in groups_a if code in groups_b]
    conflicts = [code for code in in_both if _signature(groups_a[code]) != _signature(groups_b[code])]

    return {
        'only_in_a': only_in_a,
        'only_in_b': only_in_b,
        'in_both': in_both,
        'conflicts': conflicts,
    }


def _check_source(source: Optional[str], what: str) -> str:
    source = (source or '').upper()
    if source not in VERSION_SOURCES:
        raise MergeAnalysisError(f'{what} debe ser "A" o "B".')
    return source


def initial_selections(analysis: Dict[str, List[str]], default_version: str = 'B') -> List[Dict[str, Any]]:
    """
    Default item selection for a combine.

    Codes only in A come from A, codes only in B from B, and codes in both
    from ``default_version``. Everything starts selected with no overrides.
    """
    default_version = _check_source(default_version, 'La versión predeterminada')
    selections = []
    for code in analysis.get('only_in_a', []):
        selections.append({'code': code, 'source': 'A', 'selected': True, 'overrides': {}})
    for code in analysis.get('only_in_b', []):
        selections.append({'code': code, 'source': 'B', 'selected': True, 'overrides': {}})
    for code in analysis.get('in_both', []):
        selections.append({'code': code, 'source': default_version, 'selected': True, 'overrides': {}})
    return selections


def _clean_overrides(code: str, overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    cleaned = {}
    for field in OVERRIDE_FIELDS:
        raw = (overrides or {}).get(field)
        if raw is None or raw == '':
            continue
        value = to_decimal(raw, None)
        if value is None:
            raise MergeAnalysisError(f'Valor inválido para {field} en el artículo {code}.')
        if field == 'quantity' and value <= 0:
            raise MergeAnalysisError(f'La cantidad del artículo {code} debe ser mayor a 0.')
        if field == 'discount_pct' and not (0 <= value <= 100):
            raise MergeAnalysisError(f'La bonificación del artículo {code} debe estar entre 0 y 100.')
        cleaned[field] = to_number(value)
    return cleaned


def combine_items(items_a: List[Dict[str, Any]], items_b: List[Dict[str, Any]],
                  selections: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Build the item list of a combined version.

    Every selected code contributes all of its instances from the chosen
    version, with manual overrides applied on top. The result is ordered by
    each item's position in its own version (A before B on ties) and
    renumbered from 1. Returned items are fresh copies without ids.

    Raises:
        MergeAnalysisError: if a selection names a code its version lacks,
            or nothing is selected
    """
    groups = {'A': group_by_code(items_a), 'B': group_by_code(items_b)}
    chosen = []
    seen_codes = set()

    for selection in selections:
        if not selection.get('selected', True):
            continue
        code = selection.get('code')
        if code in seen_codes:
            continue
        seen_codes.add(code)

        source = _check_source(selection.get('source'), f'La fuente del artículo {code}')
        instances = groups[source].get(code)
        if not instances:
            raise MergeAnalysisError(f'El artículo {code} no existe en la versión {source}.')

        overrides = _clean_overrides(code, selection.get('overrides'))
        for order, item in instances:
            merged = clean_item(item)
            merged.pop('id', None)
            merged.update(overrides)
            chosen.append((to_decimal(order), VERSION_SOURCES.index(source), len(chosen), merged))

    if not chosen:
        raise MergeAnalysisError('Debe seleccionar al menos un artículo para combinar.')

    chosen.sort(key=lambda entry: entry[:3])
    result = []
    for position, (_, _, _, item) in enumerate(chosen, start=1):
        item['order'] = position
        result.append(item)
    return result


def select_commercial_fields(header_a: Dict[str, Any], header_b: Dict[str, Any], source: str) -> Dict[str, Any]:
    """Commercial fields copied wholesale from version A or B, never mixed."""
    source = _check_source(source, 'La fuente de datos comerciales')
    header = header_a if source == 'A' else header_b
    return {field: (header or {}).get(field) for field in COMMERCIAL_FIELDS}
