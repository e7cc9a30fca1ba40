"""
Unit tests for the version history diff.
"""

from cotizador.services.history_service import (
    ADDED, MODIFIED, MOVED, MOVED_MODIFIED, REMOVED, UNCHANGED,
    compare_commercial_fields, compare_items, summarize
)


def row(code, order, quantity=1, unit_price=10, discount_pct=0):
    return {'code': code, 'order': order, 'quantity': quantity, 'unit_price': unit_price,
            'discount_pct': discount_pct}


def statuses(diff):
    return [(entry['item']['code'], entry['status']) for entry in diff]


class TestCompareItems:
    """Tests for compare_items."""

    def test_identical_versions(self):
        items = [row('A', 1), row('B', 2)]
        diff = compare_items(items, [dict(i) for i in items])

        assert statuses(diff) == [('A', UNCHANGED), ('B', UNCHANGED)]

    def test_added_and_removed(self):
        diff = compare_items([row('A', 1), row('C', 2)], [row('A', 1), row('B', 2)])

        assert statuses(diff) == [('B', REMOVED), ('A', UNCHANGED), ('C', ADDED)]
        removed = diff[0]
        assert removed['order'] is None
        assert removed['previous_order'] == 2

    def test_modified_reports_fields(self):
        diff = compare_items([row('A', 1, quantity=3, discount_pct=5)], [row('A', 1)])

        assert diff[0]['status'] == MODIFIED
        assert diff[0]['changes'] == [
            {'field': 'quantity', 'previous': 1, 'current': 3},
            {'field': 'discount_pct', 'previous': 0, 'current': 5},
        ]

    def test_moved_without_value_changes(self):
        diff = compare_items([row('B', 1), row('A', 2)], [row('A', 1), row('B', 2)])

        assert statuses(diff) == [('B', MOVED), ('A', MOVED)]
        assert diff[0]['previous_order'] == 2

    def test_moved_and_modified(self):
        diff = compare_items([row('B', 1, unit_price=12), row('A', 2)], [row('A', 1), row('B', 2)])
        assert diff[0]['status'] == MOVED_MODIFIED

    def test_repeated_code_prefers_same_position(self):
        previous = [row('A', 1, quantity=1), row('B', 2), row('A', 3, quantity=3)]
        current = [row('A', 1, quantity=1), row('A', 2, quantity=3)]
        diff = compare_items(current, previous)

        assert statuses(diff) == [('B', REMOVED), ('A', UNCHANGED), ('A', MOVED)]
        assert diff[2]['previous_order'] == 3

    def test_repeated_code_uses_nearest_unused(self):
        previous = [row('A', 1), row('A', 5)]
        current = [row('A', 4)]
        diff = compare_items(current, previous)

        assert diff[-1]['previous_order'] == 5
        assert statuses(diff)[0] == ('A', REMOVED)

    def test_rows_without_order_use_position(self):
        current = [{'code': 'A', 'quantity': 1}, {'code': 'B', 'quantity': 1}]
        previous = [{'code': 'A', 'quantity': 1}, {'code': 'B', 'quantity': 1}]
        assert [entry['status'] for entry in compare_items(current, previous)] == [UNCHANGED, UNCHANGED]

    def test_first_version_is_all_added(self):
        assert [entry['status'] for entry in compare_items([row('A', 1)], [])] == [ADDED]


class TestSummary:

    def test_moved_modified_counts_twice(self):
        diff = [{'status': s} for s in (ADDED, REMOVED, MODIFIED, MOVED, MOVED_MODIFIED, UNCHANGED)]
        assert summarize(diff) == {'added': 1, 'removed': 1, 'modified': 2, 'moved': 2}


class TestCompareCommercialFields:
    """Tests for compare_commercial_fields."""

    def test_no_changes(self):
        header = {'general_discount_pct': 5, 'valid_until': '2026-01-31', 'currency': 'ARS'}
        assert compare_commercial_fields(header, dict(header)) == []

    def test_discount_tolerance(self):
        current = {'general_discount_pct': 5.0005}
        assert compare_commercial_fields(current, {'general_discount_pct': 5}) == []
        assert compare_commercial_fields({'general_discount_pct': 5.01}, {'general_discount_pct': 5}) == [
            {'field': 'general_discount_pct', 'previous': 5, 'current': 5.01}
        ]

    def test_dates_compare_by_day(self):
        current = {'valid_until': '2026-01-31T00:00:00'}
        assert compare_commercial_fields(current, {'valid_until': '2026-01-31'}) == []
        assert [c['field'] for c in compare_commercial_fields({'valid_until': '2026-02-01'}, current)] == [
            'valid_until'
        ]

    def test_text_is_trimmed(self):
        assert compare_commercial_fields({'sales_condition': ' CTA30 '}, {'sales_condition': 'CTA30'}) == []
        assert compare_commercial_fields({'price_list': None}, {'price_list': ''}) == []
        changes = compare_commercial_fields({'price_list': 'L2'}, {'price_list': 'L1'})
        assert changes == [{'field': 'price_list', 'previous': 'L1', 'current': 'L2'}]
