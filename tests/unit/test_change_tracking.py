"""
Unit tests for the dirty tracker.
"""

import copy
import pytest
from cotizador.services.change_tracking import (
    clean_item, has_pending_changes, has_real_changes, requires_new_version
)


@pytest.fixture
def snapshot():
    return [
        {'id': 1, 'order': 1, 'code': 'A', 'description': 'Alpha', 'quantity': 5,
         'unit_price': 100, 'discount_pct': 0, 'tax_rate': 21},
        {'id': 2, 'order': 2, 'code': 'B', 'description': 'Beta', 'quantity': 1,
         'unit_price': 50.5, 'discount_pct': 10, 'tax_rate': 10.5},
    ]


class TestHasRealChanges:
    """Tests for has_real_changes."""

    def test_snapshot_against_itself(self, snapshot):
        """Comparing a snapshot with an identical copy reports nothing."""
        assert has_real_changes(snapshot, copy.deepcopy(snapshot)) is False

    def test_empty_baseline_never_reports_changes(self, snapshot):
        assert has_real_changes([], snapshot) is False
        assert has_real_changes([], [{'id': -1, 'code': 'X', 'is_new': True}]) is False

    def test_new_item_is_a_change(self, snapshot):
        current = copy.deepcopy(snapshot) + [{'id': -1, 'code': 'C', 'quantity': 1, 'is_new': True}]
        assert has_real_changes(snapshot, current) is True

    def test_new_item_deleted_again_is_not_a_change(self, snapshot):
        current = copy.deepcopy(snapshot) + [{'id': -1, 'code': 'C', 'is_new': True, 'is_deleted': True}]
        assert has_real_changes(snapshot, current) is False

    @pytest.mark.parametrize('field,value', [
        ('quantity', 6),
        ('discount_pct', 5),
        ('unit_price', 101),
        ('tax_rate', 10.5),
        ('code', 'Z'),
        ('description', 'Otro'),
    ])
    def test_single_field_change(self, snapshot, field, value):
        current = copy.deepcopy(snapshot)
        current[0][field] = value
        assert has_real_changes(snapshot, current) is True

    def test_quantity_change_on_same_id(self):
        """Item 1 goes from 5 to 7 units; back to 5 is no change."""
        snapshot = [{'id': 1, 'code': 'A', 'quantity': 5}]
        assert has_real_changes(snapshot, [{'id': 1, 'code': 'A', 'quantity': 7}]) is True
        assert has_real_changes(snapshot, [{'id': 1, 'code': 'A', 'quantity': 5}]) is False

    def test_deleted_item_changes_the_count(self, snapshot):
        current = copy.deepcopy(snapshot)
        current[1]['is_deleted'] = True
        assert has_real_changes(snapshot, current) is True

    def test_numbers_compare_by_value(self, snapshot):
        """5, 5.0 and "5.00" are the same quantity."""
        current = copy.deepcopy(snapshot)
        current[0]['quantity'] = '5.00'
        current[0]['unit_price'] = 100.0
        current[1]['unit_price'] = '50,50'
        assert has_real_changes(snapshot, current) is False

    def test_order_and_flags_are_ignored(self, snapshot):
        current = list(reversed(copy.deepcopy(snapshot)))
        current[0]['order'] = 1
        current[0]['is_modified'] = True
        assert has_real_changes(snapshot, current) is False

    def test_replaced_item_with_other_code(self, snapshot):
        current = copy.deepcopy(snapshot)
        current[0].update({'code': 'Z', 'description': 'Zeta', 'is_replaced': True})
        assert has_real_changes(snapshot, current) is True

    @pytest.mark.parametrize('field,before,after', [
        ('code', '0123', '123'),
        ('code', '10.0', '10'),
        ('description', '1,5', '1.50'),
        ('description', 'Caño 1/2', 'Caño 0.5'),
    ])
    def test_text_fields_compare_as_text(self, field, before, after):
        """Codes and descriptions that look like numbers are not read as numbers."""
        snapshot = [{'id': 1, 'code': 'A', 'description': 'x', 'quantity': 1, field: before}]
        current = [dict(snapshot[0], **{field: after})]
        assert has_real_changes(snapshot, current) is True

    def test_text_fields_ignore_surrounding_spaces(self, snapshot):
        current = copy.deepcopy(snapshot)
        current[0]['description'] = ' Alpha '
        current[1]['code'] = 'B '
        assert has_real_changes(snapshot, current) is False

    def test_new_item_counts_whatever_its_id(self, snapshot):
        """A new item is a change even if its id collides with a saved one."""
        current = copy.deepcopy(snapshot) + [{'id': 1, 'code': 'C', 'quantity': 1, 'is_new': True}]
        assert has_real_changes(snapshot, current) is True


class TestRequiresNewVersion:
    """Tests for requires_new_version."""

    def test_unsaved_quote(self, snapshot):
        current = copy.deepcopy(snapshot)
        current[0]['quantity'] = 99
        assert requires_new_version({'id': None}, snapshot, current) is False
        assert requires_new_version(None, snapshot, current) is False

    def test_persisted_quote_with_changes(self, snapshot):
        current = copy.deepcopy(snapshot)
        current[0]['quantity'] = 99
        assert requires_new_version({'id': 7}, snapshot, current) is True

    def test_persisted_quote_without_saved_items(self):
        current = [{'id': -1, 'code': 'A', 'quantity': 1, 'is_new': True}]
        assert requires_new_version({'id': 7}, [], current) is False

    def test_persisted_quote_without_changes(self, snapshot):
        assert requires_new_version({'id': 7}, snapshot, copy.deepcopy(snapshot)) is False

    def test_versioned_header_change(self, snapshot):
        current = copy.deepcopy(snapshot)
        assert requires_new_version({'id': 7}, snapshot, current, header_changed=True) is True
        assert requires_new_version({'id': None}, snapshot, current, header_changed=True) is False
        assert requires_new_version({'id': 7}, [], [], header_changed=True) is False


class TestItemHelpers:
    """Tests for pending-change detection and flag cleanup."""

    @pytest.mark.parametrize('flags,expected', [
        ({}, False),
        ({'is_new': True}, True),
        ({'is_modified': True}, True),
        ({'is_deleted': True}, True),
        ({'is_replaced': True}, False),
        ({'is_modified': True, 'recovered': True}, False),
    ])
    def test_has_pending_changes(self, flags, expected):
        assert has_pending_changes(dict({'id': 1, 'code': 'A'}, **flags)) is expected

    def test_clean_item_drops_flags_and_index(self):
        item = {'id': 3, 'code': 'A', 'quantity': 2, 'is_new': True, 'recovered': True, 'index': 4}
        assert clean_item(item) == {'id': 3, 'code': 'A', 'quantity': 2}
        assert item['is_new'] is True
