"""
Unit tests for the Argentine number and date formatters used in PDFs.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from cotizador.utils.formatters import date_ar, money_ar_2, num_ar


class TestNumAr:

    @pytest.mark.parametrize('value, expected', [
        (1500, '1.500'),
        (1500.5, '1.500,5'),
        (Decimal('12.500'), '12,5'),
        (Decimal('100550.00'), '100.550'),
        (-2500, '-2.500'),
        ('3,25', '3,25'),
        (0, '0'),
        (None, '-'),
        ('abc', '-'),
    ])
    def test_values(self, value, expected):
        assert num_ar(value) == expected

    def test_fixed_decimals(self):
        assert num_ar(Decimal('2.001'), decimals=2) == '2'
        assert num_ar(Decimal('1.256'), decimals=2) == '1,26'


class TestMoneyAr2:

    @pytest.mark.parametrize('value, expected', [
        (1500, '1.500,00'),
        (Decimal('1234567.891'), '1.234.567,89'),
        (-35.4, '-35,40'),
        (None, '-'),
    ])
    def test_values(self, value, expected):
        assert money_ar_2(value) == expected


class TestDateAr:

    def test_dates(self):
        assert date_ar(date(2026, 1, 12)) == '12/01/2026'
        assert date_ar(datetime(2026, 1, 12, 15, 30)) == '12/01/2026'
        assert date_ar('2026-03-05') == '05/03/2026'
        assert date_ar('2026-03-05T10:00:00') == '05/03/2026'

    def test_invalid(self):
        assert date_ar(None) == '-'
        assert date_ar('mañana') == '-'
