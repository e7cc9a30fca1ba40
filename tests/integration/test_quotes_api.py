"""
Integration tests for quotes, line items, totals and PDFs.
"""

import pytest
from datetime import date, timedelta
from cotizador.exceptions import BusinessLogicError
from cotizador.services import quote_service


@pytest.fixture
def locked_quote(client, make_quote, alice, headers_for):
    """Quote with the sample items, locked by Alice."""
    quote_id = make_quote(customer_code='C001', customer_name='Ferretería del Centro')
    client.post(f'/api/lock/{quote_id}', headers=headers_for(alice))
    return quote_id


class TestCreateQuote:
    """Tests for quote creation."""

    def test_create_via_api(self, client, alice, headers_for):
        payload = {
            'customer_code': 'C001',
            'currency': 'ars',
            'general_discount_pct': '5',
            'items': [{'code': 'TOR-001', 'quantity': 3, 'unit_price': 100}],
        }
        response = client.post('/api/quotes', json=payload, headers=headers_for(alice))

        assert response.status_code == 201
        data = response.json['data']
        assert data['quote_number'].startswith('COT-')
        assert data['version'] == 1
        assert data['state'] == 'created'
        assert data['currency'] == 'ARS'
        assert data['general_discount_pct'] == 5
        assert data['version_reason'] == 'Versión inicial'
        assert data['valid_until'] == (date.today() + timedelta(days=15)).isoformat()
        assert data['items'][0]['order'] == 1
        assert data['items'][0]['tax_rate'] == 21

    def test_quote_numbers_are_unique(self, session, make_quote):
        numbers = {quote_service.get_quote(session, make_quote()).quote_number for _ in range(3)}
        assert len(numbers) == 3

    @pytest.mark.parametrize('item', [
        {'quantity': 1},
        {'code': 'A', 'quantity': 0},
        {'code': 'A', 'quantity': 1, 'unit_price': -1},
        {'code': 'A', 'quantity': 1, 'unit_price': 1, 'discount_pct': 120},
        {'code': 'A', 'quantity': 'NaN'},
        {'code': 'A', 'quantity': 'Infinity'},
        {'code': 'A', 'quantity': 1, 'unit_price': 'sNaN'},
        {'code': 'A', 'quantity': 1, 'unit_price': 1, 'discount_pct': '-Infinity'},
        {'code': 'A', 'quantity': 1, 'unit_price': 1, 'tax_rate': 'NaN'},
    ])
    def test_invalid_items(self, session, alice, item):
        with pytest.raises(BusinessLogicError):
            quote_service.create_quote(session, {'items': [item]}, alice)

    def test_invalid_general_discount(self, client, alice, headers_for):
        response = client.post('/api/quotes', json={'general_discount_pct': 150}, headers=headers_for(alice))

        assert response.status_code == 400
        assert response.json['error'] == 'BusinessLogicError'

    def test_list_filters(self, client, make_quote):
        make_quote(customer_code='C001')
        make_quote(customer_code='C002')

        assert len(client.get('/api/quotes').json['data']) == 2
        listed = client.get('/api/quotes?customer=C002').json['data']
        assert [q['customer_code'] for q in listed] == ['C002']
        assert 'items' not in listed[0]
        assert client.get('/api/quotes?state=approved').json['data'] == []


class TestItemEndpoints:
    """Tests for item mutations under the lock."""

    def test_mutations_require_the_lock(self, client, make_quote, alice, headers_for):
        quote_id = make_quote()
        response = client.post(f'/api/quotes/{quote_id}/items', json={'code': 'X', 'quantity': 1},
                               headers=headers_for(alice))

        assert response.status_code == 423
        assert response.json['error'] == 'LockRequiredError'

    def test_other_user_gets_contention(self, client, locked_quote, bob, headers_for):
        response = client.patch(f'/api/quotes/{locked_quote}', json={'notes': 'x'}, headers=headers_for(bob))

        assert response.status_code == 409
        assert response.json['locked_by']['name'] == 'Alice'

    def test_add_item_at_position(self, client, locked_quote, alice, headers_for):
        response = client.post(f'/api/quotes/{locked_quote}/items',
                               json={'code': 'ARA-003', 'quantity': 1, 'unit_price': 5, 'order': 1},
                               headers=headers_for(alice))
        assert response.status_code == 201

        items = client.get(f'/api/quotes/{locked_quote}').json['data']['items']
        assert [(i['code'], i['order']) for i in items] == [('ARA-003', 1), ('TOR-001', 2), ('TUE-002', 3)]

    def test_update_and_delete_item(self, client, locked_quote, alice, headers_for):
        items = client.get(f'/api/quotes/{locked_quote}').json['data']['items']

        updated = client.patch(f'/api/quotes/{locked_quote}/items/{items[0]["id"]}',
                               json={'quantity': '12,5'}, headers=headers_for(alice)).json['data']
        assert updated['quantity'] == 12.5
        assert updated['unit_price'] == 100

        client.delete(f'/api/quotes/{locked_quote}/items/{items[0]["id"]}', headers=headers_for(alice))
        remaining = client.get(f'/api/quotes/{locked_quote}').json['data']['items']
        assert [(i['code'], i['order']) for i in remaining] == [('TUE-002', 1)]

    def test_unknown_item(self, client, locked_quote, alice, headers_for):
        response = client.delete(f'/api/quotes/{locked_quote}/items/9999', headers=headers_for(alice))
        assert response.status_code == 404

    def test_reorder(self, client, locked_quote, alice, headers_for):
        items = client.get(f'/api/quotes/{locked_quote}').json['data']['items']
        ids = [items[1]['id'], items[0]['id']]

        data = client.post(f'/api/quotes/{locked_quote}/items/reorder', json={'item_ids': ids},
                           headers=headers_for(alice)).json['data']
        assert [i['id'] for i in data['items']] == ids

    def test_reorder_must_be_complete(self, client, locked_quote, alice, headers_for):
        items = client.get(f'/api/quotes/{locked_quote}').json['data']['items']
        response = client.post(f'/api/quotes/{locked_quote}/items/reorder', json={'item_ids': [items[0]['id']]},
                               headers=headers_for(alice))
        assert response.status_code == 400


class TestHeaderAndState:

    def test_update_header(self, client, locked_quote, alice, headers_for):
        data = client.patch(f'/api/quotes/{locked_quote}',
                            json={'sales_condition': ' CTA30 ', 'valid_until': '2026-12-31'},
                            headers=headers_for(alice)).json['data']

        assert data['sales_condition'] == 'CTA30'
        assert data['valid_until'] == '2026-12-31'
        assert data['version'] == 1

    def test_state_transitions(self, client, locked_quote, alice, headers_for):
        response = client.patch(f'/api/quotes/{locked_quote}', json={'state': 'approved'}, headers=headers_for(alice))
        assert response.json['data']['state'] == 'approved'

        response = client.patch(f'/api/quotes/{locked_quote}', json={'state': 'converted'}, headers=headers_for(alice))
        assert response.status_code == 400


class TestTotalsAndPdf:

    def test_totals_with_withholding(self, client, locked_quote, customer_with_withholding):
        data = client.get(f'/api/quotes/{locked_quote}/totals').json['data']

        # 10 x 100 + 5 x 40 with 10% off
        assert data['net'] == 1180
        assert data['tax'] == 247.8
        assert data['withholdings'][0]['amount'] == 35.4
        assert data['total'] == 1463.2

    def test_quote_pdf(self, client, locked_quote):
        response = client.get(f'/api/quotes/{locked_quote}/pdf')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

    def test_unknown_quote(self, client):
        response = client.get('/api/quotes/9999')

        assert response.status_code == 404
        assert response.json['status'] == 'error'
