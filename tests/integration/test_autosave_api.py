"""
Integration tests for autosave scratch records.
"""

import pytest
from cotizador.exceptions import BusinessLogicError
from cotizador.services import autosave_service

PENDING = [
    {'id': -1, 'code': 'NEW-1', 'description': 'Nuevo', 'quantity': 2, 'unit_price': 10,
     'is_new': True, 'index': 2},
]


class TestAutosaveService:

    def test_save_and_get(self, session, make_quote, alice):
        quote_id = make_quote()
        autosave_service.save_autosave(session, quote_id, PENDING, alice)

        record = autosave_service.get_autosave(session, quote_id)
        assert record['items'] == PENDING
        assert record['user_id'] == alice.id
        assert record['timestamp'] is not None

    def test_save_overwrites(self, session, make_quote, alice):
        quote_id = make_quote()
        autosave_service.save_autosave(session, quote_id, PENDING, alice)
        autosave_service.save_autosave(session, quote_id, [dict(PENDING[0], quantity=5)], alice)

        assert autosave_service.get_autosave(session, quote_id)['items'][0]['quantity'] == 5

    def test_empty_record_is_nothing_to_recover(self, session, make_quote, alice):
        quote_id = make_quote()
        autosave_service.save_autosave(session, quote_id, [], alice)
        assert autosave_service.get_autosave(session, quote_id) is None

    def test_items_must_be_a_list(self, session, make_quote, alice):
        quote_id = make_quote()
        with pytest.raises(BusinessLogicError):
            autosave_service.save_autosave(session, quote_id, {'code': 'X'}, alice)

    def test_delete_is_idempotent(self, session, make_quote, alice):
        quote_id = make_quote()
        autosave_service.save_autosave(session, quote_id, PENDING, alice)

        assert autosave_service.delete_autosave(session, quote_id) is True
        assert autosave_service.delete_autosave(session, quote_id) is False


class TestAutosaveApi:
    """Tests for the /api/autosave endpoints."""

    def test_roundtrip(self, client, make_quote, alice, headers_for):
        quote_id = make_quote()
        assert client.get(f'/api/autosave/{quote_id}').json['data'] is None

        response = client.post(f'/api/autosave/{quote_id}', json={'items': PENDING}, headers=headers_for(alice))
        assert response.status_code == 200

        data = client.get(f'/api/autosave/{quote_id}').json['data']
        assert data['items'][0]['code'] == 'NEW-1'
        assert data['items'][0]['index'] == 2

        deleted = client.delete(f'/api/autosave/{quote_id}', headers=headers_for(alice)).json['data']
        assert deleted == {'deleted': True}
        assert client.get(f'/api/autosave/{quote_id}').json['data'] is None

    def test_unknown_quote(self, client, alice, headers_for):
        response = client.post('/api/autosave/9999', json={'items': PENDING}, headers=headers_for(alice))
        assert response.status_code == 404

    def test_invalid_body(self, client, make_quote, alice, headers_for):
        quote_id = make_quote()
        response = client.post(f'/api/autosave/{quote_id}', json=['x'], headers=headers_for(alice))

        assert response.status_code == 400
        assert response.json['status'] == 'error'
