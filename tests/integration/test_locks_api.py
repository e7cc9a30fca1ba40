"""
Integration tests for quote edit locks.
"""

import pytest
from datetime import datetime, timedelta
from cotizador.exceptions import LockContentionError, LockRequiredError
from cotizador.models import QuoteLock
from cotizador.services import lock_service

NOW = datetime(2026, 3, 2, 10, 0, 0)


class TestLockService:
    """Tests for lock_service with explicit clocks."""

    def test_acquire_free_quote(self, session, make_quote, alice):
        quote_id = make_quote()
        result = lock_service.acquire(session, quote_id, alice, ttl_seconds=300, now=NOW)

        assert result['locked'] is True
        assert result['owned'] is True
        assert result['locked_by'] == {'id': 1, 'name': 'Alice'}
        assert result['expires_at'] == '2026-03-02T10:05:00'

    def test_second_user_is_denied(self, session, make_quote, alice, bob):
        quote_id = make_quote()
        lock_service.acquire(session, quote_id, alice, now=NOW)
        result = lock_service.acquire(session, quote_id, bob, now=NOW + timedelta(minutes=1))

        assert result['locked'] is False
        assert result['locked_by']['name'] == 'Alice'
        assert session.query(QuoteLock).filter_by(quote_id=quote_id).one().user_id == alice.id

    def test_expired_lock_can_be_taken(self, session, make_quote, alice, bob):
        quote_id = make_quote()
        lock_service.acquire(session, quote_id, alice, now=NOW)
        result = lock_service.acquire(session, quote_id, bob, now=NOW + timedelta(minutes=6))

        assert result['locked'] is True
        assert result['locked_by']['id'] == bob.id

    def test_reacquire_extends(self, session, make_quote, alice):
        quote_id = make_quote()
        lock_service.acquire(session, quote_id, alice, now=NOW)
        result = lock_service.acquire(session, quote_id, alice, now=NOW + timedelta(minutes=4))

        assert result['expires_at'] == '2026-03-02T10:09:00'
        lock = session.query(QuoteLock).filter_by(quote_id=quote_id).one()
        assert lock.acquired_at == NOW

    def test_renew(self, session, make_quote, alice, bob):
        quote_id = make_quote()
        lock_service.acquire(session, quote_id, alice, now=NOW)

        renewed = lock_service.renew(session, quote_id, alice, now=NOW + timedelta(minutes=2))
        assert renewed['expires_at'] == '2026-03-02T10:07:00'

        assert lock_service.renew(session, quote_id, bob, now=NOW)['locked'] is False

    def test_expired_lock_is_not_renewed(self, session, make_quote, alice):
        quote_id = make_quote()
        lock_service.acquire(session, quote_id, alice, now=NOW)
        result = lock_service.renew(session, quote_id, alice, now=NOW + timedelta(minutes=5))

        assert result['locked'] is False

    def test_release_is_idempotent(self, session, make_quote, alice, bob):
        quote_id = make_quote()
        lock_service.acquire(session, quote_id, alice, now=NOW)

        assert lock_service.release(session, quote_id, bob) is False
        assert lock_service.release(session, quote_id, alice) is True
        assert lock_service.release(session, quote_id, alice) is False

    def test_check(self, session, make_quote, alice, bob):
        quote_id = make_quote()
        assert lock_service.check(session, quote_id, alice, now=NOW)['locked'] is False

        lock_service.acquire(session, quote_id, alice, now=NOW)
        assert lock_service.check(session, quote_id, alice, now=NOW)['owned'] is True
        status = lock_service.check(session, quote_id, bob, now=NOW)
        assert status['locked'] is True
        assert status['owned'] is False

        assert lock_service.check(session, quote_id, bob, now=NOW + timedelta(minutes=5))['locked'] is False

    def test_ensure_lock_held(self, session, make_quote, alice, bob):
        quote_id = make_quote()
        with pytest.raises(LockRequiredError):
            lock_service.ensure_lock_held(session, quote_id, alice, now=NOW)

        lock_service.acquire(session, quote_id, alice, now=NOW)
        assert lock_service.ensure_lock_held(session, quote_id, alice, now=NOW).user_id == alice.id

        with pytest.raises(LockContentionError) as excinfo:
            lock_service.ensure_lock_held(session, quote_id, bob, now=NOW)
        assert excinfo.value.status_code == 409
        assert excinfo.value.locked_by['name'] == 'Alice'

    def test_expire_locks(self, session, make_quote, alice):
        first, second = make_quote(), make_quote()
        lock_service.acquire(session, first, alice, now=NOW)
        lock_service.acquire(session, second, alice, now=NOW + timedelta(minutes=3))

        assert lock_service.expire_locks(session, now=NOW + timedelta(minutes=6)) == 1
        assert session.query(QuoteLock).count() == 1


class TestLocksApi:
    """Tests for the /api/lock endpoints."""

    def test_lock_lifecycle(self, client, make_quote, alice, bob, headers_for):
        quote_id = make_quote()

        response = client.post(f'/api/lock/{quote_id}', headers=headers_for(alice))
        assert response.status_code == 200
        assert response.json['status'] == 'ok'
        assert response.json['data']['locked'] is True

        denied = client.post(f'/api/lock/{quote_id}', headers=headers_for(bob)).json['data']
        assert denied['locked'] is False
        assert denied['locked_by'] == {'id': 1, 'name': 'Alice'}

        status = client.get(f'/api/lock/{quote_id}').json['data']
        assert status['locked'] is True
        assert status['owned'] is False

        assert client.put(f'/api/lock/{quote_id}', headers=headers_for(alice)).json['data']['locked'] is True

        released = client.delete(f'/api/lock/{quote_id}', headers=headers_for(alice)).json['data']
        assert released == {'released': True}
        assert client.get(f'/api/lock/{quote_id}').json['data']['locked'] is False

    def test_principal_required(self, client, make_quote):
        quote_id = make_quote()
        response = client.post(f'/api/lock/{quote_id}')

        assert response.status_code == 401
        assert response.json['status'] == 'error'

    def test_invalid_user_header(self, client, make_quote):
        quote_id = make_quote()
        response = client.post(f'/api/lock/{quote_id}', headers={'X-User-Id': 'abc'})
        assert response.status_code == 401

    def test_unknown_quote(self, client, alice, headers_for):
        response = client.post('/api/lock/9999', headers=headers_for(alice))

        assert response.status_code == 404
        assert response.json['error'] == 'NotFoundError'


class TestExpireLocksCommand:
    """Tests for the flask expire-locks command."""

    def test_purges_expired_locks(self, app, session, make_quote, alice, bob):
        stale = make_quote()
        live = make_quote()
        lock_service.acquire(session, stale, alice, now=datetime(2020, 1, 1))
        lock_service.acquire(session, live, bob)

        result = app.test_cli_runner().invoke(args=['expire-locks'])

        assert result.exit_code == 0
        assert 'Bloqueos vencidos eliminados: 1' in result.output
        assert [lock.quote_id for lock in session.query(QuoteLock).all()] == [live]
