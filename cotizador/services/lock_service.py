"""Quote edit locks: one time-limited permit per quote, re-checked on every mutation."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cotizador.exceptions import LockContentionError, LockRequiredError
from cotizador.models import QuoteLock
from cotizador.principal import Principal, utcnow
from cotizador.utils.number_format import to_number

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def _denied(lock: Optional[QuoteLock]) -> Dict[str, Any]:
    return {
        'locked': False,
        'owned': False,
        'locked_by': lock.holder() if lock else None,
        'expires_at': to_number(lock.expires_at) if lock else None,
    }


def _active_lock(session: Session, quote_id: int, now: datetime) -> Optional[QuoteLock]:
    lock = session.query(QuoteLock).filter(QuoteLock.quote_id == quote_id).first()
    if lock and lock.is_active(now):
        return lock
    return None


def acquire(session: Session, quote_id: int, principal: Principal,
            ttl_seconds: int = DEFAULT_TTL_SECONDS, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Acquire (or extend) the edit lock of a quote.

    Granted when there is no lock, the existing one expired, or the caller
    already holds it. A lock held by someone else is reported, not taken.
    """
    now = now or utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds)

    try:
        lock = session.query(QuoteLock).filter(QuoteLock.quote_id == quote_id).with_for_update().first()

        if lock and lock.is_active(now) and lock.user_id != principal.id:
            denied = _denied(lock)
            session.rollback()
            logger.info(f"[LOCK] Quote {quote_id} denied to user {principal.id}: held by {denied['locked_by']['id']}")
            return denied

        if lock is None:
            lock = QuoteLock(quote_id=quote_id)
            session.add(lock)
            lock.acquired_at = now
        elif not lock.is_active(now) or lock.user_id != principal.id:
            lock.acquired_at = now

        lock.user_id = principal.id
        lock.user_name = principal.name
        lock.expires_at = expires_at
        session.commit()
    except IntegrityError:
        # Someone inserted the lock row between our read and write
        session.rollback()
        current = _active_lock(session, quote_id, now)
        logger.info(f"[LOCK] Quote {quote_id} acquire race lost by user {principal.id}")
        return _denied(current)
    except Exception:
        session.rollback()
        raise

    logger.info(f"[LOCK] Quote {quote_id} locked by user {principal.id} until {expires_at.isoformat()}")
    return {'locked': True, 'owned': True, 'locked_by': lock.holder(), 'expires_at': to_number(expires_at)}


def renew(session: Session, quote_id: int, principal: Principal,
          ttl_seconds: int = DEFAULT_TTL_SECONDS, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Extend the caller's lock. An expired or foreign lock is never renewed."""
    now = now or utcnow()
    try:
        lock = _active_lock(session, quote_id, now)
        if lock is None or lock.user_id != principal.id:
            denied = _denied(lock)
            session.rollback()
            logger.warning(f"[LOCK] Renewal refused for quote {quote_id}, user {principal.id}")
            return denied

        lock.expires_at = now + timedelta(seconds=ttl_seconds)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.debug(f"[LOCK] Quote {quote_id} renewed by user {principal.id}")
    return {'locked': True, 'owned': True, 'locked_by': lock.holder(), 'expires_at': to_number(lock.expires_at)}


def release(session: Session, quote_id: int, principal: Principal) -> bool:
    """
    Release the caller's lock. Idempotent.

    Returns:
        True if a lock was deleted
    """
    try:
        deleted = session.query(QuoteLock).filter(
            QuoteLock.quote_id == quote_id,
            QuoteLock.user_id == principal.id
        ).delete(synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if deleted:
        logger.info(f"[LOCK] Quote {quote_id} released by user {principal.id}")
    return bool(deleted)


def check(session: Session, quote_id: int, principal: Optional[Principal] = None,
          now: Optional[datetime] = None) -> Dict[str, Any]:
    """Report the active lock of a quote without acquiring it."""
    now = now or utcnow()
    lock = _active_lock(session, quote_id, now)
    if lock is None:
        return {'locked': False, 'owned': False, 'locked_by': None, 'expires_at': None}
    return {
        'locked': True,
        'owned': principal is not None and lock.user_id == principal.id,
        'locked_by': lock.holder(),
        'expires_at': to_number(lock.expires_at),
    }


def ensure_lock_held(session: Session, quote_id: int, principal: Principal,
                     now: Optional[datetime] = None) -> QuoteLock:
    """
    Guard for mutating operations on a persisted quote.

    Raises:
        LockContentionError: another user holds the lock
        LockRequiredError: the caller does not hold a lock
    """
    now = now or utcnow()
    lock = _active_lock(session, quote_id, now)
    if lock is None:
        raise LockRequiredError()
    if lock.user_id != principal.id:
        raise LockContentionError(locked_by=lock.holder(), expires_at=to_number(lock.expires_at))
    return lock


def expire_locks(session: Session, now: Optional[datetime] = None) -> int:
    """Delete every expired lock. Returns how many were removed."""
    now = now or utcnow()
    try:
        deleted = session.query(QuoteLock).filter(QuoteLock.expires_at <= now).delete(synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if deleted:
        logger.info(f"[LOCK] Purged {deleted} expired locks")
    return deleted
