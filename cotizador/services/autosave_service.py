"""Autosave scratch records: unsaved item changes kept for crash recovery."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cotizador.exceptions import BusinessLogicError
from cotizador.models import QuoteAutosave
from cotizador.principal import Principal, utcnow

logger = logging.getLogger(__name__)


def get_autosave(session: Session, quote_id: int) -> Optional[Dict[str, Any]]:
    """Scratch record of a quote, or None when there is nothing to recover."""
    record = session.query(QuoteAutosave).filter(QuoteAutosave.quote_id == quote_id).first()
    if record is None or not record.items:
        return None
    return record.to_dict()


def save_autosave(session: Session, quote_id: int, items: List[Dict[str, Any]],
                  principal: Optional[Principal] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Overwrite the scratch record of a quote.

    Args:
        items: Changed items only, each tagged with its positional ``index``

    Raises:
        BusinessLogicError: if ``items`` is not a list
    """
    if not isinstance(items, list):
        raise BusinessLogicError('El autoguardado debe contener una lista de artículos.')

    now = now or utcnow()
    try:
        record = session.query(QuoteAutosave).filter(QuoteAutosave.quote_id == quote_id).first()
        if record is None:
            record = QuoteAutosave(quote_id=quote_id)
            session.add(record)
        record.user_id = principal.id if principal else None
        record.items = items
        record.saved_at = now
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.debug(f"[AUTOSAVE] Quote {quote_id}: {len(items)} pending items stored")
    return record.to_dict()


def delete_autosave(session: Session, quote_id: int) -> bool:
    """Drop the scratch record. Idempotent."""
    try:
        deleted = session.query(QuoteAutosave).filter(
            QuoteAutosave.quote_id == quote_id
        ).delete(synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if deleted:
        logger.info(f"[AUTOSAVE] Quote {quote_id}: scratch record cleared")
    return bool(deleted)
