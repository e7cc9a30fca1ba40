"""Autosave and crash recovery of unsaved item changes."""
import logging
from typing import Any, Dict, List, Optional

from cotizador.exceptions import CotizadorError, LockContentionError
from cotizador.services.change_tracking import has_pending_changes

logger = logging.getLogger(__name__)


def pending_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Items with unsaved edits, each tagged with its position in the list."""
    return [dict(item, index=index) for index, item in enumerate(items) if has_pending_changes(item)]


def merge_recovered_items(current: List[Dict[str, Any]], recovered: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Merge a scratch record back into the live item list.

    Current items referenced by a recovered item (same id) are replaced;
    every other current item is kept as is. Recovered items are inserted
    one by one, in order of their recorded index (stable), at that index
    clamped to the list length; items without an index go last. Inserted
    items are flagged ``recovered``.
    """
    recovered_ids = {item.get('id') for item in recovered if item.get('id') is not None}
    result = [dict(item) for item in current if item.get('id') not in recovered_ids]

    positioned = sorted(
        (item for item in recovered if item.get('index') is not None),
        key=lambda item: item['index']
    )
    unpositioned = [item for item in recovered if item.get('index') is None]

    for item in positioned:
        restored = {key: value for key, value in item.items() if key != 'index'}
        restored['recovered'] = True
        result.insert(min(int(item['index']), len(result)), restored)

    for item in unpositioned:
        restored = dict(item)
        restored['recovered'] = True
        result.append(restored)

    return result


class AutosaveEngine:
    """
    Debounced background writes of pending item changes.

    A write is scheduled ``debounce`` seconds after the last change; every
    new change restarts the wait. While ``paused`` nothing is scheduled and
    a pending write is dropped. Write failures are logged only: the next
    change schedules a fresh write.
    """

    def __init__(self, api, scheduler, lock_manager=None, debounce: float = 5.0, settle: float = 3.0):
        self.api = api
        self.scheduler = scheduler
        self.lock_manager = lock_manager
        self.debounce = debounce
        self.settle = settle

        self.quote_id = None
        self.paused = False
        self.recovery = None

        self._pending = None
        self._pending_items = None
        self._resume_handle = None

    @property
    def recovery_available(self) -> bool:
        return bool(self.recovery and self.recovery.get('items'))

    def attach(self, quote_id: Optional[int]) -> None:
        self.detach()
        self.quote_id = quote_id

    def detach(self) -> None:
        self._cancel_pending()
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None
        self.quote_id = None
        self.paused = False
        self.recovery = None

    # ------------------------------------------------------------------
    # Background writes
    # ------------------------------------------------------------------

    def on_items_changed(self, items: List[Dict[str, Any]]) -> None:
        """Schedule a write of the pending items of ``items``."""
        if self.quote_id is None or self.paused:
            return

        self._cancel_pending()
        changed = pending_items(items)
        if not changed:
            return

        self._pending_items = changed
        self._pending = self.scheduler.call_later(self.debounce, self._write)

    def _write(self) -> None:
        self._pending = None
        items, self._pending_items = self._pending_items, None
        if self.paused or self.quote_id is None or items is None:
            return
        try:
            self.api.save_autosave(self.quote_id, items)
            logger.debug(f"[AUTOSAVE] Quote {self.quote_id}: {len(items)} items written")
        except CotizadorError as e:
            logger.warning(f"[AUTOSAVE] Write failed for quote {self.quote_id}, retrying on next change: {e.message}")

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = None
        self._pending_items = None

    # ------------------------------------------------------------------
    # Pause
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Stop writing until resume(); drops the pending write."""
        self.paused = True
        self._cancel_pending()
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    def resume(self, delay: Optional[float] = None) -> None:
        """Resume writes, after ``delay`` seconds when given."""
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None
        if delay:
            self._resume_handle = self.scheduler.call_later(delay, self._unpause)
        else:
            self._unpause()

    def _unpause(self) -> None:
        self._resume_handle = None
        self.paused = False

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def check_recovery(self) -> Optional[Dict[str, Any]]:
        """Look for a scratch record of the attached quote. Errors propagate."""
        if self.quote_id is None:
            self.recovery = None
            return None
        record = self.api.get_autosave(self.quote_id)
        self.recovery = record if record and record.get('items') else None
        if self.recovery:
            logger.info(f"[AUTOSAVE] Quote {self.quote_id}: {len(self.recovery['items'])} items recoverable")
        return self.recovery

    def recover(self, current: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Merge the scratch record into ``current`` and delete it.

        Needs the edit lock; it is acquired first when not held.

        Returns:
            The merged item list (``current`` itself is not modified)

        Raises:
            LockContentionError: the lock could not be obtained
        """
        if self.lock_manager is not None and not self.lock_manager.edit_mode:
            if not self.lock_manager.acquire():
                raise LockContentionError(
                    locked_by=self.lock_manager.locked_by,
                    expires_at=self.lock_manager.expires_at,
                    message=None if self.lock_manager.locked_by
                    else 'No se pudo obtener el bloqueo para recuperar los cambios.'
                )

        record = self.recovery or self.check_recovery()
        if not record:
            return list(current)

        self.pause()
        try:
            merged = merge_recovered_items(current, record['items'])
            self.api.delete_autosave(self.quote_id)
            self.recovery = None
        finally:
            self.resume(self.settle)

        logger.info(f"[AUTOSAVE] Quote {self.quote_id}: {len(record['items'])} items recovered")
        return merged

    def discard(self) -> None:
        """Delete the scratch record without touching the live items."""
        self.recovery = None
        self._cancel_pending()
        if self.quote_id is not None:
            self.api.delete_autosave(self.quote_id)

    def clear(self) -> None:
        """Drop pending and stored changes after a successful save."""
        self._cancel_pending()
        self.recovery = None
        if self.quote_id is not None:
            try:
                self.api.delete_autosave(self.quote_id)
            except CotizadorError as e:
                logger.warning(f"[AUTOSAVE] Could not clear scratch record of quote {self.quote_id}: {e.message}")
