"""Client side of the quote edit lock: acquire, keep alive, release and watch."""
import enum
import logging
from typing import Any, Callable, Dict, Optional

from cotizador.exceptions import CotizadorError

logger = logging.getLogger(__name__)


class LockState(enum.Enum):
    """Lock state as seen by this client."""
    UNLOCKED = "unlocked"
    EDITING = "editing"
    LOCKED_BY_OTHER = "locked_by_other"


class LockManager:
    """
    Holds the edit lock of one quote for this client.

    While editing, the lock is renewed every ``renewal_interval`` seconds;
    while not, its status is polled every ``check_interval`` seconds to see
    when another holder lets go. Any failure to acquire, renew or release
    counts as losing the lock: the editor drops to read-only, never the
    other way round.
    """

    def __init__(self, api, scheduler, renewal_interval: float = 120, check_interval: float = 30,
                 on_change: Optional[Callable[['LockManager'], None]] = None):
        self.api = api
        self.scheduler = scheduler
        self.renewal_interval = renewal_interval
        self.check_interval = check_interval
        self.on_change = on_change

        self.quote_id = None
        self.is_new = False
        self.state = LockState.UNLOCKED
        self.locked_by = None
        self.expires_at = None
        self.last_error = None

        self._renew_handle = None
        self._check_handle = None
        # Reentrancy guard: a release already in flight
        self._releasing = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        """Whether this client holds the lock."""
        return self.state is LockState.EDITING

    @property
    def edit_mode(self) -> bool:
        """New quotes are always editable; persisted ones need the lock."""
        return self.is_new or self.is_locked

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, quote_id: Optional[int]) -> None:
        """
        Start tracking a quote. ``None`` means a new, unpersisted quote.

        For a persisted quote the current status is checked right away and
        then polled.
        """
        self.detach()
        self.quote_id = quote_id
        self.is_new = quote_id is None
        if not self.is_new:
            self.check_status()
            self._start_polling()

    def persisted(self, quote_id: int) -> None:
        """A new quote was saved for the first time: lock it to keep editing."""
        self.quote_id = quote_id
        self.is_new = False
        if not self.acquire():
            self._start_polling()

    def detach(self) -> None:
        self.release()
        self._cancel(self._check_handle)
        self._check_handle = None
        self.quote_id = None
        self.is_new = False
        self._set(LockState.UNLOCKED, None, None)

    close = detach

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def acquire(self) -> bool:
        """
        Try to take the edit lock.

        Returns:
            True when granted. On denial ``locked_by`` names the holder; on
            a network failure the state stays unlocked.
        """
        if self.quote_id is None:
            return self.is_new

        try:
            result = self.api.acquire_lock(self.quote_id)
        except CotizadorError as e:
            logger.warning(f"[LOCK] Acquire failed for quote {self.quote_id}: {e.message}")
            self.last_error = e
            self._lose(None)
            return False

        self.last_error = None
        if not result.get('locked'):
            logger.info(f"[LOCK] Quote {self.quote_id} held by {(result.get('locked_by') or {}).get('name')}")
            self._lose(result)
            return False

        self._cancel(self._check_handle)
        self._check_handle = None
        self._cancel(self._renew_handle)
        self._renew_handle = self.scheduler.call_every(self.renewal_interval, self.renew)
        self._set(LockState.EDITING, result.get('locked_by'), result.get('expires_at'))
        logger.info(f"[LOCK] Editing quote {self.quote_id} until {self.expires_at}")
        return True

    def renew(self) -> bool:
        """Extend the lock. Failure of any kind means the lock is lost."""
        if self.state is not LockState.EDITING or self.quote_id is None:
            return False

        try:
            result = self.api.renew_lock(self.quote_id)
        except CotizadorError as e:
            logger.warning(f"[LOCK] Renewal failed for quote {self.quote_id}: {e.message}")
            self.last_error = e
            self._lose(None)
            return False

        if not result.get('locked'):
            logger.warning(f"[LOCK] Lock on quote {self.quote_id} lost")
            self._lose(result)
            return False

        self.expires_at = result.get('expires_at')
        return True

    def release(self) -> None:
        """Give the lock back. Idempotent; a release already running is not repeated."""
        if self._releasing:
            return
        self._releasing = True
        try:
            self._cancel(self._renew_handle)
            self._renew_handle = None
            if self.state is LockState.EDITING and self.quote_id is not None:
                try:
                    self.api.release_lock(self.quote_id)
                except CotizadorError as e:
                    # The server lock will expire on its own
                    logger.warning(f"[LOCK] Release failed for quote {self.quote_id}: {e.message}")
                self._set(LockState.UNLOCKED, None, None)
                if self.quote_id is not None and not self.is_new:
                    self._start_polling()
        finally:
            self._releasing = False

    def check_status(self) -> None:
        """
        Refresh who holds the lock while this client does not.

        Never moves into EDITING: only acquire() does, so a stale answer
        cannot undo a loss detected by a renewal.
        """
        if self.quote_id is None or self.state is LockState.EDITING:
            return

        try:
            result = self.api.check_lock(self.quote_id)
        except CotizadorError as e:
            logger.debug(f"[LOCK] Status check failed for quote {self.quote_id}: {e.message}")
            return

        if self.state is LockState.EDITING:
            return
        if result.get('locked') and not result.get('owned'):
            self._set(LockState.LOCKED_BY_OTHER, result.get('locked_by'), result.get('expires_at'))
        else:
            self._set(LockState.UNLOCKED, None, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lose(self, result: Optional[Dict[str, Any]]) -> None:
        self._cancel(self._renew_handle)
        self._renew_handle = None
        holder = (result or {}).get('locked_by')
        if holder:
            self._set(LockState.LOCKED_BY_OTHER, holder, result.get('expires_at'))
        else:
            self._set(LockState.UNLOCKED, None, None)
        if self.quote_id is not None and not self.is_new:
            self._start_polling()

    def _start_polling(self) -> None:
        if self._check_handle is None:
            self._check_handle = self.scheduler.call_every(self.check_interval, self.check_status)

    def _set(self, state: LockState, locked_by, expires_at) -> None:
        changed = state is not self.state or locked_by != self.locked_by
        self.state = state
        self.locked_by = locked_by
        self.expires_at = expires_at
        if changed and self.on_change:
            self.on_change(self)

    @staticmethod
    def _cancel(handle) -> None:
        if handle is not None:
            handle.cancel()
