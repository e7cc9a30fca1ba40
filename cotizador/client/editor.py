"""
Quote editing session: items, dirty tracking, lock, autosave and versions.

QuoteEditor is what a UI drives. It keeps the live item list with its
client flags, decides when a save needs a new version, and keeps the lock
and autosave engines in step with the open quote.
"""
import copy
import logging
from functools import wraps
from typing import Any, Dict, List, Optional

from cotizador.client.autosave import AutosaveEngine
from cotizador.client.lock_manager import LockManager
from cotizador.client.scheduler import ThreadScheduler
from cotizador.exceptions import BusinessLogicError, LockRequiredError, MergeAnalysisError, NotFoundError, \
    VersionReasonRequired
from cotizador.models.quote import HEADER_FIELDS
from cotizador.models.quote_item import ITEM_FIELDS
from cotizador.services import change_tracking, merge_service
from cotizador.services.totals_service import DEFAULT_TAX_RATE, compute_totals
from cotizador.utils.number_format import to_decimal

logger = logging.getLogger(__name__)


def _serialized(method):
    """Run under the scheduler lock so timer callbacks never interleave."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.scheduler.lock:
            return method(self, *args, **kwargs)
    return wrapper


def _item_payload(item: Dict[str, Any]) -> Dict[str, Any]:
    payload = {field: item.get(field) for field in ITEM_FIELDS}
    payload['metadata'] = item.get('metadata')
    return payload


def _text(value: Any) -> str:
    return str(value if value is not None else '').strip()


class QuoteEditor:
    """Editing session for one quote at a time."""

    def __init__(self, api, scheduler=None, renewal_interval: float = 120, check_interval: float = 30,
                 debounce: float = 5.0, settle: float = 3.0, default_tax_rate=DEFAULT_TAX_RATE):
        self.api = api
        self.scheduler = scheduler or ThreadScheduler()
        self.settle = settle
        self.default_tax_rate = to_decimal(default_tax_rate, DEFAULT_TAX_RATE)

        self.lock = LockManager(api, self.scheduler, renewal_interval, check_interval)
        self.autosave = AutosaveEngine(api, self.scheduler, self.lock, debounce, settle)

        self.quote = None
        self.items = []
        self.snapshot = []
        self._dirty_header = set()
        self._header_requires_version = False
        self._version_started = False
        self._next_temp_id = -1

    @classmethod
    def from_config(cls, config, api, scheduler=None) -> 'QuoteEditor':
        return cls(
            api, scheduler,
            renewal_interval=config.get('LOCK_RENEWAL_SECONDS', 120),
            check_interval=config.get('LOCK_CHECK_SECONDS', 30),
            debounce=config.get('AUTOSAVE_DEBOUNCE_SECONDS', 5.0),
            settle=config.get('AUTOSAVE_SETTLE_SECONDS', 3.0),
            default_tax_rate=config.get('DEFAULT_TAX_RATE', DEFAULT_TAX_RATE),
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def quote_id(self) -> Optional[int]:
        return self.quote.get('id') if self.quote else None

    @property
    def is_new(self) -> bool:
        return self.quote is not None and self.quote_id is None

    @property
    def edit_mode(self) -> bool:
        return self.quote is not None and self.lock.edit_mode

    @property
    def live_items(self) -> List[Dict[str, Any]]:
        return [item for item in self.items if not item.get('is_deleted')]

    @property
    def has_changes(self) -> bool:
        """Anything at all to save: item flags, order or header."""
        if self._dirty_header:
            return True
        if any(change_tracking.has_pending_changes(item) or item.get('is_replaced') or item.get('recovered')
               for item in self.items):
            return True
        return [item.get('id') for item in self.live_items] != [item.get('id') for item in self.snapshot]

    @property
    def requires_new_version(self) -> bool:
        return change_tracking.requires_new_version(self.quote, self.snapshot, self.items,
                                                    self._header_requires_version)

    def totals(self, customer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return compute_totals(self.quote, self.items, customer, self.default_tax_rate)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @_serialized
    def new_quote(self, header: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Start an unsaved quote. It is editable without a lock."""
        self._close()
        self.quote = {field: None for field in HEADER_FIELDS}
        self.quote.update(header or {})
        self.quote.update({'id': None, 'version': None})
        self.items, self.snapshot = [], []
        self.lock.attach(None)
        self.autosave.attach(None)
        return self.quote

    @_serialized
    def open(self, quote_id: int) -> Dict[str, Any]:
        """
        Load a persisted quote read-only and look for recoverable changes.

        Call start_editing() to take the lock.
        """
        self._close()
        self._load(self.api.get_quote(quote_id))
        self.lock.attach(quote_id)
        self.autosave.attach(quote_id)
        self.autosave.check_recovery()
        return self.quote

    @_serialized
    def start_editing(self) -> bool:
        return self.lock.acquire()

    @_serialized
    def stop_editing(self) -> None:
        self.autosave.pause()
        self.lock.release()
        self.autosave.resume()

    @_serialized
    def close(self) -> None:
        self._close()

    def _close(self) -> None:
        self.autosave.detach()
        self.lock.detach()
        self.quote = None
        self.items, self.snapshot = [], []
        self._dirty_header = set()
        self._header_requires_version = False
        self._version_started = False

    def _load(self, data: Dict[str, Any]) -> None:
        data = dict(data)
        items = data.pop('items', None) or []
        self.quote = data
        self.items = [dict(item) for item in items]
        self.snapshot = copy.deepcopy(items)
        self._dirty_header = set()
        self._header_requires_version = False
        self._version_started = False

    def _reload(self) -> None:
        self._load(self.api.get_quote(self.quote_id))

    # ------------------------------------------------------------------
    # Item mutations
    # ------------------------------------------------------------------

    def _ensure_editable(self) -> None:
        if self.quote is None:
            raise BusinessLogicError('No hay una cotización abierta.')
        if not self.lock.edit_mode:
            raise LockRequiredError()

    def _index_of(self, item_id: int) -> int:
        for index, item in enumerate(self.items):
            if item.get('id') == item_id:
                return index
        raise NotFoundError(f'Artículo {item_id} no encontrado.')

    def _apply(self, items: List[Dict[str, Any]]) -> None:
        """Swap in the new list in one step, then let autosave know."""
        self.items = items
        self.autosave.on_items_changed(items)

    def _new_item(self, data: Dict[str, Any]) -> Dict[str, Any]:
        item = change_tracking.clean_item(data)
        item.pop('order', None)
        item['id'] = self._next_temp_id
        self._next_temp_id -= 1
        item.setdefault('description', '')
        item.setdefault('unit_price', 0)
        item.setdefault('discount_pct', 0)
        item.setdefault('tax_rate', self.default_tax_rate)
        item['is_new'] = True
        return item

    @_serialized
    def add_item(self, data: Dict[str, Any], position: Optional[int] = None) -> Dict[str, Any]:
        """Add an unsaved item at 0-based ``position`` (end of the list when omitted)."""
        self._ensure_editable()
        item = self._new_item(data)
        items = list(self.items)
        if position is None:
            items.append(item)
        else:
            items.insert(max(0, min(position, len(items))), item)
        self._apply(items)
        return item

    @_serialized
    def update_item(self, item_id: int, **fields) -> Dict[str, Any]:
        self._ensure_editable()
        index = self._index_of(item_id)
        item = dict(self.items[index])
        item.update({key: value for key, value in fields.items() if key != 'id'})
        item.pop('recovered', None)
        if not item.get('is_new') and not item.get('is_replaced'):
            item['is_modified'] = True

        items = list(self.items)
        items[index] = item
        self._apply(items)
        return item

    @_serialized
    def remove_item(self, item_id: int) -> None:
        """Unsaved items disappear; saved ones are flagged for deletion."""
        self._ensure_editable()
        index = self._index_of(item_id)
        items = list(self.items)
        if items[index].get('is_new'):
            del items[index]
        else:
            item = dict(items[index])
            item['is_deleted'] = True
            item.pop('recovered', None)
            items[index] = item
        self._apply(items)

    @_serialized
    def replace_item(self, item_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Swap an item for another product in the same position.

        A saved item keeps its id and is flagged ``is_replaced``: on save it
        is deleted and the new content added in its place.
        """
        self._ensure_editable()
        index = self._index_of(item_id)
        old = self.items[index]

        item = change_tracking.clean_item(data)
        item.pop('order', None)
        item.setdefault('description', '')
        item.setdefault('unit_price', 0)
        item.setdefault('discount_pct', 0)
        item.setdefault('tax_rate', self.default_tax_rate)
        item['id'] = old.get('id')
        if old.get('is_new'):
            item['is_new'] = True
        else:
            item['is_replaced'] = True
            item['order'] = old.get('order')

        items = list(self.items)
        items[index] = item
        self._apply(items)
        return item

    @_serialized
    def move_item(self, item_id: int, position: int) -> None:
        """Move an item to 0-based ``position``."""
        self._ensure_editable()
        index = self._index_of(item_id)
        items = list(self.items)
        item = items.pop(index)
        items.insert(max(0, min(position, len(items))), item)
        self._apply(items)

    @_serialized
    def set_header(self, **fields) -> Dict[str, Any]:
        """
        Change header fields locally.

        On a saved quote, changing the sales condition, price list or
        document series makes the next save start a new version.
        """
        self._ensure_editable()
        unknown = set(fields) - set(HEADER_FIELDS)
        if unknown:
            raise BusinessLogicError(f"Campos desconocidos: {', '.join(sorted(unknown))}")
        if not self.is_new:
            for field in change_tracking.VERSIONED_HEADER_FIELDS:
                if field in fields and _text(fields[field]) != _text(self.quote.get(field)):
                    self._header_requires_version = True
            self._dirty_header.update(fields)
        self.quote = dict(self.quote, **fields)
        return self.quote

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    @property
    def recovery_available(self) -> bool:
        return self.autosave.recovery_available

    @_serialized
    def recover(self) -> List[Dict[str, Any]]:
        """Merge the autosaved changes into the live items (takes the lock if needed)."""
        if self.quote is None:
            raise BusinessLogicError('No hay una cotización abierta.')
        self.items = self.autosave.recover(self.items)
        # Recovered unsaved items keep the temporary ids of the previous session
        temp_ids = [item['id'] for item in self.items if isinstance(item.get('id'), int) and item['id'] < 0]
        if temp_ids:
            self._next_temp_id = min(self._next_temp_id, min(temp_ids) - 1)
        return self.items

    @_serialized
    def discard_recovery(self) -> None:
        self.autosave.discard()

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    @_serialized
    def save(self, reason: Optional[str] = None, update_prices: bool = False) -> Dict[str, Any]:
        """
        Persist the quote.

        A new quote is created with its items. On a saved quote, real item
        changes (or a change of sales condition, price list or document
        series) start a new version first, which needs ``reason``.

        Each step is marked done locally as it succeeds, so after a failure
        calling save() again finishes the remaining work without starting a
        second version.

        Raises:
            VersionReasonRequired: changes need a new version and no reason
                was given
        """
        if self.quote is None:
            raise BusinessLogicError('No hay una cotización abierta.')
        if self.is_new:
            return self._create()

        self._ensure_editable()
        needs_version = self.requires_new_version and not self._version_started
        reason = (reason or '').strip()
        if needs_version and not reason:
            raise VersionReasonRequired()

        self.autosave.pause()
        try:
            if needs_version:
                self.api.create_version(self.quote_id, reason, update_prices)
                self._version_started = True
            if self._dirty_header:
                self.api.update_quote(self.quote_id, {f: self.quote.get(f) for f in self._dirty_header})
                self._dirty_header = set()
            self._sync_items()
            data = self.api.get_quote(self.quote_id)
        except Exception:
            self.autosave.resume()
            raise

        self._load(data)
        self.autosave.clear()
        self.autosave.resume(self.settle)
        logger.info(f"Quote {self.quote_id} saved (version {self.quote.get('version')})")
        return self.quote

    def _create(self) -> Dict[str, Any]:
        payload = {field: self.quote.get(field) for field in HEADER_FIELDS if self.quote.get(field) is not None}
        payload['items'] = [_item_payload(item) for item in self.live_items]
        data = self.api.create_quote(payload)

        self._load(data)
        self.autosave.attach(self.quote_id)
        self.lock.persisted(self.quote_id)
        logger.info(f"Quote {self.quote.get('quote_number')} created")
        return self.quote

    def _sync_items(self) -> None:
        """
        Push item changes: deletions, replacements, additions (with their
        1-based position), modifications, then one bulk reorder.

        Every item is settled in ``self.items`` right after its call
        succeeds. A deletion the server no longer finds counts as done.
        """
        quote_id = self.quote_id

        for item in [i for i in self.items if i.get('is_deleted')]:
            if not item.get('is_new'):
                self._delete_on_server(item['id'])
            self.items = [i for i in self.items if i is not item]

        for item in [i for i in self.live_items if i.get('is_replaced')]:
            self._delete_on_server(item['id'])
            self._add_on_server(item)

        for item in [i for i in self.live_items if i.get('is_new')]:
            self._add_on_server(item)

        for item in [i for i in self.live_items if i.get('is_modified')]:
            self.api.update_item(quote_id, item['id'], _item_payload(item))
            self._settle(item, item['id'])

        if self.live_items:
            self.api.reorder_items(quote_id, [item['id'] for item in self.live_items])

    def _delete_on_server(self, item_id: int) -> None:
        try:
            self.api.delete_item(self.quote_id, item_id)
        except NotFoundError:
            logger.info(f"Item {item_id} of quote {self.quote_id} was already deleted")

    def _add_on_server(self, item: Dict[str, Any]) -> None:
        position = next(number for number, live in enumerate(self.live_items, start=1) if live is item)
        created = self.api.add_item(self.quote_id, dict(_item_payload(item), order=position))
        self._settle(item, created['id'])

    def _settle(self, item: Dict[str, Any], item_id: int) -> None:
        """Swap ``item`` for a copy with its server id and no pending flags."""
        settled = {key: value for key, value in item.items()
                   if key not in ('is_new', 'is_modified', 'is_replaced', 'recovered', 'order')}
        settled['id'] = item_id
        self.items = [settled if i is item else i for i in self.items]

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def _server_operation(self, call, *args, **kwargs):
        """Run a server-side content change with autosave paused, then reload."""
        self._ensure_editable()
        if self.is_new:
            raise BusinessLogicError('Guarde la cotización antes de operar con versiones.')
        self.autosave.pause()
        try:
            result = call(self.quote_id, *args, **kwargs)
            self._reload()
        except Exception:
            self.autosave.resume()
            raise
        self.autosave.clear()
        self.autosave.resume(self.settle)
        return result

    def list_versions(self) -> List[Dict[str, Any]]:
        return self.api.list_versions(self.quote_id)

    def version_diff(self, version: int) -> Dict[str, Any]:
        return self.api.version_diff(self.quote_id, version)

    @_serialized
    def create_version(self, reason: str, update_prices: bool = False) -> Dict[str, Any]:
        if not (reason or '').strip():
            raise VersionReasonRequired()
        self._server_operation(self.api.create_version, reason, update_prices)
        return self.quote

    @_serialized
    def restore_version(self, version: int, reason: Optional[str] = None,
                        update_prices: bool = False) -> Dict[str, Any]:
        """Make ``version`` the content of a new current version."""
        self._server_operation(self.api.restore_version, version, reason, update_prices)
        return self.quote

    def analyze_versions(self, version_a: int, version_b: int, default_version: str = 'B') -> Dict[str, Any]:
        """Server analysis of two versions plus the default item selection."""
        analysis = self.api.analyze_versions(self.quote_id, version_a, version_b)
        analysis['selections'] = merge_service.initial_selections(analysis, default_version)
        return analysis

    @_serialized
    def combine_versions(self, version_a: int, version_b: int, reason: str,
                         selections: Optional[List[Dict[str, Any]]] = None, default_version: str = 'B',
                         commercial_fields_source: str = 'B', update_prices: bool = False) -> Dict[str, Any]:
        """
        Combine two versions into a new current version.

        Raises:
            MergeAnalysisError: no reason, or the server rejected the request
        """
        if not (reason or '').strip():
            raise MergeAnalysisError('Debe indicar el motivo de la combinación.')
        payload = {
            'version_a': version_a,
            'version_b': version_b,
            'default_version': default_version,
            'commercial_fields_source': commercial_fields_source,
            'update_prices': update_prices,
            'reason': reason,
        }
        if selections is not None:
            payload['selections'] = selections
        self._server_operation(self.api.combine_versions, payload)
        return self.quote

    # ------------------------------------------------------------------
    # State and ERP
    # ------------------------------------------------------------------

    def _ensure_saved(self) -> None:
        self._ensure_editable()
        if self.is_new or self.has_changes:
            raise BusinessLogicError('Guarde los cambios antes de continuar.')

    @_serialized
    def set_state(self, state: str) -> Dict[str, Any]:
        """Move the saved quote to another state (sent, approved, rejected...)."""
        self._ensure_saved()
        self.api.update_quote(self.quote_id, {'state': state})
        self._reload()
        return self.quote

    @_serialized
    def create_erp_order(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Push the saved quote to Tango.

        Raises:
            BusinessLogicError: there are unsaved changes
            ErpRejectedError: Tango refused the order; the quote is unchanged
        """
        self._ensure_saved()
        self.api.create_order(self.quote_id, options)
        self._reload()
        return self.quote
