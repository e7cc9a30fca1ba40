"""Client-side engines for editing quotes against the Cotizador API."""
from cotizador.client.api_client import CotizadorApiClient
from cotizador.client.autosave import AutosaveEngine, merge_recovered_items
from cotizador.client.editor import QuoteEditor
from cotizador.client.lock_manager import LockManager, LockState
from cotizador.client.scheduler import Scheduler, ThreadScheduler

__all__ = [
    'AutosaveEngine',
    'CotizadorApiClient',
    'LockManager',
    'LockState',
    'QuoteEditor',
    'Scheduler',
    'ThreadScheduler',
    'merge_recovered_items',
]
