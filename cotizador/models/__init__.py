"""Models package - exports all SQLAlchemy models."""
from cotizador.models.quote import Quote, QuoteState, HEADER_FIELDS, COMMERCIAL_FIELDS
from cotizador.models.quote_item import QuoteItem, ITEM_FIELDS
from cotizador.models.quote_version import QuoteVersion
from cotizador.models.quote_lock import QuoteLock
from cotizador.models.quote_autosave import QuoteAutosave
from cotizador.models.product import Product
from cotizador.models.customer import Customer, WithholdingRule, WithholdingBase

__all__ = [
    'Quote', 'QuoteState', 'HEADER_FIELDS', 'COMMERCIAL_FIELDS',
    'QuoteItem', 'ITEM_FIELDS', 'QuoteVersion', 'QuoteLock', 'QuoteAutosave',
    'Product', 'Customer', 'WithholdingRule', 'WithholdingBase',
]
