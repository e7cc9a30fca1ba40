"""Quote model for cotizaciones."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Date, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from cotizador.database import Base, BigIntPK
from cotizador.utils.number_format import to_number


class QuoteState(enum.Enum):
    """Quote state enum."""
    CREATED = "created"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"
    ARCHIVED = "archived"


# Header fields the client may edit; everything else is owned by the backend.
HEADER_FIELDS = (
    'customer_code', 'customer_name', 'price_list', 'sales_condition',
    'carrier_code', 'document_series', 'currency', 'general_discount_pct',
    'valid_until', 'notes',
)

# Fields a combine copies wholesale from one of the two versions.
COMMERCIAL_FIELDS = ('general_discount_pct', 'sales_condition', 'price_list')


class Quote(Base):
    """
    Quote (Cotización).

    The row and its items are the live content of version ``version``.
    Older versions are immutable ``QuoteVersion`` snapshots.
    """

    __tablename__ = 'quote'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_number = Column(String(64), nullable=False, unique=True)
    version = Column(Integer, nullable=False, default=1)
    state = Column(String(20), nullable=False, default=QuoteState.CREATED.value)
    customer_code = Column(String(20), nullable=True)
    customer_name = Column(String(255), nullable=True)
    price_list = Column(String(20), nullable=True)
    sales_condition = Column(String(20), nullable=True)
    carrier_code = Column(String(20), nullable=True)
    document_series = Column(String(20), nullable=True)
    currency = Column(String(3), nullable=False, default='ARS')
    general_discount_pct = Column(Numeric(6, 2), nullable=False, default=0)
    valid_until = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    erp_order_number = Column(String(64), nullable=True)
    # Who created the live version and why; copied into QuoteVersion when archived
    version_reason = Column(Text, nullable=True)
    version_modified_by = Column(BigInteger, nullable=True)
    version_modified_by_name = Column(String(255), nullable=True)
    version_modified_at = Column(DateTime, nullable=True)
    created_by = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    items = relationship(
        'QuoteItem', back_populates='quote', cascade='all, delete-orphan',
        order_by='QuoteItem.order'
    )
    versions = relationship(
        'QuoteVersion', back_populates='quote', cascade='all, delete-orphan',
        order_by='QuoteVersion.version'
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', version={self.version}, state='{self.state}')>"

    def header(self):
        """Header field values, JSON-ready."""
        return {field: to_number(getattr(self, field)) for field in HEADER_FIELDS}

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'quote_number': self.quote_number,
            'version': self.version,
            'state': self.state,
            'erp_order_number': self.erp_order_number,
            'version_reason': self.version_reason,
            'created_by': self.created_by,
            'created_at': to_number(self.created_at),
            'updated_at': to_number(self.updated_at),
        }
        data.update(self.header())
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data
