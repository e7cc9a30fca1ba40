"""QuoteItem model for quote line items."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey, JSON
from sqlalchemy.orm import relationship
from cotizador.database import Base, BigIntPK
from cotizador.utils.number_format import to_number


ITEM_FIELDS = ('code', 'description', 'quantity', 'unit_price', 'discount_pct', 'tax_rate')


class QuoteItem(Base):
    """
    Quote Item (Artículo de la cotización).

    Stores a snapshot of product details so later catalog changes do not
    alter the quote until prices are explicitly refreshed.
    """

    __tablename__ = 'quote_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=False, index=True)
    order = Column(Integer, nullable=False, default=1)
    code = Column(String(30), nullable=False)
    description = Column(String(400), nullable=False, default='')
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(14, 4), nullable=False, default=0)
    discount_pct = Column(Numeric(6, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 2), nullable=False, default=21)
    item_metadata = Column('metadata', JSON, nullable=True)

    # Relationships
    quote = relationship('Quote', back_populates='items')

    def __repr__(self):
        return f"<QuoteItem(id={self.id}, quote_id={self.quote_id}, code='{self.code}', qty={self.quantity})>"

    def to_dict(self):
        data = {'id': self.id, 'order': self.order, 'metadata': self.item_metadata}
        data.update({field: to_number(getattr(self, field)) for field in ITEM_FIELDS})
        return data
