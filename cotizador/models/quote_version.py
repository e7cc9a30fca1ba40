"""QuoteVersion model: immutable snapshots of past quote content."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Text, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from cotizador.database import Base, BigIntPK
from cotizador.utils.number_format import to_number


class QuoteVersion(Base):
    """
    Quote Version (Versión de cotización).

    Written once when a version is archived and never updated afterwards.
    ``header`` and ``items`` hold the JSON form of the quote at that time.
    """

    __tablename__ = 'quote_version'
    __table_args__ = (UniqueConstraint('quote_id', 'version', name='uq_quote_version'),)

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    modified_by = Column(BigInteger, nullable=True)
    modified_by_name = Column(String(255), nullable=True)
    modified_at = Column(DateTime, nullable=False, server_default=func.now())
    header = Column(JSON, nullable=False)
    items = Column(JSON, nullable=False)
    total = Column(Numeric(14, 2), nullable=False, default=0)

    # Relationships
    quote = relationship('Quote', back_populates='versions')

    def __repr__(self):
        return f"<QuoteVersion(quote_id={self.quote_id}, version={self.version}, reason='{self.reason}')>"

    def to_dict(self):
        return {
            'version': self.version,
            'reason': self.reason,
            'modified_by': self.modified_by,
            'modified_by_name': self.modified_by_name,
            'modified_at': to_number(self.modified_at),
            'header': dict(self.header or {}),
            'items': list(self.items or []),
            'total': to_number(self.total),
            'current': False,
        }
