"""QuoteAutosave model: scratch copy of unsaved item changes."""
from sqlalchemy import Column, BigInteger, DateTime, ForeignKey, JSON
from cotizador.database import Base
from cotizador.utils.number_format import to_number


class QuoteAutosave(Base):
    """
    Quote Autosave (Autoguardado).

    One record per quote, overwritten by every background write. It is not
    authoritative: it only exists to offer recovery after a crash or reload.
    """

    __tablename__ = 'quote_autosave'

    quote_id = Column(BigInteger, ForeignKey('quote.id'), primary_key=True)
    user_id = Column(BigInteger, nullable=True)
    items = Column(JSON, nullable=False)
    saved_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<QuoteAutosave(quote_id={self.quote_id}, items={len(self.items or [])}, saved_at={self.saved_at})>"

    def to_dict(self):
        return {
            'quote_id': self.quote_id,
            'user_id': self.user_id,
            'items': list(self.items or []),
            'timestamp': to_number(self.saved_at),
        }
