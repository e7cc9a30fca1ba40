"""QuoteLock model: one time-limited edit permit per quote."""
from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey
from cotizador.database import Base


class QuoteLock(Base):
    """
    Quote Lock (Bloqueo de edición).

    The quote id is the primary key, so the table can never hold two locks
    for the same quote. A row whose ``expires_at`` is in the past is free.
    """

    __tablename__ = 'quote_lock'

    quote_id = Column(BigInteger, ForeignKey('quote.id'), primary_key=True)
    user_id = Column(BigInteger, nullable=False)
    user_name = Column(String(255), nullable=True)
    acquired_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<QuoteLock(quote_id={self.quote_id}, user_id={self.user_id}, expires_at={self.expires_at})>"

    def is_active(self, now):
        return self.expires_at > now

    def holder(self):
        return {'id': self.user_id, 'name': self.user_name}
