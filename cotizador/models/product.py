"""Product model (catalog pricing)."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime
from sqlalchemy.sql import func
from cotizador.database import Base, BigIntPK


class Product(Base):
    """Catalog product. Only used to refresh prices when a version asks for it."""

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    code = Column(String(30), nullable=False, unique=True)
    description = Column(String(400), nullable=False)
    unit_price = Column(Numeric(14, 4), nullable=True)
    tax_rate = Column(Numeric(6, 2), nullable=False, default=21)
    active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(code='{self.code}', price={self.unit_price})>"
