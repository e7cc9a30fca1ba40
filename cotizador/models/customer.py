"""Customer model and its tax withholding (percepción) rules."""
import enum
from sqlalchemy import Column, BigInteger, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from cotizador.database import Base, BigIntPK
from cotizador.utils.number_format import to_number


class WithholdingBase(enum.Enum):
    """What a percepción is computed on."""
    NET = "NET"
    NET_TAX = "NET_TAX"


class Customer(Base):
    """Customer (cliente), as synchronized from Tango."""

    __tablename__ = 'customer'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    tax_id = Column(String(20), nullable=True)

    # Relationships
    withholdings = relationship('WithholdingRule', back_populates='customer', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Customer(code='{self.code}', name='{self.name}')>"

    def to_dict(self):
        return {
            'code': self.code,
            'name': self.name,
            'tax_id': self.tax_id,
            'withholdings': [rule.to_dict() for rule in self.withholdings],
        }


class WithholdingRule(Base):
    """A percepción the customer is subject to."""

    __tablename__ = 'withholding_rule'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)
    description = Column(String(200), nullable=True)
    tax_type = Column(String(20), nullable=True)
    base = Column(String(10), nullable=False, default=WithholdingBase.NET.value)
    rate = Column(Numeric(8, 4), nullable=False, default=0)
    min_taxable = Column(Numeric(14, 2), nullable=False, default=0)
    min_amount = Column(Numeric(14, 2), nullable=False, default=0)

    customer = relationship('Customer', back_populates='withholdings')

    def to_dict(self):
        return {
            'code': self.code,
            'description': self.description,
            'tax_type': self.tax_type,
            'base': self.base,
            'rate': to_number(self.rate),
            'min_taxable': to_number(self.min_taxable),
            'min_amount': to_number(self.min_amount),
        }
