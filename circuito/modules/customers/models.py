from circuito.database.database import Base
from sqlalchemy import Column, String, Boolean, Numeric, Uuid
from uuid import uuid4
from circuito.common.mixins import TimestampMixin


class Customer(Base, TimestampMixin):
    """
    Clientes de la distribuidora

    `balance` es el saldo de cuenta corriente: lo incrementa la facturación
    y lo decrementa la aprobación de recibos.
    """
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    business_name = Column(String(200), nullable=True)
    cuit = Column(String(13), nullable=True, index=True)
    tax_condition = Column(String(40), nullable=False, default="RESPONSABLE_INSCRIPTO")
    email = Column(String(100), nullable=True)
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
