from circuito.database.database import Base
from sqlalchemy import Column, String, Boolean, Uuid
from uuid import uuid4
from circuito.common.mixins import TimestampMixin


class TreasuryAccount(Base, TimestampMixin):
    """
    Cuentas de tesorería (bancos, caja, valores a depositar)

    Cada cuenta apunta a una cuenta del plan contable por código; es la
    que se debita en el asiento del recibo.
    """
    __tablename__ = "treasury_accounts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    account_code = Column(String(20), nullable=False)
    currency = Column(String(3), nullable=False, default="ARS")
    is_active = Column(Boolean, nullable=False, default=True)
