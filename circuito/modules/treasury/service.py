import logging
from typing import List
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from circuito.modules.treasury.models import TreasuryAccount
from circuito.modules.treasury.schemas import TreasuryAccountCreate, TreasuryAccountUpdate

logger = logging.getLogger(__name__)


class TreasuryService:
    def __init__(self, db: Session):
        self.db = db

    def get_account(self, account_id: UUID) -> TreasuryAccount:
        account = self.db.query(TreasuryAccount).filter(TreasuryAccount.id == account_id).first()
        if not account:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cuenta de tesorería no encontrada"
            )
        return account

    def get_accounts(self, active_only: bool = True) -> List[TreasuryAccount]:
        query = self.db.query(TreasuryAccount)
        if active_only:
            query = query.filter(TreasuryAccount.is_active.is_(True))
        return query.order_by(TreasuryAccount.name.asc()).all()

    def create_account(self, data: TreasuryAccountCreate) -> TreasuryAccount:
        try:
            account = TreasuryAccount(name=data.name, account_code=data.account_code, currency=data.currency)
            self.db.add(account)
            self.db.commit()
            self.db.refresh(account)
            logger.info(f"Cuenta de tesorería {account.name} ({account.account_code}) creada")
            return account
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando cuenta de tesorería: {str(e)}"
            )

    def update_account(self, account_id: UUID, data: TreasuryAccountUpdate) -> TreasuryAccount:
        """Las cuentas no se borran: se desactivan para que no se usen en recibos nuevos."""
        try:
            account = self.get_account(account_id)
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(account, field, value)
            self.db.commit()
            self.db.refresh(account)
            return account
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando cuenta de tesorería: {str(e)}"
            )
