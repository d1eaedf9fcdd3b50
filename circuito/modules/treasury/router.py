from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, BILLING_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.treasury.schemas import TreasuryAccountCreate, TreasuryAccountOut, TreasuryAccountUpdate
from circuito.modules.treasury.service import TreasuryService

treasury_router = APIRouter(prefix="/treasury-accounts", tags=["Treasury"])


@treasury_router.post("/", response_model=TreasuryAccountOut, status_code=status.HTTP_201_CREATED)
def create_treasury_account(
    data: TreasuryAccountCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_approver())
):
    return TreasuryService(db).create_account(data)


@treasury_router.get("/", response_model=List[TreasuryAccountOut])
def list_treasury_accounts(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return TreasuryService(db).get_accounts(active_only)


@treasury_router.patch("/{account_id}", response_model=TreasuryAccountOut)
def update_treasury_account(
    account_id: UUID,
    data: TreasuryAccountUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_approver())
):
    return TreasuryService(db).update_account(account_id, data)
