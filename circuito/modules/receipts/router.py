from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, BILLING_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.receipts.schemas import (
    PendingInvoiceOut, ReceiptBase, ReceiptCreate, ReceiptOut, ReceiptPreviewOut,
    ReceiptResult, ReceiptUpdate, ReceiptVoid
)
from circuito.modules.receipts.service import ReceiptService
from circuito.modules.receipts.transitions import ReceiptStatus
from circuito.modules.workflow.schemas import StatusHistoryOut

receipts_router = APIRouter(prefix="/receipts", tags=["Receipts"])


@receipts_router.post("/", response_model=ReceiptResult, status_code=status.HTTP_201_CREATED)
def create_receipt(
    data: ReceiptCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Crear un recibo en borrador.

    Con `approve=true` (solo ADMIN / CONTADOR) se intenta aprobarlo a
    continuación; si no cuadra queda en borrador y se informa un warning.
    """
    return ReceiptService(db).create_receipt(data, auth_context)


@receipts_router.post("/preview", response_model=ReceiptPreviewOut)
def preview_receipt_balance(
    data: ReceiptBase,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Calcular totales y diferencia de un recibo sin guardarlo."""
    return ReceiptService(db).preview_balance(data)


@receipts_router.get("/pending-invoices", response_model=List[PendingInvoiceOut])
def list_pending_invoices(
    customer_id: UUID = Query(...),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ReceiptService(db).get_pending_invoices(customer_id)


@receipts_router.get("/", response_model=List[ReceiptOut])
def list_receipts(
    customer_id: Optional[UUID] = Query(None),
    status: Optional[ReceiptStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ReceiptService(db).get_receipts(customer_id, status, limit, offset)


@receipts_router.get("/{receipt_id}", response_model=ReceiptOut)
def get_receipt(
    receipt_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ReceiptService(db).get_receipt(receipt_id)


@receipts_router.put("/{receipt_id}", response_model=ReceiptResult)
def update_receipt(
    receipt_id: UUID,
    data: ReceiptUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ReceiptService(db).update_receipt(receipt_id, data, auth_context)


@receipts_router.post("/{receipt_id}/approve", response_model=ReceiptResult)
def approve_receipt(
    receipt_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_approver())
):
    """Aprobar un recibo. Debe cuadrar: |diferencia| < 0.01."""
    return ReceiptService(db).approve_receipt(receipt_id, auth_context)


@receipts_router.post("/{receipt_id}/void", response_model=ReceiptResult)
def void_receipt(
    receipt_id: UUID,
    data: ReceiptVoid,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ReceiptService(db).void_receipt(receipt_id, data.reason, auth_context)


@receipts_router.get("/{receipt_id}/history", response_model=List[StatusHistoryOut])
def get_receipt_history(
    receipt_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ReceiptService(db).get_status_history(receipt_id)
