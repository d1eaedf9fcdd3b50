from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, BILLING_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.purchase_invoices.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceOut, PurchaseInvoicePayment,
    PurchaseInvoiceStatusChange, PurchaseInvoiceStatusChangeResult
)
from circuito.modules.purchase_invoices.service import PurchaseInvoiceService
from circuito.modules.purchase_invoices.transitions import PurchaseInvoiceStatus
from circuito.modules.workflow.schemas import StatusHistoryOut

purchase_invoices_router = APIRouter(prefix="/purchase-invoices", tags=["Purchase Invoices"])


@purchase_invoices_router.post("/", response_model=PurchaseInvoiceOut, status_code=status.HTTP_201_CREATED)
def create_purchase_invoice(
    data: PurchaseInvoiceCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return PurchaseInvoiceService(db).create_purchase_invoice(data, auth_context)


@purchase_invoices_router.get("/", response_model=List[PurchaseInvoiceOut])
def list_purchase_invoices(
    status: Optional[PurchaseInvoiceStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return PurchaseInvoiceService(db).get_purchase_invoices(status, limit, offset)


@purchase_invoices_router.get("/{purchase_invoice_id}", response_model=PurchaseInvoiceOut)
def get_purchase_invoice(
    purchase_invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return PurchaseInvoiceService(db).get_purchase_invoice(purchase_invoice_id)


@purchase_invoices_router.patch("/{purchase_invoice_id}/status", response_model=PurchaseInvoiceStatusChangeResult)
def change_purchase_invoice_status(
    purchase_invoice_id: UUID,
    change: PurchaseInvoiceStatusChange,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return PurchaseInvoiceService(db).change_status(purchase_invoice_id, change, auth_context)


@purchase_invoices_router.post("/{purchase_invoice_id}/payments", response_model=PurchaseInvoiceStatusChangeResult)
def record_purchase_invoice_payment(
    purchase_invoice_id: UUID,
    payment: PurchaseInvoicePayment,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_approver())
):
    return PurchaseInvoiceService(db).record_payment(purchase_invoice_id, payment, auth_context)


@purchase_invoices_router.get("/{purchase_invoice_id}/history", response_model=List[StatusHistoryOut])
def get_purchase_invoice_history(
    purchase_invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return PurchaseInvoiceService(db).get_status_history(purchase_invoice_id)
