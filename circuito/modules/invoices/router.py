from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, BILLING_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.invoices.models import InvoiceStatus
from circuito.modules.invoices.schemas import InvoiceDetail, InvoiceList
from circuito.modules.invoices.service import InvoiceService
from circuito.modules.workflow.schemas import DispatchResult

invoices_router = APIRouter(prefix="/invoices", tags=["Invoices"])


@invoices_router.get("/", response_model=InvoiceList)
def list_invoices(
    customer_id: Optional[UUID] = Query(None),
    status: Optional[InvoiceStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InvoiceService(db).get_invoices(customer_id, status, limit, offset)


@invoices_router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InvoiceService(db).get_invoice(invoice_id)


@invoices_router.post("/{invoice_id}/send-to-accounting", response_model=DispatchResult, status_code=status.HTTP_202_ACCEPTED)
def send_invoice_to_accounting(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Reintentar el envío a Colppy de una factura pendiente"""
    return InvoiceService(db).resend_to_accounting(invoice_id)
