from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, BILLING_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.delivery_notes.schemas import (
    DeliveryNoteInvoiceResult, DeliveryNoteOut, DeliveryNoteStatusChange,
    DeliveryNoteStatusChangeResult, InvoiceFromDeliveryNote
)
from circuito.modules.delivery_notes.service import DeliveryNoteService
from circuito.modules.delivery_notes.transitions import DeliveryNoteStatus
from circuito.modules.workflow.schemas import DispatchResult, StatusHistoryOut

delivery_notes_router = APIRouter(prefix="/delivery-notes", tags=["Delivery Notes"])


@delivery_notes_router.get("/", response_model=List[DeliveryNoteOut])
def list_delivery_notes(
    status: Optional[DeliveryNoteStatus] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return DeliveryNoteService(db).get_delivery_notes(status, customer_id, limit, offset)


@delivery_notes_router.get("/{delivery_note_id}", response_model=DeliveryNoteOut)
def get_delivery_note(
    delivery_note_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return DeliveryNoteService(db).get_delivery_note(delivery_note_id)


@delivery_notes_router.patch("/{delivery_note_id}/status", response_model=DeliveryNoteStatusChangeResult)
def change_delivery_note_status(
    delivery_note_id: UUID,
    change: DeliveryNoteStatusChange,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """PENDING -> PREPARING -> READY -> DISPATCHED -> DELIVERED. Cancelar requiere motivo."""
    return DeliveryNoteService(db).change_status(delivery_note_id, change, auth_context)


@delivery_notes_router.get("/{delivery_note_id}/history", response_model=List[StatusHistoryOut])
def get_delivery_note_history(
    delivery_note_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return DeliveryNoteService(db).get_status_history(delivery_note_id)


@delivery_notes_router.post("/{delivery_note_id}/invoice", response_model=DeliveryNoteInvoiceResult, status_code=status.HTTP_201_CREATED)
def invoice_delivery_note(
    delivery_note_id: UUID,
    data: InvoiceFromDeliveryNote,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return DeliveryNoteService(db).generate_invoice(delivery_note_id, data, auth_context)


@delivery_notes_router.post("/{delivery_note_id}/send-to-accounting", response_model=DispatchResult, status_code=status.HTTP_202_ACCEPTED)
def send_delivery_note_to_accounting(
    delivery_note_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Reintentar el alta del remito en Colppy"""
    return DeliveryNoteService(db).resend_to_accounting(delivery_note_id)
