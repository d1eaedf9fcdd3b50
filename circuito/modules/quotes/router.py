from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, BILLING_ROLES, SALES_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.quotes.schemas import (
    BoardOut, DeliveryNoteFromQuote, DeliveryNoteGenerationResult, InvoiceFromQuote,
    InvoiceGenerationResult, QuoteCreate, QuoteList, QuoteOut, QuoteStatusChange,
    QuoteStatusChangeResult
)
from circuito.modules.quotes.service import QuoteService
from circuito.modules.quotes.transitions import QuoteStatus
from circuito.modules.workflow.schemas import DispatchResult, StatusHistoryOut

quotes_router = APIRouter(prefix="/quotes", tags=["Quotes"])


@quotes_router.post("/", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def create_quote(
    quote_data: QuoteCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """Crear cotización en estado DRAFT"""
    return QuoteService(db).create_quote(quote_data, auth_context)


@quotes_router.get("/", response_model=QuoteList)
def list_quotes(
    status: Optional[QuoteStatus] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return QuoteService(db).get_quotes(status, customer_id, limit, offset)


@quotes_router.get("/board", response_model=BoardOut)
def get_billing_board(
    customer_id: Optional[UUID] = Query(None),
    currency: Optional[str] = Query(None, pattern=r"^(ARS|USD)$"),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Tablero de facturación: cotizaciones aceptadas con ítems pendientes,
    en columnas ready / partial / pending según el stock.
    """
    return QuoteService(db).get_board(customer_id, currency)


@quotes_router.get("/{quote_id}", response_model=QuoteOut)
def get_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return QuoteService(db).get_quote(quote_id)


@quotes_router.patch("/{quote_id}/status", response_model=QuoteStatusChangeResult)
def change_quote_status(
    quote_id: UUID,
    change: QuoteStatusChange,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """
    Cambiar estado de una cotización.

    - REJECTED requiere `rejection_reason`
    - las reversiones y la cancelación requieren `revert_reason`
    - CONVERTED y EXPIRED solo los asigna el sistema
    """
    return QuoteService(db).change_status(quote_id, change, auth_context)


@quotes_router.get("/{quote_id}/history", response_model=List[StatusHistoryOut])
def get_quote_history(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return QuoteService(db).get_status_history(quote_id)


@quotes_router.post("/{quote_id}/invoice", response_model=InvoiceGenerationResult, status_code=status.HTTP_201_CREATED)
def generate_invoice(
    quote_id: UUID,
    data: InvoiceFromQuote,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Facturar una cotización aceptada (total o por ítems)"""
    return QuoteService(db).generate_invoice(quote_id, data, auth_context)


@quotes_router.post("/{quote_id}/delivery-note", response_model=DeliveryNoteGenerationResult, status_code=status.HTTP_201_CREATED)
def generate_delivery_note(
    quote_id: UUID,
    data: DeliveryNoteFromQuote,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return QuoteService(db).generate_delivery_note(quote_id, data, auth_context)


@quotes_router.post("/{quote_id}/duplicate", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def duplicate_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """Duplicar una cotización (en cualquier estado) como nueva DRAFT"""
    return QuoteService(db).duplicate_quote(quote_id, auth_context)


@quotes_router.post("/{quote_id}/send-email", response_model=DispatchResult, status_code=status.HTTP_202_ACCEPTED)
def resend_quote_email(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """Reintentar el envío por email de una cotización en estado SENT"""
    return QuoteService(db).resend_email(quote_id)
