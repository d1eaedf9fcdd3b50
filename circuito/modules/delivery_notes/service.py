import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from circuito.core.celery import dispatch_after_commit
from circuito.core.config import settings
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.delivery_notes.models import DeliveryNote
from circuito.modules.delivery_notes.schemas import DeliveryNoteStatusChange, InvoiceFromDeliveryNote
from circuito.modules.delivery_notes.transitions import (
    DELIVERY_NOTE_GRAPH, DeliveryNoteStatus, INVOICEABLE_STATUSES
)
from circuito.modules.integrations.tasks import (
    submit_delivery_note_to_accounting_task, submit_invoice_to_accounting_task
)
from circuito.modules.invoices.models import Invoice, InvoiceStatus
from circuito.modules.invoices.service import InvoiceLine, InvoiceService
from circuito.modules.quotes.fulfillment import FulfillmentError, apply_invoicing
from circuito.modules.quotes.models import Quote
from circuito.modules.workflow.exceptions import WorkflowError
from circuito.modules.workflow.machine import TransitionContext
from circuito.modules.workflow.models import DocumentType
from circuito.modules.workflow.service import WorkflowService, http_error_from_workflow

logger = logging.getLogger(__name__)


class DeliveryNoteService:
    def __init__(self, db: Session):
        self.db = db
        self.workflow = WorkflowService(db)

    def get_delivery_note(self, delivery_note_id: UUID) -> DeliveryNote:
        note = self.db.query(DeliveryNote).options(selectinload(DeliveryNote.items)).filter(
            DeliveryNote.id == delivery_note_id
        ).first()
        if not note:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Remito no encontrado"
            )
        return note

    def get_delivery_notes(self, status_filter: Optional[DeliveryNoteStatus] = None,
                           customer_id: Optional[UUID] = None, limit: int = 100, offset: int = 0):
        query = self.db.query(DeliveryNote)
        if status_filter:
            query = query.filter(DeliveryNote.status == status_filter)
        if customer_id:
            query = query.filter(DeliveryNote.customer_id == customer_id)
        return query.order_by(DeliveryNote.delivery_number.desc()).offset(offset).limit(limit).all()

    def get_status_history(self, delivery_note_id: UUID):
        note = self.get_delivery_note(delivery_note_id)
        return self.workflow.history(DocumentType.DELIVERY_NOTE, note.id)

    def change_status(self, delivery_note_id: UUID, change: DeliveryNoteStatusChange, auth_context: AuthContext) -> dict:
        try:
            note = self.get_delivery_note(delivery_note_id)
            try:
                outcome = self.workflow.apply(note, DELIVERY_NOTE_GRAPH, change.status, TransitionContext(
                    changed_by=auth_context.actor,
                    reason=change.reason,
                    notes=change.notes,
                ))
            except WorkflowError as e:
                logger.info(f"Transición rechazada en remito {note.delivery_number}: {e.message}")
                raise http_error_from_workflow(e)

            if change.tracking_number:
                note.tracking_number = change.tracking_number
            if outcome.to_status == DeliveryNoteStatus.DELIVERED:
                note.delivery_date = change.delivery_date or datetime.now(timezone.utc)
                note.received_by = change.received_by

            self.db.commit()
            self.db.refresh(note)
            return {"delivery_note": note, "linked_documents_to_clear": [], "warnings": []}

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error cambiando estado del remito: {str(e)}"
            )

    def generate_invoice(self, delivery_note_id: UUID, data: InvoiceFromDeliveryNote, auth_context: AuthContext) -> dict:
        """
        Factura un remito listo para despachar (o ya despachado / entregado).

        Los precios salen de la cotización de origen. Las cantidades se
        controlan contra lo pendiente de facturar de cada ítem.
        """
        try:
            note = self.get_delivery_note(delivery_note_id)
            if note.status not in INVOICEABLE_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"No se puede facturar un remito en estado {note.status.value}"
                )

            already_invoiced = self.db.query(Invoice).filter(
                Invoice.delivery_note_id == note.id,
                Invoice.status != InvoiceStatus.CANCELLED
            ).first()
            if already_invoiced:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"El remito ya fue facturado ({already_invoiced.invoice_number})"
                )

            invoices = InvoiceService(self.db)
            quote = self.db.query(Quote).filter(Quote.id == note.quote_id).first() if note.quote_id else None
            prices = {}
            if quote is not None:
                prices = {item.id: item.unit_price for item in quote.items}
                request = {}
                for item in note.items:
                    if item.quote_item_id is not None:
                        key = str(item.quote_item_id)
                        request[key] = request.get(key, 0) + item.quantity
                try:
                    apply_invoicing(invoices.fulfillment_items(quote.items), request)
                except FulfillmentError as e:
                    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

            invoice = invoices.create_invoice(
                customer=note.customer,
                lines=[
                    InvoiceLine(
                        description=item.description,
                        quantity=item.quantity,
                        unit_price=prices.get(item.quote_item_id, 0),
                        quote_item_id=item.quote_item_id,
                    )
                    for item in note.items
                ],
                created_by=auth_context.actor,
                quote_id=note.quote_id,
                delivery_note_id=note.id,
                currency=quote.currency if quote else "ARS",
                exchange_rate=quote.exchange_rate if quote else 1,
                point_of_sale=data.point_of_sale,
                notes=data.notes,
            )

            self.db.commit()
            self.db.refresh(invoice)

            warnings = []
            warning = dispatch_after_commit(submit_invoice_to_accounting_task, str(invoice.id))
            if warning:
                warnings.append(warning)
            return {"invoice": invoice, "warnings": warnings}

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error facturando remito: {str(e)}"
            )

    def resend_to_accounting(self, delivery_note_id: UUID) -> dict:
        """Vuelve a encolar el alta del remito en Colppy si todavía no quedó vinculado."""
        note = self.get_delivery_note(delivery_note_id)
        if not settings.COLPPY_ENABLED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La integración con Colppy está deshabilitada"
            )
        if note.status == DeliveryNoteStatus.CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No se puede enviar a Colppy un remito cancelado"
            )
        quote = self.db.get(Quote, note.quote_id) if note.quote_id else None
        if quote is not None and quote.colppy_delivery_note_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"El remito {note.delivery_number} ya figura en Colppy ({quote.colppy_delivery_note_id})"
            )

        warning = dispatch_after_commit(submit_delivery_note_to_accounting_task, str(note.id))
        return {
            "document_id": note.id,
            "task": submit_delivery_note_to_accounting_task.name,
            "queued": warning is None,
            "warnings": [warning] if warning else [],
        }
