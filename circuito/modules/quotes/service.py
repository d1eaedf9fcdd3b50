import logging
from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from circuito.common.money import ZERO, to_money
from circuito.common.numbering import next_document_number
from circuito.core.celery import dispatch_after_commit
from circuito.core.config import settings
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.customers.models import Customer
from circuito.modules.delivery_notes.models import DeliveryNote, DeliveryNoteItem
from circuito.modules.delivery_notes.transitions import DeliveryNoteStatus
from circuito.modules.email.tasks import send_quote_email_task
from circuito.modules.integrations.tasks import (
    submit_delivery_note_to_accounting_task, submit_invoice_to_accounting_task
)
from circuito.modules.invoices.service import InvoiceLine, InvoiceService
from circuito.modules.quotes.fulfillment import (
    BoardColumn, FulfillmentError, apply_invoicing, build_partial_request, classify,
    farthest_delivery, full_request, is_fully_invoiced
)
from circuito.modules.quotes.models import Quote, QuoteItem
from circuito.modules.quotes.schemas import (
    DeliveryNoteFromQuote, InvoiceFromQuote, QuoteCreate, QuoteStatusChange
)
from circuito.modules.quotes.transitions import QUOTE_GRAPH, QuoteStatus
from circuito.modules.workflow.exceptions import WorkflowError
from circuito.modules.workflow.machine import TransitionContext, TransitionOutcome
from circuito.modules.workflow.models import DocumentType
from circuito.modules.workflow.service import WorkflowService, http_error_from_workflow

logger = logging.getLogger(__name__)

SYSTEM_USER = "system"

# Campos de la cotización que guardan cada tipo de documento vinculado
LINK_FIELDS = {
    "colppy_invoice": "colppy_invoice_id",
    "colppy_delivery_note": "colppy_delivery_note_id",
}


class QuoteService:
    def __init__(self, db: Session):
        self.db = db
        self.workflow = WorkflowService(db)
        self.invoices = InvoiceService(db)

    # ===== CONSULTAS =====

    def get_quote(self, quote_id: UUID) -> Quote:
        quote = self.db.query(Quote).options(selectinload(Quote.items)).filter(Quote.id == quote_id).first()
        if not quote:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cotización no encontrada"
            )
        return quote

    def get_quotes(self, status_filter: Optional[QuoteStatus] = None, customer_id: Optional[UUID] = None,
                   limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Quote)
        if status_filter:
            query = query.filter(Quote.status == status_filter)
        if customer_id:
            query = query.filter(Quote.customer_id == customer_id)
        total = query.count()
        quotes = query.order_by(Quote.created_at.desc(), Quote.quote_number.desc()).offset(offset).limit(limit).all()
        return {"quotes": quotes, "total": total, "limit": limit, "offset": offset}

    def get_status_history(self, quote_id: UUID):
        quote = self.get_quote(quote_id)
        return self.workflow.history(DocumentType.QUOTE, quote.id)

    # ===== ALTA =====

    def _next_quote_number(self) -> str:
        return next_document_number(self.db, Quote.quote_number, f"VAL-{date.today().year}", width=3)

    @staticmethod
    def _set_totals(quote: Quote) -> None:
        # Los ítems alternativos no suman al total
        quote.subtotal = sum((item.total_price for item in quote.items if not item.is_alternative), ZERO)
        quote.tax_amount = to_money(quote.subtotal * settings.INVOICE_TAX_RATE)
        quote.total = quote.subtotal + quote.tax_amount

    def _active_customer(self, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.is_active == True
        ).first()
        if not customer:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cliente no encontrado o inactivo"
            )
        return customer

    def create_quote(self, quote_data: QuoteCreate, auth_context: AuthContext) -> Quote:
        try:
            customer = self._active_customer(quote_data.customer_id)

            quote = Quote(
                quote_number=self._next_quote_number(),
                customer_id=customer.id,
                created_by=auth_context.actor,
                status=QUOTE_GRAPH.initial,
                valid_until=quote_data.valid_until,
                currency=quote_data.currency,
                exchange_rate=quote_data.exchange_rate,
                notes=quote_data.notes,
            )
            for position, item_data in enumerate(quote_data.items, start=1):
                quote.items.append(QuoteItem(
                    line_number=position,
                    description=item_data.description,
                    quantity=item_data.quantity,
                    unit_price=to_money(item_data.unit_price),
                    total_price=to_money(item_data.unit_price * item_data.quantity),
                    delivery_time=item_data.delivery_time,
                    is_alternative=item_data.is_alternative,
                ))
            self._set_totals(quote)

            self.db.add(quote)
            self.db.commit()
            self.db.refresh(quote)
            logger.info(f"Cotización {quote.quote_number} creada por {auth_context.actor}")
            return quote

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando cotización: {str(e)}"
            )

    def duplicate_quote(self, quote_id: UUID, auth_context: AuthContext) -> Quote:
        """
        Crea una cotización nueva en DRAFT a partir de otra, en cualquier estado.

        Es la forma de dar continuidad a una cotización rechazada o vencida:
        copia ítems, moneda, cotización del dólar, validez y notas, pero no el
        historial ni la respuesta del cliente ni los vínculos con Colppy.
        """
        original = self.get_quote(quote_id)
        try:
            self._active_customer(original.customer_id)

            quote = Quote(
                quote_number=self._next_quote_number(),
                customer_id=original.customer_id,
                created_by=auth_context.actor,
                status=QUOTE_GRAPH.initial,
                valid_until=original.valid_until,
                currency=original.currency,
                exchange_rate=original.exchange_rate,
                notes=original.notes,
            )
            for item in sorted(original.items, key=lambda i: i.line_number):
                quote.items.append(QuoteItem(
                    line_number=item.line_number,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    delivery_time=item.delivery_time,
                    is_alternative=item.is_alternative,
                ))
            self._set_totals(quote)

            self.db.add(quote)
            self.db.commit()
            self.db.refresh(quote)
            logger.info(f"Cotización {original.quote_number} duplicada como {quote.quote_number} por {auth_context.actor}")
            return quote

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error duplicando cotización: {str(e)}"
            )

    # ===== CAMBIOS DE ESTADO =====

    def _apply(self, quote: Quote, target: QuoteStatus, context: TransitionContext) -> TransitionOutcome:
        try:
            return self.workflow.apply(quote, QUOTE_GRAPH, target, context, quote.linked_documents)
        except WorkflowError as e:
            logger.info(f"Transición rechazada en cotización {quote.quote_number}: {e.message}")
            raise http_error_from_workflow(e)

    def change_status(self, quote_id: UUID, change: QuoteStatusChange, auth_context: AuthContext) -> dict:
        """
        Cambia el estado de una cotización a pedido de un usuario.

        El estado, la entrada de historial y los campos derivados se confirman
        juntos. El email de envío se encola recién después del commit.
        """
        try:
            quote = self.get_quote(quote_id)
            target = change.status

            if target == QuoteStatus.REJECTED:
                reason = change.rejection_reason or change.revert_reason
            else:
                reason = change.revert_reason or change.rejection_reason
            notes = change.revert_reason or change.customer_response or change.rejection_reason

            outcome = self._apply(quote, target, TransitionContext(
                changed_by=auth_context.actor,
                reason=reason,
                notes=notes,
            ))

            if target in (QuoteStatus.ACCEPTED, QuoteStatus.REJECTED) and not outcome.edge.is_revert:
                quote.response_date = outcome.entry.timestamp
            if change.customer_response:
                quote.customer_response = change.customer_response
            if change.rejection_reason:
                quote.rejection_reason = change.rejection_reason
            if target == QuoteStatus.DRAFT:
                quote.response_date = None
                quote.customer_response = None

            for link in outcome.linked_documents_to_clear:
                setattr(quote, LINK_FIELDS[link.kind], None)
            if outcome.edge.clears:
                quote.colppy_synced_at = None

            self.db.commit()
            self.db.refresh(quote)

            warnings = []
            if target == QuoteStatus.SENT:
                warning = dispatch_after_commit(send_quote_email_task, str(quote.id))
                if warning:
                    warnings.append(warning)

            return {
                "quote": quote,
                "linked_documents_to_clear": [
                    {"kind": link.kind, "document_id": link.document_id}
                    for link in outcome.linked_documents_to_clear
                ],
                "warnings": warnings,
            }

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error cambiando estado de la cotización: {str(e)}"
            )

    def resend_email(self, quote_id: UUID) -> dict:
        """
        Vuelve a encolar el email de una cotización enviada, sin cambiar su
        estado ni agregar historial.
        """
        quote = self.get_quote(quote_id)
        if quote.status != QuoteStatus.SENT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Solo se puede reenviar el email de una cotización en estado SENT"
            )
        if not quote.customer.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El cliente no tiene email cargado"
            )

        warning = dispatch_after_commit(send_quote_email_task, str(quote.id))
        return {
            "document_id": quote.id,
            "task": send_quote_email_task.name,
            "queued": warning is None,
            "warnings": [warning] if warning else [],
        }

    def _require_accepted(self, quote: Quote, document: str):
        if quote.status != QuoteStatus.ACCEPTED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Solo se pueden generar {document} de cotizaciones aceptadas"
            )

    def _convert(self, quote: Quote, notes: str) -> None:
        """ACCEPTED -> CONVERTED, en la misma transacción que el documento generado."""
        self._apply(quote, QuoteStatus.CONVERTED, TransitionContext(
            changed_by=SYSTEM_USER,
            notes=notes,
            system=True,
        ))

    # ===== FACTURACIÓN =====

    def generate_invoice(self, quote_id: UUID, data: InvoiceFromQuote, auth_context: AuthContext) -> dict:
        """
        Factura una cotización aceptada, completa o parcialmente.

        Con `item_ids` se factura la cantidad pendiente completa de cada ítem
        elegido. Cuando no queda nada pendiente la cotización pasa a CONVERTED.
        """
        try:
            quote = self.get_quote(quote_id)
            self._require_accepted(quote, "facturas")

            items = self.invoices.fulfillment_items(quote.items)
            try:
                if data.item_ids:
                    request = build_partial_request(items, [str(item_id) for item_id in data.item_ids])
                else:
                    request = full_request(items)
                    if not request:
                        raise FulfillmentError("La cotización ya está completamente facturada")
                updated = apply_invoicing(items, request)
            except FulfillmentError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

            quote_items = {str(item.id): item for item in quote.items}
            lines = [
                InvoiceLine(
                    description=quote_items[item_id].description,
                    quantity=quantity,
                    unit_price=quote_items[item_id].unit_price,
                    quote_item_id=quote_items[item_id].id,
                )
                for item_id, quantity in request.items()
            ]

            invoice = self.invoices.create_invoice(
                customer=quote.customer,
                lines=lines,
                created_by=auth_context.actor,
                quote_id=quote.id,
                currency=quote.currency,
                exchange_rate=quote.exchange_rate,
                point_of_sale=data.point_of_sale,
                due_date=data.due_date,
                notes=data.notes,
            )

            if is_fully_invoiced(updated):
                self._convert(quote, f"Factura {invoice.invoice_number} generada")

            self.db.commit()
            self.db.refresh(invoice)

            warnings = []
            warning = dispatch_after_commit(submit_invoice_to_accounting_task, str(invoice.id))
            if warning:
                warnings.append(warning)

            return {"invoice": invoice, "quote_status": quote.status, "warnings": warnings}

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error generando factura: {str(e)}"
            )

    def generate_delivery_note(self, quote_id: UUID, data: DeliveryNoteFromQuote, auth_context: AuthContext) -> dict:
        try:
            quote = self.get_quote(quote_id)
            self._require_accepted(quote, "remitos")

            note = DeliveryNote(
                delivery_number=next_document_number(
                    self.db, DeliveryNote.delivery_number, settings.DELIVERY_NOTE_PREFIX
                ),
                customer_id=quote.customer_id,
                quote_id=quote.id,
                created_by=auth_context.actor,
                status=DeliveryNoteStatus.PENDING,
                delivery_address=data.delivery_address,
                carrier=data.carrier,
                notes=data.notes,
            )
            for item in quote.items:
                if item.is_alternative:
                    continue
                note.items.append(DeliveryNoteItem(
                    quote_item_id=item.id,
                    description=item.description,
                    quantity=item.quantity,
                ))
            self.db.add(note)
            self.db.flush()

            self._convert(quote, f"Remito {note.delivery_number} generado")

            self.db.commit()
            self.db.refresh(note)
            logger.info(f"Remito {note.delivery_number} generado desde {quote.quote_number}")

            warnings = []
            warning = dispatch_after_commit(submit_delivery_note_to_accounting_task, str(note.id))
            if warning:
                warnings.append(warning)

            return {"delivery_note": note, "quote_status": quote.status, "warnings": warnings}

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error generando remito: {str(e)}"
            )

    # ===== TABLERO =====

    def get_board(self, customer_id: Optional[UUID] = None, currency: Optional[str] = None) -> dict:
        """Cotizaciones aceptadas con ítems pendientes de facturar, agrupadas por columna."""
        query = self.db.query(Quote).options(selectinload(Quote.items), selectinload(Quote.customer)).filter(
            Quote.status == QuoteStatus.ACCEPTED
        )
        if customer_id:
            query = query.filter(Quote.customer_id == customer_id)
        if currency:
            query = query.filter(Quote.currency == currency)

        columns = {column: [] for column in BoardColumn}
        for quote in query.order_by(Quote.created_at.desc()).all():
            tracked = self.invoices.fulfillment_items(quote.items)
            column = classify(tracked)
            if column is None:
                continue

            main_items = {str(item.id): item for item in quote.items if not item.is_alternative}
            columns[column].append({
                "id": quote.id,
                "quote_number": quote.quote_number,
                "customer_id": quote.customer_id,
                "customer_name": quote.customer.name,
                "currency": quote.currency,
                "total": quote.total,
                "ready_items_count": sum(1 for item in tracked if item.is_in_stock),
                "total_items_count": len(tracked),
                "farthest_delivery": farthest_delivery(item.delivery_time for item in main_items.values()),
                "column": column,
                "colppy_invoice_id": quote.colppy_invoice_id,
                "colppy_synced_at": quote.colppy_synced_at,
                "items": [
                    {
                        "id": main_items[item.item_id].id,
                        "description": main_items[item.item_id].description,
                        "quantity": item.quantity,
                        "invoiced_quantity": item.invoiced_quantity,
                        "remaining_quantity": item.remaining_quantity,
                        "unit_price": main_items[item.item_id].unit_price,
                        "delivery_time": main_items[item.item_id].delivery_time,
                        "is_in_stock": item.is_in_stock,
                        "pending_submission": item.pending_submission,
                        "is_selectable": item.is_selectable,
                    }
                    for item in tracked
                ],
            })

        def column_stats(cards: List[dict]) -> dict:
            return {
                "quotes": cards,
                "count": len(cards),
                "total_usd": sum((to_money(c["total"]) for c in cards if c["currency"] == "USD"), ZERO),
                "total_ars": sum((to_money(c["total"]) for c in cards if c["currency"] == "ARS"), ZERO),
            }

        return {column.value: column_stats(cards) for column, cards in columns.items()}

    # ===== VENCIMIENTO =====

    def expire_stale_quotes(self, today: Optional[date] = None) -> List[str]:
        """
        Pasa a EXPIRED las cotizaciones enviadas cuya validez ya venció.
        Retorna los números de las cotizaciones vencidas.
        """
        today = today or date.today()
        quotes = self.db.query(Quote).filter(
            Quote.status == QuoteStatus.SENT,
            Quote.valid_until.isnot(None),
            Quote.valid_until < today
        ).all()

        expired = []
        try:
            for quote in quotes:
                self.workflow.apply(quote, QUOTE_GRAPH, QuoteStatus.EXPIRED, TransitionContext(
                    changed_by=SYSTEM_USER,
                    notes=f"Validez vencida el {quote.valid_until.strftime('%d/%m/%Y')}",
                    system=True,
                    timestamp=datetime.now(timezone.utc),
                ))
                expired.append(quote.quote_number)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if expired:
            logger.info(f"Cotizaciones vencidas: {', '.join(expired)}")
        return expired
