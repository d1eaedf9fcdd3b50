"""
Tareas de Celery para el envío de documentos a Colppy.

Mientras el envío no se confirma la factura queda con
`external_submission_pending`, y sus ítems no se pueden volver a facturar
desde el tablero.
"""
import logging
from datetime import datetime, timezone
from uuid import UUID

from circuito.core.celery import celery_app
from circuito.core.config import settings
from circuito.database.database import SessionLocal
from circuito.modules.integrations.colppy import ColppyAdapter
from circuito.modules.integrations.ports import ExternalDocument, ExternalDocumentLine

logger = logging.getLogger(__name__)


def get_accounting_system():
    return ColppyAdapter()


def _payment_terms(due_days: int) -> str:
    return "Contado" if not due_days else f"a {due_days} Dias"


@celery_app.task(bind=True, max_retries=3)
def submit_invoice_to_accounting_task(self, invoice_id: str):
    if not settings.COLPPY_ENABLED:
        logger.info(f"Colppy deshabilitado, la factura {invoice_id} no se envía")
        return {"status": "skipped", "invoice_id": invoice_id}

    from circuito.modules.invoices.models import Invoice

    db = SessionLocal()
    try:
        invoice = db.query(Invoice).filter(Invoice.id == UUID(invoice_id)).first()
        if invoice is None or not invoice.external_submission_pending:
            return {"status": "skipped", "invoice_id": invoice_id}

        result = get_accounting_system().create_invoice(ExternalDocument(
            reference=invoice.invoice_number,
            customer_cuit=invoice.customer.cuit,
            customer_name=invoice.customer.name,
            date=invoice.issue_date.isoformat(),
            invoice_type=invoice.invoice_type,
            payment_terms=_payment_terms(settings.INVOICE_DUE_DAYS),
            lines=[
                ExternalDocumentLine(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_rate=item.tax_rate,
                )
                for item in invoice.items
            ],
        ))

        invoice.external_submission_pending = False
        if invoice.quote_id is not None:
            quote = invoice.quote
            quote.colppy_invoice_id = result.external_id
            quote.colppy_synced_at = datetime.now(timezone.utc)
        db.commit()
        return {"status": "success", "invoice_id": invoice_id, "external_id": result.external_id}
    except Exception as exc:
        db.rollback()
        logger.error(f"Envío de la factura {invoice_id} a Colppy falló: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc), "invoice_id": invoice_id}
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def submit_delivery_note_to_accounting_task(self, delivery_note_id: str):
    if not settings.COLPPY_ENABLED:
        logger.info(f"Colppy deshabilitado, el remito {delivery_note_id} no se envía")
        return {"status": "skipped", "delivery_note_id": delivery_note_id}

    from circuito.modules.delivery_notes.models import DeliveryNote
    from circuito.modules.quotes.models import Quote

    db = SessionLocal()
    try:
        note = db.query(DeliveryNote).filter(DeliveryNote.id == UUID(delivery_note_id)).first()
        if note is None:
            return {"status": "skipped", "delivery_note_id": delivery_note_id}

        prices = {}
        quote = None
        if note.quote_id is not None:
            quote = db.query(Quote).filter(Quote.id == note.quote_id).first()
            prices = {item.id: item.unit_price for item in quote.items}

        result = get_accounting_system().create_delivery_note(ExternalDocument(
            reference=note.delivery_number,
            customer_cuit=note.customer.cuit,
            customer_name=note.customer.name,
            date=note.created_at.date().isoformat(),
            lines=[
                ExternalDocumentLine(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=prices.get(item.quote_item_id, 0),
                )
                for item in note.items
            ],
        ))

        if quote is not None:
            quote.colppy_delivery_note_id = result.external_id
            quote.colppy_synced_at = datetime.now(timezone.utc)
            db.commit()
        return {"status": "success", "delivery_note_id": delivery_note_id, "external_id": result.external_id}
    except Exception as exc:
        db.rollback()
        logger.error(f"Envío del remito {delivery_note_id} a Colppy falló: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc), "delivery_note_id": delivery_note_id}
    finally:
        db.close()
