"""
Tareas asíncronas de Celery para el envío de correos electrónicos.

Se encolan después del commit del cambio de estado que las origina; si
fallan, el documento ya quedó en su nuevo estado.
"""
import logging
from uuid import UUID

from circuito.core.celery import celery_app
from circuito.core.config import settings
from circuito.database.database import SessionLocal
from circuito.modules.email.service import email_service

logger = logging.getLogger(__name__)


def _retry_or_fail(task, exc, **info):
    logger.error(f"{task.name} falló: {exc}")
    if task.request.retries < task.max_retries:
        raise task.retry(exc=exc, countdown=60 * (2 ** task.request.retries))
    return {"status": "failed", "error": str(exc), **info}


@celery_app.task(bind=True, max_retries=3)
def send_quote_email_task(self, quote_id: str):
    """Envía la cotización al cliente al pasar a SENT."""
    if not email_service.enabled:
        logger.info(f"Email deshabilitado, no se envía la cotización {quote_id}")
        return {"status": "skipped", "quote_id": quote_id}

    from circuito.modules.quotes.models import Quote

    db = SessionLocal()
    try:
        quote = db.query(Quote).filter(Quote.id == UUID(quote_id)).first()
        if quote is None or not quote.customer.email:
            return {"status": "skipped", "quote_id": quote_id}

        email_service.send_template_email(
            to_emails=[quote.customer.email],
            subject=f"Cotización {quote.quote_number}",
            template_name="quote_sent.html",
            context={
                "quote_number": quote.quote_number,
                "customer_name": quote.customer.name,
                "currency": quote.currency,
                "total": f"{quote.total:,.2f}",
                "valid_until": quote.valid_until.strftime("%d/%m/%Y") if quote.valid_until else None,
                "items": [item for item in quote.items if not item.is_alternative],
                "quote_url": f"{settings.FRONTEND_URL}/cotizaciones/{quote.id}",
            },
        )
        return {"status": "success", "quote_id": quote_id}
    except Exception as exc:
        return _retry_or_fail(self, exc, quote_id=quote_id)
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def send_receipt_confirmation_task(self, receipt_id: str):
    """Confirma al cliente el cobro de un recibo aprobado."""
    if not email_service.enabled:
        logger.info(f"Email deshabilitado, no se envía la confirmación del recibo {receipt_id}")
        return {"status": "skipped", "receipt_id": receipt_id}

    from circuito.modules.receipts.models import Receipt

    db = SessionLocal()
    try:
        receipt = db.query(Receipt).filter(Receipt.id == UUID(receipt_id)).first()
        if receipt is None or not receipt.customer.email:
            return {"status": "skipped", "receipt_id": receipt_id}

        email_service.send_template_email(
            to_emails=[receipt.customer.email],
            subject=f"Recibo {receipt.receipt_number}",
            template_name="receipt_approved.html",
            context={
                "receipt_number": receipt.receipt_number,
                "customer_name": receipt.customer.name,
                "date": receipt.date.strftime("%d/%m/%Y"),
                "currency": receipt.currency,
                "total_applied": f"{receipt.total_applied:,.2f}",
                "total_withholdings": f"{receipt.total_withholdings:,.2f}",
                "total_collected": f"{receipt.total_collected:,.2f}",
                "applications": [
                    {"invoice_number": a.invoice.invoice_number, "applied_amount": f"{a.applied_amount:,.2f}"}
                    for a in receipt.invoice_applications
                ],
            },
        )
        return {"status": "success", "receipt_id": receipt_id}
    except Exception as exc:
        return _retry_or_fail(self, exc, receipt_id=receipt_id)
    finally:
        db.close()
