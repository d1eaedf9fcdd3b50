import logging

from circuito.core.celery import celery_app
from circuito.database.database import SessionLocal
from circuito.modules.quotes.service import QuoteService

logger = logging.getLogger(__name__)


@celery_app.task
def expire_stale_quotes_task():
    """Tarea diaria (beat): vence las cotizaciones enviadas fuera de validez."""
    db = SessionLocal()
    try:
        expired = QuoteService(db).expire_stale_quotes()
        return {"status": "success", "expired": expired}
    except Exception as e:
        logger.error(f"Error venciendo cotizaciones: {e}")
        return {"status": "failed", "error": str(e)}
    finally:
        db.close()
