"""
Celery configuration for background tasks

Los efectos laterales con I/O externo (email, sincronización con Colppy)
se encolan recién después del commit de la transición de estado. Una falla
al encolar no revierte nada: se devuelve como warning al llamador.
"""
from typing import Optional
from celery import Celery
from celery.schedules import crontab
import logging

from circuito.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "circuito",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "circuito.modules.email.tasks",
        "circuito.modules.integrations.tasks",
        "circuito.modules.quotes.tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Argentina/Buenos_Aires",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    result_expires=3600,

    task_routes={
        "circuito.modules.email.tasks.*": {"queue": "email"},
        "circuito.modules.integrations.tasks.*": {"queue": "integrations"},
        "circuito.modules.quotes.tasks.*": {"queue": "default"},
    },

    beat_schedule={
        "expire-stale-quotes": {
            "task": "circuito.modules.quotes.tasks.expire_stale_quotes_task",
            "schedule": crontab(hour=3, minute=0),
        },
    }
)


def dispatch_after_commit(task, *args, **kwargs) -> Optional[str]:
    """
    Encola `task` con los argumentos dados.

    Debe llamarse solo después de `db.commit()`. Retorna None si la tarea
    quedó encolada, o un mensaje de warning si el broker la rechazó.
    """
    try:
        task.apply_async(args=args, kwargs=kwargs)
        return None
    except Exception as e:
        logger.warning(f"No se pudo encolar {task.name}: {e}")
        return f"La operación se guardó, pero no se pudo ejecutar '{task.name}': {e}"


if __name__ == "__main__":
    celery_app.start()
