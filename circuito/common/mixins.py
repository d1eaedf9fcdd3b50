"""
Common mixins for document models
"""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class StatusTrackedMixin:
    """
    Mixin para documentos con máquina de estados.

    `status` lo define cada modelo con su propio Enum; acá solo quedan
    los datos del último cambio. El historial completo vive en
    document_status_history.
    """

    status_updated_at = Column(DateTime(timezone=True), nullable=True)
    status_updated_by = Column(String(100), nullable=True)
