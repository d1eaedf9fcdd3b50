"""
Historial de estados de documentos.

Una única tabla para todas las variantes, indexada por
(document_type, document_id). Las filas son append-only: se crean una vez
por transición, en la misma transacción que el cambio de estado, y nunca se
modifican ni se borran.
"""
from circuito.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, Uuid, Index, event
import enum


class DocumentType(enum.Enum):
    QUOTE = "quote"                         # Cotización
    DELIVERY_NOTE = "delivery_note"         # Remito
    PURCHASE_INVOICE = "purchase_invoice"   # Factura de compra
    RECEIPT = "receipt"                     # Recibo de cobranza


class DocumentStatusHistory(Base):
    __tablename__ = "document_status_history"

    # Autoincremental: define el orden de las entradas de un mismo documento
    id = Column(Integer, primary_key=True, autoincrement=True)
    document_type = Column(Enum(DocumentType), nullable=False)
    document_id = Column(Uuid, nullable=False)

    from_status = Column(String(30), nullable=False)
    to_status = Column(String(30), nullable=False)
    changed_by = Column(String(100), nullable=False)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_status_history_document", "document_type", "document_id"),
    )


class ImmutableHistoryError(Exception):
    pass


@event.listens_for(DocumentStatusHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise ImmutableHistoryError("El historial de estados no se puede modificar")


@event.listens_for(DocumentStatusHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise ImmutableHistoryError("El historial de estados no se puede borrar")
