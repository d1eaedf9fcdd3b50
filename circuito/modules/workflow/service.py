"""
Servicio de persistencia de transiciones.

Aplica el resultado de `propose_transition` sobre un modelo SQLAlchemy:
actualiza el estado y agrega la entrada de historial en la sesión actual.
No hace commit; el servicio de cada documento confirma estado, historial y
campos derivados juntos.
"""
import logging
from typing import Any, List, Mapping, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from circuito.modules.workflow.exceptions import WorkflowError, GuardFailed
from circuito.modules.workflow.machine import (
    DocumentSnapshot, HistoryEntry, TransitionContext, TransitionGraph,
    TransitionOutcome, propose_transition
)
from circuito.modules.workflow.models import DocumentStatusHistory, DocumentType

logger = logging.getLogger(__name__)


class WorkflowService:
    """Aplica transiciones validadas sobre documentos persistidos"""

    def __init__(self, db: Session):
        self.db = db

    def history(self, document_type: DocumentType, document_id: UUID) -> List[DocumentStatusHistory]:
        return self.db.query(DocumentStatusHistory).filter(
            DocumentStatusHistory.document_type == document_type,
            DocumentStatusHistory.document_id == document_id
        ).order_by(DocumentStatusHistory.id.asc()).all()

    def snapshot(
        self,
        document: Any,
        graph: TransitionGraph,
        links: Optional[Mapping[str, Tuple[str, ...]]] = None,
    ) -> DocumentSnapshot:
        document_type = DocumentType(graph.document_type)
        status_enum = type(graph.initial)
        entries = tuple(
            HistoryEntry(
                from_status=status_enum(row.from_status),
                to_status=status_enum(row.to_status),
                changed_by=row.changed_by,
                timestamp=row.changed_at,
                reason=row.reason,
                notes=row.notes,
            )
            for row in self.history(document_type, document.id)
        )
        return DocumentSnapshot(
            id=str(document.id),
            document_type=graph.document_type,
            status=document.status,
            currency=getattr(document, "currency", "ARS"),
            history=entries,
            links=dict(links or {}),
        )

    def apply(
        self,
        document: Any,
        graph: TransitionGraph,
        target: Any,
        context: TransitionContext,
        links: Optional[Mapping[str, Tuple[str, ...]]] = None,
    ) -> TransitionOutcome:
        """
        Valida la transición y la agrega a la sesión (estado + historial).

        Si la máquina rechaza la transición, la excepción se propaga y el
        documento queda intacto.
        """
        outcome = propose_transition(graph, self.snapshot(document, graph, links), target, context)
        entry = outcome.entry

        document.status = outcome.to_status
        document.status_updated_at = entry.timestamp
        document.status_updated_by = entry.changed_by

        self.db.add(DocumentStatusHistory(
            document_type=DocumentType(graph.document_type),
            document_id=document.id,
            from_status=entry.from_status.value,
            to_status=entry.to_status.value,
            changed_by=entry.changed_by,
            reason=entry.reason,
            notes=entry.notes,
            changed_at=entry.timestamp,
        ))

        logger.info(
            f"{graph.document_type} {document.id}: {entry.from_status.value} -> {entry.to_status.value} "
            f"(por {entry.changed_by})"
        )
        return outcome


def http_error_from_workflow(error: WorkflowError) -> HTTPException:
    """Traduce un error de la máquina de estados a una respuesta HTTP"""
    detail = {"code": error.code, "message": error.message}

    if isinstance(error, GuardFailed):
        detail["metric"] = error.metric
        detail["value"] = error.value if error.value is None or isinstance(error.value, (list, dict)) else str(error.value)
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
