"""
Esquemas Pydantic compartidos por los endpoints de cambio de estado
"""
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime
from uuid import UUID


class StatusHistoryOut(BaseModel):
    from_status: str
    to_status: str
    changed_by: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LinkedDocumentOut(BaseModel):
    kind: str
    document_id: str


class TransitionResultMixin(BaseModel):
    """Campos comunes de la respuesta de un cambio de estado"""
    linked_documents_to_clear: List[LinkedDocumentOut] = []
    warnings: List[str] = []


class DispatchResult(BaseModel):
    """Respuesta de un reintento manual de un efecto posterior (email, Colppy)"""
    document_id: UUID
    task: str
    queued: bool
    warnings: List[str] = []
