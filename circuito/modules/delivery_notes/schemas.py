from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from circuito.modules.delivery_notes.transitions import DeliveryNoteStatus
from circuito.modules.invoices.schemas import InvoiceDetail
from circuito.modules.workflow.schemas import TransitionResultMixin


class DeliveryNoteItemOut(BaseModel):
    id: UUID
    quote_item_id: Optional[UUID] = None
    description: str
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class DeliveryNoteOut(BaseModel):
    id: UUID
    delivery_number: str
    customer_id: UUID
    quote_id: Optional[UUID] = None
    status: DeliveryNoteStatus
    delivery_address: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    delivery_date: Optional[datetime] = None
    received_by: Optional[str] = None
    notes: Optional[str] = None
    status_updated_at: Optional[datetime] = None
    status_updated_by: Optional[str] = None
    items: List[DeliveryNoteItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class DeliveryNoteStatusChange(BaseModel):
    status: DeliveryNoteStatus
    reason: Optional[str] = Field(None, description="Obligatorio para cancelar")
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    delivery_date: Optional[datetime] = None
    received_by: Optional[str] = None


class DeliveryNoteStatusChangeResult(TransitionResultMixin):
    delivery_note: DeliveryNoteOut


class InvoiceFromDeliveryNote(BaseModel):
    point_of_sale: Optional[str] = Field(None, pattern=r"^\d{4}$")
    notes: Optional[str] = None


class DeliveryNoteInvoiceResult(TransitionResultMixin):
    invoice: InvoiceDetail
