from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from circuito.modules.delivery_notes.schemas import DeliveryNoteOut
from circuito.modules.invoices.schemas import InvoiceDetail
from circuito.modules.quotes.fulfillment import BoardColumn
from circuito.modules.quotes.transitions import QuoteStatus
from circuito.modules.workflow.schemas import TransitionResultMixin


# ===== COTIZACIONES =====

class QuoteItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=300)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    delivery_time: Optional[str] = Field(None, max_length=50, description="Vacío o 'Inmediato' = en stock")
    is_alternative: bool = False


class QuoteCreate(BaseModel):
    customer_id: UUID
    valid_until: Optional[date] = None
    currency: str = Field("ARS", pattern=r"^(ARS|USD)$")
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    notes: Optional[str] = None
    items: List[QuoteItemCreate] = Field(..., min_length=1)


class QuoteItemOut(BaseModel):
    id: UUID
    line_number: int
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    delivery_time: Optional[str] = None
    is_alternative: bool

    model_config = ConfigDict(from_attributes=True)


class QuoteOut(BaseModel):
    id: UUID
    quote_number: str
    customer_id: UUID
    status: QuoteStatus
    valid_until: Optional[date] = None
    response_date: Optional[datetime] = None
    customer_response: Optional[str] = None
    rejection_reason: Optional[str] = None
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    colppy_invoice_id: Optional[str] = None
    colppy_delivery_note_id: Optional[str] = None
    colppy_synced_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None
    status_updated_by: Optional[str] = None
    items: List[QuoteItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class QuoteList(BaseModel):
    quotes: List[QuoteOut]
    total: int
    limit: int
    offset: int


# ===== CAMBIOS DE ESTADO =====

class QuoteStatusChange(BaseModel):
    status: QuoteStatus
    customer_response: Optional[str] = None
    rejection_reason: Optional[str] = None
    revert_reason: Optional[str] = Field(None, description="Motivo de reversión o cancelación")


class QuoteStatusChangeResult(TransitionResultMixin):
    quote: QuoteOut


# ===== GENERACIÓN DE DOCUMENTOS =====

class InvoiceFromQuote(BaseModel):
    item_ids: Optional[List[UUID]] = Field(
        None, description="Ítems a facturar (parcial). Vacío = todo lo pendiente"
    )
    point_of_sale: Optional[str] = Field(None, pattern=r"^\d{4}$")
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceGenerationResult(TransitionResultMixin):
    invoice: InvoiceDetail
    quote_status: QuoteStatus


class DeliveryNoteFromQuote(BaseModel):
    delivery_address: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None


class DeliveryNoteGenerationResult(TransitionResultMixin):
    delivery_note: DeliveryNoteOut
    quote_status: QuoteStatus


# ===== TABLERO DE FACTURACIÓN =====

class BoardItemOut(BaseModel):
    id: UUID
    description: str
    quantity: int
    invoiced_quantity: int
    remaining_quantity: int
    unit_price: Decimal
    delivery_time: Optional[str] = None
    is_in_stock: bool
    pending_submission: bool
    is_selectable: bool


class BoardCardOut(BaseModel):
    id: UUID
    quote_number: str
    customer_id: UUID
    customer_name: str
    currency: str
    total: Decimal
    ready_items_count: int
    total_items_count: int
    farthest_delivery: str
    column: BoardColumn
    colppy_invoice_id: Optional[str] = None
    colppy_synced_at: Optional[datetime] = None
    items: List[BoardItemOut] = []


class BoardColumnOut(BaseModel):
    quotes: List[BoardCardOut] = []
    count: int = 0
    total_usd: Decimal = Decimal("0.00")
    total_ars: Decimal = Decimal("0.00")


class BoardOut(BaseModel):
    ready: BoardColumnOut
    partial: BoardColumnOut
    pending: BoardColumnOut
