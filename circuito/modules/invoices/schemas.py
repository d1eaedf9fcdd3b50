from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from uuid import UUID
from datetime import date
from decimal import Decimal

from circuito.modules.invoices.models import InvoiceStatus


class InvoiceItemOut(BaseModel):
    id: UUID
    quote_item_id: Optional[UUID] = None
    description: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    invoice_type: str
    customer_id: UUID
    quote_id: Optional[UUID] = None
    delivery_note_id: Optional[UUID] = None
    status: InvoiceStatus
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    issue_date: date
    due_date: Optional[date] = None
    external_submission_pending: bool
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceDetail(InvoiceOut):
    items: List[InvoiceItemOut] = []


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int
