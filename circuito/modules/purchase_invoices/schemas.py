from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from circuito.common.validators import validate_cuit
from circuito.modules.purchase_invoices.transitions import PurchaseInvoiceStatus
from circuito.modules.workflow.schemas import TransitionResultMixin


class PurchaseInvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=300)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class PurchaseInvoiceCreate(BaseModel):
    supplier_name: str = Field(..., min_length=1, max_length=200)
    supplier_cuit: Optional[str] = None
    invoice_number: str = Field(..., min_length=1, max_length=30)
    invoice_type: str = Field("A", pattern=r"^[ABCM]$")
    issue_date: date
    due_date: Optional[date] = None
    currency: str = Field("ARS", pattern=r"^(ARS|USD)$")
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0, description="Total según el comprobante del proveedor")
    notes: Optional[str] = None
    items: List[PurchaseInvoiceItemCreate] = Field(..., min_length=1)

    @field_validator('supplier_cuit')
    @classmethod
    def check_cuit(cls, v):
        if v and not validate_cuit(v):
            raise ValueError('CUIT inválido')
        return v


class PurchaseInvoiceItemOut(BaseModel):
    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)


class PurchaseInvoiceOut(BaseModel):
    id: UUID
    supplier_name: str
    supplier_cuit: Optional[str] = None
    invoice_number: str
    invoice_type: str
    issue_date: date
    due_date: Optional[date] = None
    status: PurchaseInvoiceStatus
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    status_updated_at: Optional[datetime] = None
    status_updated_by: Optional[str] = None
    items: List[PurchaseInvoiceItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class PurchaseInvoiceStatusChange(BaseModel):
    status: PurchaseInvoiceStatus
    reason: Optional[str] = Field(None, description="Obligatorio para cancelar")
    notes: Optional[str] = None


class PurchaseInvoicePayment(BaseModel):
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class PurchaseInvoiceStatusChangeResult(TransitionResultMixin):
    purchase_invoice: PurchaseInvoiceOut
