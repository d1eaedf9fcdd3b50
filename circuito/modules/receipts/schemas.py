"""
Esquemas Pydantic para Recibos de cobranza
"""
import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from uuid import UUID
from decimal import Decimal

from circuito.modules.receipts.reconciliation import PaymentType
from circuito.modules.receipts.transitions import ReceiptStatus
from circuito.modules.receipts.withholdings import WithholdingGroupType
from circuito.modules.workflow.schemas import TransitionResultMixin


# ===== ENTRADA =====

class InvoiceApplicationIn(BaseModel):
    invoice_id: UUID
    applied_amount: Decimal = Field(..., gt=0)


class WithholdingLineIn(BaseModel):
    withholding_type: Optional[str] = Field(None, description="Jurisdicción para IIBB (IIBB_CABA, IIBB_BUENOS_AIRES, ...)")
    jurisdiction_label: Optional[str] = None
    certificate_number: Optional[str] = None
    amount: Decimal = Field(Decimal("0"), ge=0)


class WithholdingGroupIn(BaseModel):
    group_type: WithholdingGroupType
    lines: List[WithholdingLineIn] = []


class PaymentMethodIn(BaseModel):
    treasury_account_id: Optional[UUID] = None
    payment_type: PaymentType
    amount: Decimal = Field(Decimal("0"), ge=0)
    check_number: Optional[str] = None
    check_date: Optional[datetime.date] = None
    check_bank: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class ReceiptBase(BaseModel):
    customer_id: Optional[UUID] = None
    date: Optional[datetime.date] = None
    currency: str = Field("ARS", pattern=r"^(ARS|USD)$")
    notes: Optional[str] = None
    invoice_applications: List[InvoiceApplicationIn] = []
    withholding_groups: List[WithholdingGroupIn] = []
    payment_methods: List[PaymentMethodIn] = []


class ReceiptCreate(ReceiptBase):
    point_of_sale: Optional[str] = Field(None, pattern=r"^\d{4}$")
    approve: bool = Field(False, description="Guardar y aprobar en un solo paso")


class ReceiptUpdate(ReceiptBase):
    pass


class ReceiptVoid(BaseModel):
    reason: str = Field(..., description="Motivo de anulación")


# ===== SALIDA =====

class ReceiptBalanceOut(BaseModel):
    total_applied: Decimal
    total_withholdings: Decimal
    total_to_collect: Decimal
    total_collected: Decimal
    diff: Decimal
    is_balanced: bool

    model_config = ConfigDict(from_attributes=True)


class ReceiptPreviewOut(BaseModel):
    balance: ReceiptBalanceOut
    errors: List[str] = []


class PendingInvoiceOut(BaseModel):
    invoice_id: UUID
    invoice_number: str
    invoice_type: str
    issue_date: datetime.date
    due_date: Optional[datetime.date] = None
    currency: str
    invoice_total: Decimal
    remaining_balance: Decimal


class InvoiceApplicationOut(BaseModel):
    invoice_id: UUID
    invoice_total: Decimal
    remaining_balance: Decimal
    applied_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class WithholdingLineOut(BaseModel):
    withholding_type: str
    jurisdiction_label: Optional[str] = None
    certificate_number: Optional[str] = None
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class WithholdingGroupOut(BaseModel):
    group_type: WithholdingGroupType
    total_amount: Decimal
    lines: List[WithholdingLineOut] = []

    model_config = ConfigDict(from_attributes=True)


class PaymentMethodOut(BaseModel):
    treasury_account_id: UUID
    payment_type: PaymentType
    amount: Decimal
    check_number: Optional[str] = None
    check_date: Optional[datetime.date] = None
    check_bank: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ReceiptOut(BaseModel):
    id: UUID
    receipt_number: str
    customer_id: UUID
    date: datetime.date
    currency: str
    notes: Optional[str] = None
    status: ReceiptStatus
    total_applied: Decimal
    total_withholdings: Decimal
    total_to_collect: Decimal
    total_collected: Decimal
    approved_by: Optional[str] = None
    approved_at: Optional[datetime.datetime] = None
    journal_entry_id: Optional[UUID] = None
    status_updated_at: Optional[datetime.datetime] = None
    status_updated_by: Optional[str] = None
    invoice_applications: List[InvoiceApplicationOut] = []
    withholding_groups: List[WithholdingGroupOut] = []
    payment_methods: List[PaymentMethodOut] = []

    model_config = ConfigDict(from_attributes=True)


class ReceiptResult(TransitionResultMixin):
    receipt: ReceiptOut
    balance: ReceiptBalanceOut
