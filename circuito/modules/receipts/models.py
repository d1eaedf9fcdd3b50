"""
Modelos SQLAlchemy para Recibos de cobranza

Un recibo imputa cobros a facturas pendientes de un cliente, registra
retenciones sufridas y los medios de cobro. Los totales se guardan
desnormalizados y se recalculan en cada guardado.
"""
from circuito.database.database import Base
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Numeric, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from circuito.common.mixins import TimestampMixin, StatusTrackedMixin
from circuito.modules.receipts.reconciliation import PaymentType
from circuito.modules.receipts.transitions import ReceiptStatus
from circuito.modules.receipts.withholdings import WithholdingGroupType


class Receipt(Base, TimestampMixin, StatusTrackedMixin):
    __tablename__ = "receipts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    receipt_number = Column(String(20), nullable=False, unique=True, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False, default="ARS")
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=False)

    status = Column(Enum(ReceiptStatus), nullable=False, default=ReceiptStatus.BORRADOR, index=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    journal_entry_id = Column(Uuid, ForeignKey("journal_entries.id"), nullable=True)
    colppy_receipt_id = Column(String(50), nullable=True)

    total_applied = Column(Numeric(15, 2), nullable=False, default=0)
    total_withholdings = Column(Numeric(15, 2), nullable=False, default=0)
    total_to_collect = Column(Numeric(15, 2), nullable=False, default=0)
    total_collected = Column(Numeric(15, 2), nullable=False, default=0)

    customer = relationship("Customer")
    journal_entry = relationship("JournalEntry")
    invoice_applications = relationship(
        "ReceiptInvoiceApplication", back_populates="receipt", cascade="all, delete-orphan"
    )
    withholding_groups = relationship(
        "ReceiptWithholdingGroup", back_populates="receipt", cascade="all, delete-orphan"
    )
    payment_methods = relationship(
        "ReceiptPaymentMethod", back_populates="receipt", cascade="all, delete-orphan"
    )


class ReceiptInvoiceApplication(Base):
    __tablename__ = "receipt_invoice_applications"

    id = Column(Uuid, primary_key=True, default=uuid4)
    receipt_id = Column(Uuid, ForeignKey("receipts.id"), nullable=False, index=True)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)
    invoice_total = Column(Numeric(15, 2), nullable=False)
    remaining_balance = Column(Numeric(15, 2), nullable=False)  # saldo al momento de imputar
    applied_amount = Column(Numeric(15, 2), nullable=False)

    receipt = relationship("Receipt", back_populates="invoice_applications")
    invoice = relationship("Invoice")


class ReceiptWithholdingGroup(Base):
    __tablename__ = "receipt_withholding_groups"

    id = Column(Uuid, primary_key=True, default=uuid4)
    receipt_id = Column(Uuid, ForeignKey("receipts.id"), nullable=False, index=True)
    group_type = Column(Enum(WithholdingGroupType), nullable=False)
    total_amount = Column(Numeric(15, 2), nullable=False)

    receipt = relationship("Receipt", back_populates="withholding_groups")
    lines = relationship(
        "ReceiptWithholdingLine", back_populates="group", cascade="all, delete-orphan",
        order_by="ReceiptWithholdingLine.position"
    )


class ReceiptWithholdingLine(Base):
    __tablename__ = "receipt_withholding_lines"

    id = Column(Uuid, primary_key=True, default=uuid4)
    group_id = Column(Uuid, ForeignKey("receipt_withholding_groups.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    withholding_type = Column(String(30), nullable=False)  # IIBB_CABA, IVA, ...
    jurisdiction_label = Column(String(100), nullable=True)
    certificate_number = Column(String(50), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)

    group = relationship("ReceiptWithholdingGroup", back_populates="lines")


class ReceiptPaymentMethod(Base):
    __tablename__ = "receipt_payment_methods"

    id = Column(Uuid, primary_key=True, default=uuid4)
    receipt_id = Column(Uuid, ForeignKey("receipts.id"), nullable=False, index=True)
    treasury_account_id = Column(Uuid, ForeignKey("treasury_accounts.id"), nullable=False)
    payment_type = Column(Enum(PaymentType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    check_number = Column(String(50), nullable=True)
    check_date = Column(Date, nullable=True)
    check_bank = Column(String(100), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    receipt = relationship("Receipt", back_populates="payment_methods")
    treasury_account = relationship("TreasuryAccount")
