"""
Facturas de venta

Se generan desde cotizaciones (total o parcialmente) o desde remitos.
`paid_amount` lo actualiza la aprobación de recibos de cobranza.
"""
from circuito.database.database import Base
from sqlalchemy import Column, String, Boolean, Integer, Date, DateTime, ForeignKey, Numeric, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from circuito.common.mixins import TimestampMixin
import enum


class InvoiceStatus(enum.Enum):
    DRAFT = "DRAFT"           # Borrador
    PENDING = "PENDING"       # Emitida, pendiente de cobro
    PAID = "PAID"             # Cobrada completamente
    CANCELLED = "CANCELLED"   # Anulada


class Invoice(Base, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_number = Column(String(20), nullable=False, index=True)
    invoice_type = Column(String(1), nullable=False)  # A, B, C, E
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    quote_id = Column(Uuid, ForeignKey("quotes.id"), nullable=True, index=True)
    delivery_note_id = Column(Uuid, ForeignKey("delivery_notes.id"), nullable=True, index=True)
    created_by = Column(String(100), nullable=False)

    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    currency = Column(String(3), nullable=False, default="ARS")
    exchange_rate = Column(Numeric(15, 4), nullable=False, default=1)

    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)

    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Enviada a Colppy y todavía sin confirmar del otro lado
    external_submission_pending = Column(Boolean, nullable=False, default=False)

    customer = relationship("Customer")
    quote = relationship("Quote", viewonly=True)
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")

    @property
    def remaining_balance(self):
        return (self.total or 0) - (self.paid_amount or 0)


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)
    quote_item_id = Column(Uuid, ForeignKey("quote_items.id"), nullable=True, index=True)
    description = Column(String(300), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=21)
    subtotal = Column(Numeric(15, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="items")
    quote_item = relationship("QuoteItem", back_populates="invoice_items")
