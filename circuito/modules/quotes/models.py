"""
Modelos SQLAlchemy para Cotizaciones

Una cotización pasa por la máquina de estados de quotes/transitions.py.
Al generarse la factura o el remito en Colppy se guardan sus ids; al
revertir la conversión (CONVERTED -> ACCEPTED) se limpian.
"""
from circuito.database.database import Base
from sqlalchemy import Column, String, Boolean, Integer, Date, DateTime, ForeignKey, Numeric, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from circuito.common.mixins import TimestampMixin, StatusTrackedMixin
from circuito.modules.quotes.transitions import QuoteStatus


class Quote(Base, TimestampMixin, StatusTrackedMixin):
    __tablename__ = "quotes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    quote_number = Column(String(20), nullable=False, unique=True, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    created_by = Column(String(100), nullable=False)

    status = Column(Enum(QuoteStatus), nullable=False, default=QuoteStatus.DRAFT, index=True)
    valid_until = Column(Date, nullable=True)
    response_date = Column(DateTime(timezone=True), nullable=True)
    customer_response = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    currency = Column(String(3), nullable=False, default="ARS")
    exchange_rate = Column(Numeric(15, 4), nullable=False, default=1)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    # Documentos generados en Colppy
    colppy_invoice_id = Column(String(50), nullable=True)
    colppy_delivery_note_id = Column(String(50), nullable=True)
    colppy_synced_at = Column(DateTime(timezone=True), nullable=True)

    customer = relationship("Customer")
    items = relationship(
        "QuoteItem", back_populates="quote", cascade="all, delete-orphan", order_by="QuoteItem.line_number"
    )
    invoices = relationship("Invoice", viewonly=True)

    @property
    def linked_documents(self):
        links = {}
        if self.colppy_invoice_id:
            links["colppy_invoice"] = (self.colppy_invoice_id,)
        if self.colppy_delivery_note_id:
            links["colppy_delivery_note"] = (self.colppy_delivery_note_id,)
        return links


class QuoteItem(Base):
    __tablename__ = "quote_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    quote_id = Column(Uuid, ForeignKey("quotes.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False, default=1)
    description = Column(String(300), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    total_price = Column(Numeric(15, 2), nullable=False)
    delivery_time = Column(String(50), nullable=True)  # "Inmediato", "15 días", ...
    is_alternative = Column(Boolean, nullable=False, default=False)

    quote = relationship("Quote", back_populates="items")
    invoice_items = relationship("InvoiceItem", back_populates="quote_item")
