from circuito.database.database import Base
from sqlalchemy import Column, String, Date, ForeignKey, Numeric, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from circuito.common.mixins import TimestampMixin, StatusTrackedMixin
from circuito.modules.purchase_invoices.transitions import PurchaseInvoiceStatus


class PurchaseInvoice(Base, TimestampMixin, StatusTrackedMixin):
    """Facturas de proveedores"""
    __tablename__ = "purchase_invoices"

    id = Column(Uuid, primary_key=True, default=uuid4)
    supplier_name = Column(String(200), nullable=False)
    supplier_cuit = Column(String(13), nullable=True)
    invoice_number = Column(String(30), nullable=False, index=True)
    invoice_type = Column(String(1), nullable=False, default="A")
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    created_by = Column(String(100), nullable=False)

    status = Column(Enum(PurchaseInvoiceStatus), nullable=False, default=PurchaseInvoiceStatus.DRAFT, index=True)
    currency = Column(String(3), nullable=False, default="ARS")
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    items = relationship("PurchaseInvoiceItem", back_populates="purchase_invoice", cascade="all, delete-orphan")

    @property
    def lines_subtotal(self):
        return sum((item.subtotal or 0 for item in self.items), 0)


class PurchaseInvoiceItem(Base):
    __tablename__ = "purchase_invoice_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    purchase_invoice_id = Column(Uuid, ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    description = Column(String(300), nullable=False)
    quantity = Column(Numeric(15, 2), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False)

    purchase_invoice = relationship("PurchaseInvoice", back_populates="items")
