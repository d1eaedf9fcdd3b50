from circuito.database.database import Base
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from circuito.common.mixins import TimestampMixin, StatusTrackedMixin
from circuito.modules.delivery_notes.transitions import DeliveryNoteStatus


class DeliveryNote(Base, TimestampMixin, StatusTrackedMixin):
    """
    Remitos de entrega

    Numeración "RE 0002-00000001". Se generan desde una cotización y pueden
    facturarse una vez listos para despachar.
    """
    __tablename__ = "delivery_notes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    delivery_number = Column(String(30), nullable=False, unique=True, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    quote_id = Column(Uuid, ForeignKey("quotes.id"), nullable=True, index=True)
    created_by = Column(String(100), nullable=False)

    status = Column(Enum(DeliveryNoteStatus), nullable=False, default=DeliveryNoteStatus.PENDING, index=True)
    delivery_address = Column(Text, nullable=True)
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    received_by = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    customer = relationship("Customer")
    items = relationship("DeliveryNoteItem", back_populates="delivery_note", cascade="all, delete-orphan")


class DeliveryNoteItem(Base):
    __tablename__ = "delivery_note_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    delivery_note_id = Column(Uuid, ForeignKey("delivery_notes.id"), nullable=False, index=True)
    quote_item_id = Column(Uuid, ForeignKey("quote_items.id"), nullable=True)
    description = Column(String(300), nullable=False)
    quantity = Column(Integer, nullable=False)

    delivery_note = relationship("DeliveryNote", back_populates="items")
