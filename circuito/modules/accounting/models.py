from circuito.database.database import Base
from sqlalchemy import Column, String, Integer, Date, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from circuito.common.mixins import TimestampMixin


class JournalEntry(Base, TimestampMixin):
    """Asientos contables generados por el circuito (ej. REC al aprobar un recibo)"""
    __tablename__ = "journal_entries"

    id = Column(Uuid, primary_key=True, default=uuid4)
    entry_number = Column(Integer, nullable=False, unique=True)
    date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    reference = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="POSTED")
    created_by = Column(String(100), nullable=False)

    lines = relationship("JournalEntryLine", back_populates="journal_entry", cascade="all, delete-orphan")


class JournalEntryLine(Base):
    __tablename__ = "journal_entry_lines"

    id = Column(Uuid, primary_key=True, default=uuid4)
    journal_entry_id = Column(Uuid, ForeignKey("journal_entries.id"), nullable=False, index=True)
    account_code = Column(String(20), nullable=False)
    debit = Column(Numeric(15, 2), nullable=False, default=0)
    credit = Column(Numeric(15, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")
