import logging
from datetime import date
from typing import Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from circuito.modules.accounting.journal import JournalLine
from circuito.modules.accounting.models import JournalEntry, JournalEntryLine

logger = logging.getLogger(__name__)


class AccountingService:
    """Registro de asientos. No hace commit: el asiento se confirma junto con el documento que lo origina."""

    def __init__(self, db: Session):
        self.db = db

    def _next_entry_number(self) -> int:
        last = self.db.query(func.max(JournalEntry.entry_number)).scalar()
        return (last or 0) + 1

    def post_entry(
        self,
        entry_date: date,
        description: str,
        reference: str,
        lines: Sequence[JournalLine],
        created_by: str,
    ) -> JournalEntry:
        entry = JournalEntry(
            entry_number=self._next_entry_number(),
            date=entry_date,
            description=description,
            reference=reference,
            created_by=created_by,
        )
        for line in lines:
            entry.lines.append(JournalEntryLine(
                account_code=line.account_code,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            ))
        self.db.add(entry)
        self.db.flush()
        logger.info(f"Asiento {entry.entry_number} registrado ({reference})")
        return entry
