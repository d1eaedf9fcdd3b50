import pytest
from datetime import date
from decimal import Decimal

from circuito.modules.accounting.journal import (
    ACCOUNTS_RECEIVABLE_CODE, CollectionLine, UnbalancedJournalError, build_receipt_journal_lines
)
from circuito.modules.accounting.models import JournalEntry
from circuito.modules.accounting.service import AccountingService
from circuito.modules.receipts.withholdings import WithholdingGroup, WithholdingGroupType, WithholdingLine, \
    WithholdingSummary, aggregate_withholdings


def bank(amount):
    return CollectionLine(account_code="111201", account_name="Banco Galicia CC",
                          payment_type="TRANSFERENCIA", amount=Decimal(amount))


class TestReceiptJournal:

    def test_asiento_con_retenciones_agrupadas_por_cuenta(self):
        withholdings = aggregate_withholdings(
            iibb_lines=[
                {"withholding_type": "IIBB_CABA", "amount": "60.00", "certificate_number": "C-1"},
                {"withholding_type": "IIBB_CORDOBA", "amount": "40.00"},
            ],
            others={"GANANCIAS": {"amount": "20.00"}},
        )
        lines = build_receipt_journal_lines("0001-00000007", Decimal("1000.00"), [bank("880.00")], withholdings)

        assert lines[0].account_code == ACCOUNTS_RECEIVABLE_CODE
        assert lines[0].credit == Decimal("1000.00")
        by_account = {line.account_code: line for line in lines[1:]}
        assert by_account["111201"].debit == Decimal("880.00")
        assert by_account["114301"].debit == Decimal("100.00")
        assert "CABA (Cert. C-1)" in by_account["114301"].description
        assert "Córdoba" in by_account["114301"].description
        assert by_account["114101"].debit == Decimal("20.00")
        assert sum(line.debit for line in lines) == sum(line.credit for line in lines)

    def test_asiento_sin_retenciones(self):
        lines = build_receipt_journal_lines(
            "0001-00000001", Decimal("500.00"), [bank("300.00"), bank("200.00")], aggregate_withholdings()
        )
        assert len(lines) == 3

    def test_asiento_desbalanceado(self):
        with pytest.raises(UnbalancedJournalError):
            build_receipt_journal_lines("0001-00000001", Decimal("500.00"), [bank("400.00")], aggregate_withholdings())

    def test_redondeo_dentro_de_tolerancia(self):
        lines = build_receipt_journal_lines(
            "0001-00000001", Decimal("500.00"), [bank("499.98")], aggregate_withholdings()
        )
        assert len(lines) == 2

    def test_tipo_de_retencion_sin_cuenta(self):
        withholdings = WithholdingSummary(groups=(
            WithholdingGroup(WithholdingGroupType.IIBB, (WithholdingLine("IIBB_MARTE", Decimal("10.00")),)),
        ))
        with pytest.raises(UnbalancedJournalError):
            build_receipt_journal_lines("0001-00000001", Decimal("10.00"), [], withholdings)


class TestAccountingService:

    def test_numeracion_correlativa(self, db):
        service = AccountingService(db)
        lines = build_receipt_journal_lines("0001-00000001", Decimal("100.00"), [bank("100.00")], aggregate_withholdings())

        first = service.post_entry(date(2026, 3, 2), "REC 0001-00000001", "0001-00000001", lines, "contador")
        second = service.post_entry(date(2026, 3, 2), "REC 0001-00000002", "0001-00000002", lines, "contador")
        db.commit()

        assert (first.entry_number, second.entry_number) == (1, 2)
        assert db.query(JournalEntry).count() == 2
        assert len(second.lines) == 2
