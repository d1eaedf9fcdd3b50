"""
Asiento REC generado al aprobar un recibo de cobranza.

HABER:
    113100  Deudores por ventas            total imputado
DEBE:
    cuenta de tesorería                    por cada medio de cobro
    114301  Ret. y percepciones IIBB       suma de todas las jurisdicciones
    114105  IVA retenciones
    114101  Ret. sufridas Ganancias
    213201  Retenciones sufridas SUSS
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Sequence, Tuple

from circuito.common.money import ZERO, to_money
from circuito.modules.receipts.withholdings import WITHHOLDING_ACCOUNT_MAPPING, WithholdingSummary

ACCOUNTS_RECEIVABLE_CODE = "113100"
JOURNAL_TOLERANCE = Decimal("0.02")


class UnbalancedJournalError(ValueError):
    pass


@dataclass(frozen=True)
class JournalLine:
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str


@dataclass(frozen=True)
class CollectionLine:
    """Medio de cobro ya resuelto contra su cuenta de tesorería"""
    account_code: str
    account_name: str
    payment_type: str
    amount: Decimal


def _withholding_label(withholding_type: str, jurisdiction_label, certificate_number) -> str:
    label = jurisdiction_label or withholding_type.replace("IIBB_", "").replace("_", " ")
    if certificate_number:
        label += f" (Cert. {certificate_number})"
    return label


def build_receipt_journal_lines(
    receipt_number: str,
    total_applied,
    collections: Sequence[CollectionLine],
    withholdings: WithholdingSummary,
) -> List[JournalLine]:
    lines = [JournalLine(
        account_code=ACCOUNTS_RECEIVABLE_CODE,
        debit=ZERO,
        credit=to_money(total_applied),
        description=f"Cancelación facturas - Recibo {receipt_number}",
    )]

    for collection in collections:
        lines.append(JournalLine(
            account_code=collection.account_code,
            debit=to_money(collection.amount),
            credit=ZERO,
            description=f"{collection.payment_type} - {collection.account_name} - Recibo {receipt_number}",
        ))

    # Las retenciones se agrupan por cuenta contable
    by_account: Dict[str, Tuple[Decimal, List[str]]] = {}
    for group in withholdings.groups:
        for line in group.lines:
            account_code = WITHHOLDING_ACCOUNT_MAPPING.get(line.withholding_type)
            if account_code is None:
                raise UnbalancedJournalError(
                    f"No hay cuenta contable mapeada para el tipo de retención: {line.withholding_type}"
                )
            amount, labels = by_account.get(account_code, (ZERO, []))
            labels.append(_withholding_label(line.withholding_type, line.jurisdiction_label, line.certificate_number))
            by_account[account_code] = (amount + line.amount, labels)

    for account_code, (amount, labels) in by_account.items():
        lines.append(JournalLine(
            account_code=account_code,
            debit=amount,
            credit=ZERO,
            description=f"Retención {account_code} - {', '.join(labels)} - Recibo {receipt_number}",
        ))

    total_debit = sum((line.debit for line in lines), ZERO)
    total_credit = sum((line.credit for line in lines), ZERO)
    if abs(total_debit - total_credit) > JOURNAL_TOLERANCE:
        raise UnbalancedJournalError(
            f"Asiento desbalanceado: Debe={total_debit:,.2f}, Haber={total_credit:,.2f}"
        )
    return lines
