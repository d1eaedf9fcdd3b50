"""
Control de cuadre de un recibo de cobranza.

    total_a_cobrar = total_imputado - total_retenciones
    total_cobrado  = suma de medios de cobro válidos
    diferencia     = total_a_cobrar - total_cobrado
    cuadra         = |diferencia| < 0.01

Todo es función pura sobre un `ReceiptSnapshot`; no hay acceso a base de
datos. El guardado en borrador no exige que cuadre; la aprobación sí.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from circuito.common.money import CENT, ZERO, to_money
from circuito.modules.receipts.allocation import InvoiceApplication
from circuito.modules.receipts.withholdings import WithholdingSummary
from circuito.modules.workflow.exceptions import GuardFailed
from circuito.modules.workflow.machine import DocumentSnapshot, TransitionContext

BALANCE_EPSILON = CENT


class PaymentType(str, Enum):
    TRANSFERENCIA = "TRANSFERENCIA"
    CHEQUE = "CHEQUE"
    EFECTIVO = "EFECTIVO"
    DEPOSITO = "DEPOSITO"
    OTROS = "OTROS"


@dataclass(frozen=True)
class PaymentLine:
    treasury_account_id: Optional[str]
    payment_type: PaymentType
    amount: Any
    check_number: Optional[str] = None
    check_date: Optional[date] = None
    check_bank: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None

    @property
    def money(self) -> Decimal:
        return to_money(self.amount)

    @property
    def is_valid(self) -> bool:
        return bool(self.treasury_account_id) and self.money > ZERO

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "treasuryAccountId": self.treasury_account_id,
            "paymentType": PaymentType(self.payment_type).value,
            "amount": self.money,
        }
        if PaymentType(self.payment_type) == PaymentType.CHEQUE:
            for key, value in (("checkNumber", self.check_number), ("checkDate", self.check_date), ("checkBank", self.check_bank)):
                if value:
                    payload[key] = value
        if self.reference:
            payload["reference"] = self.reference
        if self.notes:
            payload["notes"] = self.notes
        return payload


def valid_payment_lines(lines: Sequence[PaymentLine]) -> List[PaymentLine]:
    return [line for line in lines if line.is_valid]


@dataclass(frozen=True)
class ReceiptSnapshot:
    customer_id: Optional[str]
    date: Optional[date]
    applications: Sequence[InvoiceApplication] = ()
    withholdings: WithholdingSummary = field(default_factory=WithholdingSummary)
    payment_lines: Sequence[PaymentLine] = ()
    currency: str = "ARS"


@dataclass(frozen=True)
class ReceiptBalance:
    total_applied: Decimal
    total_withholdings: Decimal
    total_to_collect: Decimal
    total_collected: Decimal
    diff: Decimal
    is_balanced: bool


class ReceiptValidationError(ValueError):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class UnbalancedReceipt(GuardFailed):
    code = "unbalanced_receipt"

    def __init__(self, diff: Decimal):
        self.diff = diff
        super().__init__(
            f"La diferencia debe ser $0.00 para aprobar el recibo (diferencia: ${diff:,.2f})",
            metric="diff",
            value=diff,
        )


def compute_balance(snapshot: ReceiptSnapshot, epsilon: Decimal = BALANCE_EPSILON) -> ReceiptBalance:
    """Recalcula todos los totales desde las líneas actuales."""
    total_applied = sum((to_money(a.applied_amount) for a in snapshot.applications), ZERO)
    total_withholdings = snapshot.withholdings.total_withholdings
    total_to_collect = total_applied - total_withholdings
    total_collected = sum((line.money for line in valid_payment_lines(snapshot.payment_lines)), ZERO)
    diff = total_to_collect - total_collected
    return ReceiptBalance(
        total_applied=total_applied,
        total_withholdings=total_withholdings,
        total_to_collect=total_to_collect,
        total_collected=total_collected,
        diff=diff,
        is_balanced=abs(diff) < epsilon,
    )


def draft_errors(snapshot: ReceiptSnapshot) -> List[str]:
    errors = []
    if not snapshot.customer_id:
        errors.append("Debes seleccionar un cliente")
    if not snapshot.date:
        errors.append("La fecha es requerida")
    if not snapshot.applications:
        errors.append("Debes aplicar al menos una factura")
    if not valid_payment_lines(snapshot.payment_lines):
        errors.append("Debes agregar al menos un medio de cobro")

    mixed = sorted({a.currency for a in snapshot.applications if a.currency != snapshot.currency})
    if mixed:
        errors.append(
            f"Todas las facturas deben estar en {snapshot.currency} (se encontraron: {', '.join(mixed)})"
        )

    for application in snapshot.applications:
        applied = to_money(application.applied_amount)
        if applied < CENT or applied > to_money(application.remaining_balance):
            errors.append(
                f"El importe aplicado a la factura {application.invoice_number or application.invoice_id} "
                f"debe estar entre 0.01 y su saldo"
            )
    return errors


def validate_draft(snapshot: ReceiptSnapshot) -> ReceiptBalance:
    """Validación para guardar en borrador: no exige que el recibo cuadre."""
    errors = draft_errors(snapshot)
    if errors:
        raise ReceiptValidationError(errors)
    return compute_balance(snapshot)


def validate_approval(snapshot: ReceiptSnapshot, epsilon: Decimal = BALANCE_EPSILON) -> ReceiptBalance:
    """Validación para aprobar: todo lo del borrador y además que cuadre."""
    validate_draft(snapshot)
    balance = compute_balance(snapshot, epsilon)
    if not balance.is_balanced:
        raise UnbalancedReceipt(balance.diff)
    return balance


def approval_guard(document: DocumentSnapshot, context: TransitionContext) -> None:
    """Guarda de la transición BORRADOR -> APROBADO"""
    snapshot = context.payload.get("receipt")
    if snapshot is None:
        raise GuardFailed("No se informaron los datos del recibo para validar el cuadre", metric="receipt")
    try:
        validate_approval(snapshot, context.payload.get("epsilon", BALANCE_EPSILON))
    except ReceiptValidationError as e:
        raise GuardFailed(str(e), metric="validation", value=e.errors)
