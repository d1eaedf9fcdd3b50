"""
Estados de una factura de compra.

DRAFT    -> PENDING, APPROVED (guarda de totales), CANCELLED (motivo)
PENDING  -> APPROVED (guarda de totales), CANCELLED (motivo)
APPROVED -> PAID (sistema, al quedar saldada)
"""
import enum

from circuito.common.money import CENT, ZERO, to_money
from circuito.modules.workflow.exceptions import GuardFailed
from circuito.modules.workflow.machine import DocumentSnapshot, Edge, TransitionContext, TransitionGraph


class PurchaseInvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


def totals_guard(document: DocumentSnapshot, context: TransitionContext) -> None:
    """La suma de las líneas más impuestos debe coincidir con el total de la factura."""
    totals = context.payload.get("totals")
    if totals is None:
        raise GuardFailed("No se informaron los totales de la factura", metric="totals")

    total = to_money(totals["total"])
    if total <= ZERO:
        raise GuardFailed("La factura no tiene importe", metric="total", value=total)

    diff = to_money(totals["lines_subtotal"]) + to_money(totals["tax_amount"]) - total
    if abs(diff) >= CENT:
        raise GuardFailed(
            f"Los ítems más impuestos no coinciden con el total de la factura (diferencia: ${diff:,.2f})",
            metric="totals_diff",
            value=diff,
        )


PURCHASE_INVOICE_GRAPH = TransitionGraph(
    document_type="purchase_invoice",
    initial=PurchaseInvoiceStatus.DRAFT,
    statuses=list(PurchaseInvoiceStatus),
    edges={
        PurchaseInvoiceStatus.DRAFT: [
            Edge(PurchaseInvoiceStatus.PENDING),
            Edge(PurchaseInvoiceStatus.APPROVED, guard=totals_guard),
            Edge(PurchaseInvoiceStatus.CANCELLED, requires_reason=True),
        ],
        PurchaseInvoiceStatus.PENDING: [
            Edge(PurchaseInvoiceStatus.APPROVED, guard=totals_guard),
            Edge(PurchaseInvoiceStatus.CANCELLED, requires_reason=True),
        ],
        PurchaseInvoiceStatus.APPROVED: [
            Edge(PurchaseInvoiceStatus.PAID, system_only=True),
        ],
    },
)
