"""
Estados de un recibo de cobranza.

BORRADOR -> APROBADO solo si el recibo cuadra (ver reconciliation.approval_guard).
"""
import enum

from circuito.modules.receipts.reconciliation import approval_guard
from circuito.modules.workflow.machine import Edge, TransitionGraph


class ReceiptStatus(str, enum.Enum):
    BORRADOR = "BORRADOR"
    APROBADO = "APROBADO"
    ANULADO = "ANULADO"


RECEIPT_GRAPH = TransitionGraph(
    document_type="receipt",
    initial=ReceiptStatus.BORRADOR,
    statuses=list(ReceiptStatus),
    edges={
        ReceiptStatus.BORRADOR: [
            Edge(ReceiptStatus.APROBADO, guard=approval_guard),
            Edge(ReceiptStatus.ANULADO, requires_reason=True),
        ],
    },
)
