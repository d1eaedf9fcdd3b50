"""
Estados de una cotización.

DRAFT     -> SENT, ACCEPTED, REJECTED (motivo)
SENT      -> SENT (reenvío), ACCEPTED, REJECTED (motivo), EXPIRED (sistema)
ACCEPTED  -> CONVERTED (sistema), DRAFT (motivo), CANCELLED (motivo)
CONVERTED -> ACCEPTED (motivo; informa los documentos vinculados a desvincular)
CANCELLED -> DRAFT (motivo)
REJECTED, EXPIRED: sin salida. Solo se pueden duplicar.
"""
import enum

from circuito.modules.workflow.machine import Edge, TransitionGraph


class QuoteStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    CONVERTED = "CONVERTED"


# Documentos externos que quedan huérfanos al revertir una conversión
CONVERSION_LINKS = ("colppy_invoice", "colppy_delivery_note")

QUOTE_GRAPH = TransitionGraph(
    document_type="quote",
    initial=QuoteStatus.DRAFT,
    statuses=list(QuoteStatus),
    edges={
        QuoteStatus.DRAFT: [
            Edge(QuoteStatus.SENT),
            Edge(QuoteStatus.ACCEPTED),
            Edge(QuoteStatus.REJECTED, requires_reason=True),
        ],
        QuoteStatus.SENT: [
            Edge(QuoteStatus.SENT),
            Edge(QuoteStatus.ACCEPTED),
            Edge(QuoteStatus.REJECTED, requires_reason=True),
            Edge(QuoteStatus.EXPIRED, system_only=True),
        ],
        QuoteStatus.ACCEPTED: [
            Edge(QuoteStatus.CONVERTED, system_only=True),
            Edge(QuoteStatus.DRAFT, requires_reason=True, is_revert=True),
            Edge(QuoteStatus.CANCELLED, requires_reason=True),
        ],
        QuoteStatus.CONVERTED: [
            Edge(QuoteStatus.ACCEPTED, requires_reason=True, is_revert=True, clears=CONVERSION_LINKS),
        ],
        QuoteStatus.CANCELLED: [
            Edge(QuoteStatus.DRAFT, requires_reason=True, is_revert=True),
        ],
    },
)
