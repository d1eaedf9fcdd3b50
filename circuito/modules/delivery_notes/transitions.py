"""
Estados de un remito.

PENDING -> PREPARING -> READY -> DISPATCHED -> DELIVERED
PENDING, PREPARING, READY -> CANCELLED (motivo)
"""
import enum

from circuito.modules.workflow.machine import Edge, TransitionGraph


class DeliveryNoteStatus(str, enum.Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


DELIVERY_NOTE_GRAPH = TransitionGraph(
    document_type="delivery_note",
    initial=DeliveryNoteStatus.PENDING,
    statuses=list(DeliveryNoteStatus),
    edges={
        DeliveryNoteStatus.PENDING: [
            Edge(DeliveryNoteStatus.PREPARING),
            Edge(DeliveryNoteStatus.CANCELLED, requires_reason=True),
        ],
        DeliveryNoteStatus.PREPARING: [
            Edge(DeliveryNoteStatus.READY),
            Edge(DeliveryNoteStatus.CANCELLED, requires_reason=True),
        ],
        DeliveryNoteStatus.READY: [
            Edge(DeliveryNoteStatus.DISPATCHED),
            Edge(DeliveryNoteStatus.CANCELLED, requires_reason=True),
        ],
        DeliveryNoteStatus.DISPATCHED: [
            Edge(DeliveryNoteStatus.DELIVERED),
        ],
    },
)

# Estados desde los que se puede generar la factura del remito
INVOICEABLE_STATUSES = (DeliveryNoteStatus.READY, DeliveryNoteStatus.DISPATCHED, DeliveryNoteStatus.DELIVERED)
