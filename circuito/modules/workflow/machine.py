"""
Máquina de estados genérica para documentos del circuito de ventas.

Cada variante (cotización, remito, factura de compra, recibo) declara su
propio `TransitionGraph`. `propose_transition` es una función pura: recibe
una foto inmutable del documento y devuelve la foto nueva junto con la
entrada de historial a persistir. No toca la base de datos; el servicio
que la llama es responsable de escribir estado + historial en una sola
transacción.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from circuito.modules.workflow.exceptions import InvalidTransition, MissingReason


@dataclass(frozen=True)
class HistoryEntry:
    from_status: Any
    to_status: Any
    changed_by: str
    timestamp: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class LinkedDocument:
    kind: str
    document_id: str


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    document_type: str
    status: Any
    currency: str = "ARS"
    history: Tuple[HistoryEntry, ...] = ()
    # Referencias a documentos derivados, por tipo: {"colppy_invoice": ("123",)}
    links: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionContext:
    changed_by: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    system: bool = False
    timestamp: Optional[datetime] = None
    # Datos que consumen las guardas (ej. "receipt": ReceiptSnapshot)
    payload: Mapping[str, Any] = field(default_factory=dict)


Guard = Callable[[DocumentSnapshot, TransitionContext], None]


@dataclass(frozen=True)
class Edge:
    target: Any
    requires_reason: bool = False
    system_only: bool = False
    is_revert: bool = False
    guard: Optional[Guard] = None
    clears: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TransitionOutcome:
    document: DocumentSnapshot
    entry: HistoryEntry
    edge: Edge
    linked_documents_to_clear: Tuple[LinkedDocument, ...] = ()

    @property
    def from_status(self):
        return self.entry.from_status

    @property
    def to_status(self):
        return self.entry.to_status


class TransitionGraph:
    """Grafo dirigido de estados de una variante de documento"""

    def __init__(self, document_type: str, initial: Any, edges: Mapping[Any, Iterable[Edge]], statuses: Iterable[Any]):
        self.document_type = document_type
        self.initial = initial
        self.statuses = tuple(statuses)
        self._edges: Dict[Any, Dict[Any, Edge]] = {status: {} for status in self.statuses}
        for source, source_edges in edges.items():
            if source not in self._edges:
                raise ValueError(f"Estado desconocido en el grafo {document_type}: {source}")
            for edge in source_edges:
                if edge.target not in self._edges:
                    raise ValueError(f"Estado destino desconocido en el grafo {document_type}: {edge.target}")
                self._edges[source][edge.target] = edge

    def edge(self, source: Any, target: Any) -> Optional[Edge]:
        return self._edges.get(source, {}).get(target)

    def targets(self, source: Any, include_system: bool = False) -> List[Any]:
        return [
            edge.target for edge in self._edges.get(source, {}).values()
            if include_system or not edge.system_only
        ]

    def is_terminal(self, status: Any) -> bool:
        return not self._edges.get(status)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def propose_transition(
    graph: TransitionGraph,
    document: DocumentSnapshot,
    target: Any,
    context: TransitionContext,
) -> TransitionOutcome:
    """
    Valida y calcula una transición.

    Raises:
        InvalidTransition: la arista no está en el grafo, o es solo de sistema
            y la pide un usuario.
        MissingReason: la arista exige motivo y llegó vacío o en blanco.
        GuardFailed: la guarda de la arista rechazó la transición.
    """
    edge = graph.edge(document.status, target)
    if edge is None:
        raise InvalidTransition(graph.document_type, document.status, target)

    if edge.system_only and not context.system:
        raise InvalidTransition(
            graph.document_type, document.status, target,
            detail="la transición solo la realiza el sistema"
        )

    if edge.requires_reason and _is_blank(context.reason):
        raise MissingReason(document.status, target)

    if edge.guard is not None:
        edge.guard(document, context)

    entry = HistoryEntry(
        from_status=document.status,
        to_status=target,
        changed_by=context.changed_by,
        timestamp=context.timestamp or datetime.now(timezone.utc),
        reason=None if _is_blank(context.reason) else context.reason.strip(),
        notes=None if _is_blank(context.notes) else context.notes.strip(),
    )

    to_clear = tuple(
        LinkedDocument(kind=kind, document_id=document_id)
        for kind in edge.clears
        for document_id in document.links.get(kind, ())
    )

    return TransitionOutcome(
        document=replace(document, status=target, history=document.history + (entry,)),
        entry=entry,
        edge=edge,
        linked_documents_to_clear=to_clear,
    )
