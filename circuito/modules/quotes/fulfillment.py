"""
Seguimiento de facturación parcial de cotizaciones.

Cada ítem lleva la cantidad ya facturada (acumulada entre todas las
facturas no anuladas). De ahí sale la cantidad pendiente, que nunca puede
quedar negativa, y la columna del tablero de facturación:

- ready:   todos los ítems con pendiente > 0 están en stock
- partial: algunos sí, otros no
- pending: ninguno está en stock
- sin ítems pendientes: la cotización no aparece (ya está facturada)
"""
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

IN_STOCK_TERMS = {"inmediato", "inmediata", "stock"}


class BoardColumn(str, Enum):
    READY = "ready"
    PARTIAL = "partial"
    PENDING = "pending"


class FulfillmentError(ValueError):
    pass


class OverInvoicingError(FulfillmentError):
    def __init__(self, item_id: str, requested: int, remaining: int):
        self.item_id = item_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"El ítem {item_id} tiene {remaining} unidades pendientes; no se pueden facturar {requested}"
        )


class ItemNotSelectableError(FulfillmentError):
    pass


def is_item_in_stock(delivery_time: Optional[str]) -> bool:
    """Plazo vacío, "inmediato", "inmediata" o "stock" = en stock."""
    if not delivery_time:
        return True
    return delivery_time.strip().lower() in IN_STOCK_TERMS


def parse_delivery_days(delivery_time: Optional[str]) -> Optional[int]:
    """
    Días de entrega: 0 si está en stock, el número de días si se puede
    leer ("15 días", "7-10 días" toma el mayor) o None ("A confirmar").
    """
    if is_item_in_stock(delivery_time):
        return 0
    normalized = delivery_time.strip().lower()

    range_match = re.search(r"(\d+)\s*[-a]\s*(\d+)\s*d[ií]as?", normalized)
    if range_match:
        return int(range_match.group(2))

    match = re.search(r"(\d+)\s*d[ií]as?", normalized)
    if match:
        return int(match.group(1))

    return None


def farthest_delivery(delivery_times: Iterable[Optional[str]]) -> str:
    max_days = 0
    has_unparseable = False
    for delivery_time in delivery_times:
        days = parse_delivery_days(delivery_time)
        if days is None:
            has_unparseable = True
        elif days > max_days:
            max_days = days

    if max_days > 0:
        return f"{max_days} días"
    if has_unparseable:
        return "A confirmar"
    return "Inmediato"


@dataclass(frozen=True)
class FulfillmentItem:
    item_id: str
    quantity: int
    invoiced_quantity: int
    is_in_stock: bool
    # Enviado a un sistema externo y todavía sin confirmar
    pending_submission: bool = False

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.invoiced_quantity

    @property
    def is_selectable(self) -> bool:
        return self.remaining_quantity > 0 and self.is_in_stock and not self.pending_submission


def open_items(items: Iterable[FulfillmentItem]) -> List[FulfillmentItem]:
    return [item for item in items if item.remaining_quantity > 0]


def is_fully_invoiced(items: Iterable[FulfillmentItem]) -> bool:
    return not open_items(items)


def classify(items: Iterable[FulfillmentItem]) -> Optional[BoardColumn]:
    """Columna del tablero, o None si ya no queda nada por facturar."""
    pending = open_items(items)
    if not pending:
        return None
    in_stock = sum(1 for item in pending if item.is_in_stock)
    if in_stock == len(pending):
        return BoardColumn.READY
    if in_stock == 0:
        return BoardColumn.PENDING
    return BoardColumn.PARTIAL


def selectable_items(items: Iterable[FulfillmentItem]) -> List[FulfillmentItem]:
    return [item for item in items if item.is_selectable]


def build_partial_request(items: Sequence[FulfillmentItem], item_ids: Iterable[str]) -> Dict[str, int]:
    """
    Arma el pedido de facturación parcial para los ítems elegidos.

    Siempre se pide la cantidad pendiente completa de cada ítem.
    """
    by_id = {item.item_id: item for item in items}
    request: Dict[str, int] = {}
    for item_id in item_ids:
        item = by_id.get(item_id)
        if item is None:
            raise ItemNotSelectableError(f"El ítem {item_id} no pertenece al documento")
        if not item.is_selectable:
            raise ItemNotSelectableError(
                f"El ítem {item_id} no se puede facturar (sin pendiente, sin stock o enviado sin confirmar)"
            )
        request[item_id] = item.remaining_quantity
    if not request:
        raise ItemNotSelectableError("Debes seleccionar al menos un ítem")
    return request


def full_request(items: Iterable[FulfillmentItem]) -> Dict[str, int]:
    """Pedido por todo lo pendiente (facturación completa)."""
    return {item.item_id: item.remaining_quantity for item in open_items(items)}


def apply_invoicing(items: Sequence[FulfillmentItem], request: Mapping[str, int]) -> List[FulfillmentItem]:
    """
    Registra un evento de facturación. Valida todo el pedido antes de
    aplicar nada: si un ítem excede su pendiente, no cambia ninguno.
    """
    by_id = {item.item_id: item for item in items}
    for item_id, quantity in request.items():
        item = by_id.get(item_id)
        if item is None:
            raise FulfillmentError(f"El ítem {item_id} no pertenece al documento")
        if quantity <= 0:
            raise FulfillmentError(f"La cantidad a facturar del ítem {item_id} debe ser mayor a cero")
        if quantity > item.remaining_quantity:
            raise OverInvoicingError(item_id, quantity, item.remaining_quantity)

    return [
        replace(item, invoiced_quantity=item.invoiced_quantity + request[item.item_id])
        if item.item_id in request else item
        for item in items
    ]
