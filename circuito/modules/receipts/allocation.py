"""
Motor de imputación de un cobro sobre facturas abiertas.

- seleccionar una factura la imputa por su saldo completo
- editar el importe lo acota a [0.01, saldo] sin rechazar el valor
- deseleccionar la elimina por completo: volver a seleccionarla arranca
  otra vez desde el saldo vigente
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from circuito.common.money import CENT, ZERO, to_money

MIN_APPLIED_AMOUNT = CENT


@dataclass(frozen=True)
class OpenInvoice:
    """Factura pendiente tal como la devuelve la consulta de saldos"""
    invoice_id: str
    invoice_total: Decimal
    remaining_balance: Decimal
    currency: str = "ARS"
    invoice_number: Optional[str] = None


@dataclass(frozen=True)
class InvoiceApplication:
    invoice_id: str
    invoice_total: Decimal
    remaining_balance: Decimal  # foto al momento de seleccionar
    applied_amount: Decimal
    currency: str = "ARS"
    invoice_number: Optional[str] = None


class AllocationError(ValueError):
    pass


def clamp_applied_amount(value: Any, remaining_balance: Decimal) -> Decimal:
    """Acota un importe ingresado al rango [0.01, saldo]."""
    return min(max(to_money(value), MIN_APPLIED_AMOUNT), to_money(remaining_balance))


class InvoiceAllocation:
    """Selección de facturas de un recibo, en orden de selección"""

    def __init__(self, applications: Iterable[InvoiceApplication] = ()):
        self._applications: Dict[str, InvoiceApplication] = {}
        for application in applications:
            self._applications[application.invoice_id] = application

    def select(self, invoice: OpenInvoice) -> InvoiceApplication:
        remaining = to_money(invoice.remaining_balance)
        if remaining <= ZERO:
            raise AllocationError(f"La factura {invoice.invoice_number or invoice.invoice_id} no tiene saldo pendiente")
        application = InvoiceApplication(
            invoice_id=invoice.invoice_id,
            invoice_total=to_money(invoice.invoice_total),
            remaining_balance=remaining,
            applied_amount=remaining,
            currency=invoice.currency,
            invoice_number=invoice.invoice_number,
        )
        self._applications[invoice.invoice_id] = application
        return application

    def deselect(self, invoice_id: str) -> None:
        self._applications.pop(invoice_id, None)

    def set_applied_amount(self, invoice_id: str, value: Any) -> InvoiceApplication:
        current = self._applications.get(invoice_id)
        if current is None:
            raise AllocationError(f"La factura {invoice_id} no está seleccionada")
        updated = replace(current, applied_amount=clamp_applied_amount(value, current.remaining_balance))
        self._applications[invoice_id] = updated
        return updated

    def is_selected(self, invoice_id: str) -> bool:
        return invoice_id in self._applications

    def clear(self) -> None:
        """Al cambiar de cliente se descarta toda la selección."""
        self._applications.clear()

    @property
    def applications(self) -> List[InvoiceApplication]:
        return list(self._applications.values())

    @property
    def total_applied(self) -> Decimal:
        return sum((a.applied_amount for a in self._applications.values()), ZERO)

    @classmethod
    def from_requests(
        cls,
        open_invoices: Iterable[OpenInvoice],
        requests: Iterable[Tuple[str, Any]],
    ) -> "InvoiceAllocation":
        """
        Arma la imputación a partir de pares (invoice_id, importe pedido).

        Cada factura se selecciona con su saldo y luego se ajusta al importe
        pedido, que queda acotado al saldo.
        """
        by_id = {invoice.invoice_id: invoice for invoice in open_invoices}
        allocation = cls()
        for invoice_id, amount in requests:
            invoice = by_id.get(invoice_id)
            if invoice is None:
                raise AllocationError(f"Factura {invoice_id} no encontrada entre las pendientes")
            allocation.select(invoice)
            allocation.set_applied_amount(invoice_id, amount)
        return allocation
