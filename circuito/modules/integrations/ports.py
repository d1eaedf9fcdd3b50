"""
Puertos hacia sistemas externos.

El circuito solo conoce estas interfaces; los adaptadores concretos
(Colppy, BCRA) viven en este mismo paquete.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


class ExternalServiceError(Exception):
    """Falla de comunicación o respuesta inválida de un sistema externo"""


@dataclass(frozen=True)
class ExternalDocumentLine:
    description: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal = Decimal("21")


@dataclass(frozen=True)
class ExternalDocument:
    """Factura o remito tal como se envía al sistema contable"""
    reference: str
    customer_cuit: Optional[str]
    customer_name: str
    date: str  # YYYY-MM-DD
    lines: List[ExternalDocumentLine] = field(default_factory=list)
    invoice_type: Optional[str] = None
    point_of_sale: Optional[str] = None
    payment_terms: str = "Contado"


@dataclass(frozen=True)
class ExternalDocumentResult:
    external_id: str
    external_number: Optional[str] = None


class AccountingSystem(ABC):
    """Puerto para el sistema contable externo."""

    @abstractmethod
    def create_invoice(self, document: ExternalDocument) -> ExternalDocumentResult:
        pass

    @abstractmethod
    def create_delivery_note(self, document: ExternalDocument) -> ExternalDocumentResult:
        pass


class CreditBureau(ABC):
    """
    Puerto para la consulta de situación crediticia de un CUIT.

    Es solo informativo: ninguna transición de estado depende de su respuesta.
    """

    @abstractmethod
    def lookup(self, cuit: str) -> Dict[str, Any]:
        pass
