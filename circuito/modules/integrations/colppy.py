"""
Adaptador de Colppy (sistema contable).

La API de Colppy recibe siempre el mismo sobre JSON:
    auth:       {usuario, password (MD5)}
    service:    {provision, operacion}
    parameters: {sesion: {usuario, claveSesion}, idEmpresa, ...}
y responde con result.estado == 0 cuando la llamada fue aceptada.
"""
import hashlib
import logging
from typing import Any, Dict, Optional

import requests

from circuito.common.validators import format_cuit
from circuito.core.config import settings
from circuito.modules.integrations.ports import (
    AccountingSystem, ExternalDocument, ExternalDocumentResult, ExternalServiceError
)

logger = logging.getLogger(__name__)


class ColppyAdapter(AccountingSystem):

    def __init__(self, session: Optional[requests.Session] = None):
        self.api_url = settings.COLPPY_API_URL
        self.username = settings.COLPPY_USERNAME
        self.password_md5 = hashlib.md5(settings.COLPPY_PASSWORD.encode("utf-8")).hexdigest()
        self.company_id = settings.COLPPY_COMPANY_ID
        self.timeout = settings.COLPPY_TIMEOUT_SECONDS
        self.http = session or requests.Session()
        self._session_key: Optional[str] = None

    def _call(self, provision: str, operation: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "auth": {"usuario": self.username, "password": self.password_md5},
            "service": {"provision": provision, "operacion": operation},
            "parameters": parameters,
        }
        try:
            response = self.http.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            raise ExternalServiceError(f"Error en llamada a Colppy ({provision}.{operation}): {e}")
        except ValueError as e:
            raise ExternalServiceError(f"Respuesta de Colppy no es JSON válido: {e}")

        result = body.get("result") or {}
        if result and result.get("estado") != 0:
            raise ExternalServiceError(result.get("mensaje") or "Error desconocido de Colppy")
        data = body.get("response") or {}
        if data.get("success") is False:
            raise ExternalServiceError(f"Error de Colppy: {data.get('message') or 'Error desconocido'}")
        return data

    def _session_parameters(self) -> Dict[str, Any]:
        if self._session_key is None:
            data = self._call("Usuario", "iniciar_sesion", {"usuario": self.username, "password": self.password_md5})
            key = (data.get("data") or {}).get("claveSesion")
            if not key:
                raise ExternalServiceError("Colppy no retornó claveSesion")
            self._session_key = key
        return {
            "sesion": {"usuario": self.username, "claveSesion": self._session_key},
            "idEmpresa": self.company_id,
        }

    def find_customer_id(self, cuit: str) -> str:
        data = self._call("Cliente", "listar_cliente", {
            **self._session_parameters(),
            "start": 0,
            "limit": 50,
            "filter": [{"field": "CUIT", "op": "=", "value": format_cuit(cuit)}],
            "order": [{"field": "NombreFantasia", "dir": "asc"}],
        })
        customers = data.get("data") or []
        if not customers:
            raise ExternalServiceError(f"El cliente con CUIT {cuit} no existe en Colppy")
        return str(customers[0].get("idCliente") or customers[0].get("id"))

    def create_invoice(self, document: ExternalDocument) -> ExternalDocumentResult:
        if not document.customer_cuit:
            raise ExternalServiceError(f"La factura {document.reference} no tiene CUIT de cliente")

        net = sum((line.unit_price * line.quantity for line in document.lines), 0)
        tax = sum((line.unit_price * line.quantity * line.tax_rate / 100 for line in document.lines), 0)
        point_of_sale, number = document.reference.split("-", 1)
        data = self._call("FacturaVenta", "alta_facturaventa", {
            **self._session_parameters(),
            "descripcion": f"Factura {document.reference}",
            "idCliente": self.find_customer_id(document.customer_cuit),
            "idEstadoFactura": "Borrador",
            "idTipoFactura": document.invoice_type or "B",
            "idTipoComprobante": "4",
            "nroFactura1": point_of_sale,
            "nroFactura2": number,
            "fechaFactura": document.date,
            "idCondicionPago": document.payment_terms,
            "netoGravado": f"{net:.2f}",
            "totalIVA": f"{tax:.2f}",
            "IVA21": f"{tax:.2f}",
            "totalFactura": f"{net + tax:.2f}",
            "itemsFactura": [
                {
                    "idItem": "0",
                    "tipoItem": "P",
                    "Descripcion": line.description,
                    "Cantidad": str(line.quantity),
                    "ImporteUnitario": f"{line.unit_price:.2f}",
                    "importeTotal": f"{line.unit_price * line.quantity:.2f}",
                    "IVA": f"{line.tax_rate:.2f}",
                }
                for line in document.lines
            ],
        })
        external_id = data.get("idfactura") or data.get("idFactura")
        if not external_id:
            raise ExternalServiceError("Colppy no retornó idfactura en la respuesta")
        logger.info(f"Factura {document.reference} registrada en Colppy ({external_id})")
        return ExternalDocumentResult(external_id=str(external_id), external_number=data.get("nroFactura"))

    def create_delivery_note(self, document: ExternalDocument) -> ExternalDocumentResult:
        if not document.customer_cuit:
            raise ExternalServiceError(f"El remito {document.reference} no tiene CUIT de cliente")

        data = self._call("Remito", "alta_remito", {
            **self._session_parameters(),
            "idCliente": self.find_customer_id(document.customer_cuit),
            "Fecha": document.date,
            "Items": [
                {
                    "Descripcion": line.description,
                    "Cantidad": line.quantity,
                    "PrecioUnitario": float(line.unit_price),
                }
                for line in document.lines
            ],
        })
        external_id = data.get("idremito") or data.get("idRemito")
        if not external_id:
            raise ExternalServiceError("Colppy no retornó idremito en la respuesta")
        logger.info(f"Remito {document.reference} registrado en Colppy ({external_id})")
        return ExternalDocumentResult(
            external_id=str(external_id),
            external_number=data.get("nroRemito") or data.get("NumeroRemito"),
        )
