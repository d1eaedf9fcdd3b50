"""
Consulta a la Central de Deudores del BCRA.

Los montos que devuelve el BCRA están en miles de pesos. El resultado se
resume en un semáforo: rojo con situación >= 4, amarillo con situación >= 2
o cheques rechazados, verde en otro caso.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from circuito.common.validators import clean_cuit
from circuito.core.config import settings
from circuito.modules.integrations.ports import CreditBureau, ExternalServiceError

logger = logging.getLogger(__name__)


def traffic_light(worst_situation: int, rejected_checks: int) -> str:
    if worst_situation >= 4:
        return "rojo"
    if worst_situation >= 2 or rejected_checks > 0:
        return "amarillo"
    return "verde"


def summarize_debts(debts: Dict[str, Any], checks: Dict[str, Any]) -> Dict[str, Any]:
    periods = (debts.get("results") or {}).get("periodos") or [] if debts.get("status") == 200 else []
    latest = max(periods, key=lambda p: p.get("periodo", ""), default={})
    entities: List[Dict[str, Any]] = latest.get("entidades") or []

    worst = max((int(e.get("situacion") or 1) for e in entities), default=0)
    total_debt = sum((Decimal(str(e.get("monto") or 0)) * 1000 for e in entities), Decimal("0"))

    causes = (checks.get("results") or {}).get("causales") or [] if checks.get("status") == 200 else []
    rejected = sum(
        len(entity.get("detalle") or [])
        for cause in causes
        for entity in cause.get("entidades") or []
    )

    return {
        "period": latest.get("periodo"),
        "worst_situation": worst,
        "total_debt": total_debt,
        "entities": len(entities),
        "rejected_checks": rejected,
        "traffic_light": traffic_light(worst, rejected),
    }


class BcraCreditBureau(CreditBureau):

    def __init__(self, session: Optional[requests.Session] = None):
        self.base_url = settings.BCRA_API_URL.rstrip("/")
        self.timeout = settings.BCRA_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    def _get(self, endpoint: str) -> Dict[str, Any]:
        try:
            response = self.http.get(
                f"{self.base_url}/{endpoint}",
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            if response.status_code == 404:
                return {"status": 404}
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise ExternalServiceError(f"Error al consultar BCRA ({endpoint}): {e}")

    def lookup(self, cuit: str) -> Dict[str, Any]:
        cuit = clean_cuit(cuit)
        summary = summarize_debts(self._get(f"Deudas/{cuit}"), self._get(f"Deudas/ChequesRechazados/{cuit}"))
        logger.info(f"Consulta BCRA {cuit}: {summary['traffic_light']}")
        return {"cuit": cuit, **summary}
