"""
Tests de integraciones externas (Colppy, BCRA) y del encolado de tareas

Los adaptadores reciben una sesión HTTP falsa; no se hace ninguna llamada real.
"""
import pytest
from decimal import Decimal

import requests

from circuito.core.celery import dispatch_after_commit
from circuito.core.config import settings
from circuito.modules.integrations import tasks as integration_tasks
from circuito.modules.integrations.bcra import BcraCreditBureau, summarize_debts, traffic_light
from circuito.modules.integrations.colppy import ColppyAdapter
from circuito.modules.integrations.ports import (
    AccountingSystem, ExternalDocument, ExternalDocumentLine, ExternalDocumentResult,
    ExternalServiceError
)
from circuito.modules.invoices.models import Invoice
from circuito.modules.quotes.models import Quote
from circuito.modules.quotes.transitions import QuoteStatus


class FakeResponse:
    def __init__(self, body=None, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def json(self):
        if self.body is None:
            raise ValueError("No JSON")
        return self.body


class FakeColppySession:
    """Responde según provision/operacion y guarda los payloads recibidos."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def post(self, url, json=None, timeout=None):
        key = (json["service"]["provision"], json["service"]["operacion"])
        self.calls.append((key, json["parameters"]))
        return self.responses[key]


class FakeBcraSession:
    def __init__(self, responses):
        self.responses = responses

    def get(self, url, headers=None, timeout=None):
        for suffix, response in self.responses.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(status_code=404)


def colppy_ok(data):
    return FakeResponse({"result": {"estado": 0}, "response": {"success": True, **data}})


def invoice_document(**overrides):
    data = {
        "reference": "0001-00000042",
        "customer_cuit": "30-71234567-1",
        "customer_name": "Ferretería Norte",
        "date": "2026-03-02",
        "invoice_type": "A",
        "lines": [ExternalDocumentLine("Taladro", 2, Decimal("100.00"))],
    }
    data.update(overrides)
    return ExternalDocument(**data)


# ===== COLPPY =====

class TestColppyAdapter:

    def session(self, **extra):
        responses = {
            ("Usuario", "iniciar_sesion"): colppy_ok({"data": {"claveSesion": "abc123"}}),
            ("Cliente", "listar_cliente"): colppy_ok({"data": [{"idCliente": "777"}]}),
            ("FacturaVenta", "alta_facturaventa"): colppy_ok({"idfactura": "F-991", "nroFactura": "0001-00000042"}),
            ("Remito", "alta_remito"): colppy_ok({"idremito": "R-17"}),
        }
        responses.update(extra)
        return FakeColppySession(responses)

    def test_alta_de_factura(self):
        session = self.session()
        result = ColppyAdapter(session=session).create_invoice(invoice_document())

        assert result == ExternalDocumentResult(external_id="F-991", external_number="0001-00000042")
        params = dict(session.calls)[("FacturaVenta", "alta_facturaventa")]
        assert params["idCliente"] == "777"
        assert params["nroFactura1"] == "0001"
        assert params["nroFactura2"] == "00000042"
        assert params["netoGravado"] == "200.00"
        assert params["totalIVA"] == "42.00"
        assert params["totalFactura"] == "242.00"
        assert params["sesion"]["claveSesion"] == "abc123"

    def test_la_sesion_se_reutiliza(self):
        session = self.session()
        adapter = ColppyAdapter(session=session)
        adapter.create_invoice(invoice_document())
        adapter.create_delivery_note(invoice_document(reference="RE 0002-00000001"))
        logins = [key for key, _ in session.calls if key == ("Usuario", "iniciar_sesion")]
        assert len(logins) == 1

    def test_alta_de_remito(self):
        result = ColppyAdapter(session=self.session()).create_delivery_note(invoice_document())
        assert result.external_id == "R-17"

    def test_cliente_inexistente(self):
        session = self.session()
        session.responses[("Cliente", "listar_cliente")] = colppy_ok({"data": []})
        with pytest.raises(ExternalServiceError):
            ColppyAdapter(session=session).create_invoice(invoice_document())

    def test_error_informado_por_colppy(self):
        session = self.session()
        session.responses[("FacturaVenta", "alta_facturaventa")] = FakeResponse(
            {"result": {"estado": 1, "mensaje": "Número de factura duplicado"}}
        )
        with pytest.raises(ExternalServiceError, match="duplicado"):
            ColppyAdapter(session=session).create_invoice(invoice_document())

    def test_respuesta_no_json(self):
        session = self.session()
        session.responses[("Usuario", "iniciar_sesion")] = FakeResponse(None)
        with pytest.raises(ExternalServiceError):
            ColppyAdapter(session=session).create_invoice(invoice_document())

    def test_factura_sin_cuit(self):
        with pytest.raises(ExternalServiceError):
            ColppyAdapter(session=self.session()).create_invoice(invoice_document(customer_cuit=None))


# ===== BCRA =====

DEBTS = {
    "status": 200,
    "results": {"periodos": [
        {"periodo": "202512", "entidades": [{"situacion": 1, "monto": 10}]},
        {"periodo": "202601", "entidades": [
            {"situacion": 1, "monto": 150.5},
            {"situacion": 3, "monto": 20},
        ]},
    ]},
}
CHECKS = {
    "status": 200,
    "results": {"causales": [
        {"causal": "SIN FONDOS", "entidades": [{"detalle": [{"nroCheque": 1}, {"nroCheque": 2}]}]},
    ]},
}


class TestBcra:

    @pytest.mark.parametrize("situation,checks,expected", [
        (0, 0, "verde"),
        (1, 0, "verde"),
        (1, 1, "amarillo"),
        (2, 0, "amarillo"),
        (4, 0, "rojo"),
        (5, 3, "rojo"),
    ])
    def test_semaforo(self, situation, checks, expected):
        assert traffic_light(situation, checks) == expected

    def test_resumen_toma_el_ultimo_periodo(self):
        summary = summarize_debts(DEBTS, CHECKS)
        assert summary["period"] == "202601"
        assert summary["worst_situation"] == 3
        assert summary["total_debt"] == Decimal("170500.0")
        assert summary["entities"] == 2
        assert summary["rejected_checks"] == 2
        assert summary["traffic_light"] == "amarillo"

    def test_cuit_sin_registros(self):
        summary = summarize_debts({"status": 404}, {"status": 404})
        assert summary["worst_situation"] == 0
        assert summary["traffic_light"] == "verde"

    def test_consulta(self):
        bureau = BcraCreditBureau(session=FakeBcraSession({
            "Deudas/30712345671": FakeResponse(DEBTS),
            "ChequesRechazados/30712345671": FakeResponse(CHECKS),
        }))
        report = bureau.lookup("30-71234567-1")
        assert report["cuit"] == "30712345671"
        assert report["traffic_light"] == "amarillo"

    def test_falla_de_red(self):
        bureau = BcraCreditBureau(session=FakeBcraSession({
            "Deudas/30712345671": requests.exceptions.ConnectTimeout("timeout"),
        }))
        with pytest.raises(ExternalServiceError):
            bureau.lookup("30712345671")


# ===== TAREAS =====

class FakeAccountingSystem(AccountingSystem):
    def __init__(self):
        self.documents = []

    def create_invoice(self, document):
        self.documents.append(document)
        return ExternalDocumentResult(external_id="F-991")

    def create_delivery_note(self, document):
        self.documents.append(document)
        return ExternalDocumentResult(external_id="R-17")


class TestAccountingTasks:

    def test_deshabilitado_no_envia(self):
        result = integration_tasks.submit_invoice_to_accounting_task.apply(args=["00000000-0000-0000-0000-000000000000"]).get()
        assert result["status"] == "skipped"

    def test_envio_de_factura_vincula_la_cotizacion(self, client, db, quote_factory, monkeypatch):
        quote = quote_factory(status=QuoteStatus.ACCEPTED)
        client.post(f"/quotes/{quote.id}/invoice", json={})
        invoice = db.query(Invoice).one()
        invoice.external_submission_pending = True
        db.commit()

        fake = FakeAccountingSystem()
        monkeypatch.setattr(settings, "COLPPY_ENABLED", True)
        monkeypatch.setattr(integration_tasks, "get_accounting_system", lambda: fake)

        result = integration_tasks.submit_invoice_to_accounting_task.apply(args=[str(invoice.id)]).get()
        assert result == {"status": "success", "invoice_id": str(invoice.id), "external_id": "F-991"}
        assert fake.documents[0].customer_cuit == "30-71234567-1"
        assert fake.documents[0].reference == invoice.invoice_number

        db.expire_all()
        assert db.get(Invoice, invoice.id).external_submission_pending is False
        synced = db.get(Quote, quote.id)
        assert synced.colppy_invoice_id == "F-991"
        assert synced.colppy_synced_at is not None

    def test_envio_de_remito(self, client, db, quote_factory, monkeypatch):
        quote = quote_factory(status=QuoteStatus.ACCEPTED)
        note = client.post(f"/quotes/{quote.id}/delivery-note", json={}).json()["delivery_note"]

        fake = FakeAccountingSystem()
        monkeypatch.setattr(settings, "COLPPY_ENABLED", True)
        monkeypatch.setattr(integration_tasks, "get_accounting_system", lambda: fake)

        result = integration_tasks.submit_delivery_note_to_accounting_task.apply(args=[note["id"]]).get()
        assert result["external_id"] == "R-17"
        assert fake.documents[0].lines[0].unit_price == Decimal("100.00")

        db.expire_all()
        assert db.get(Quote, quote.id).colppy_delivery_note_id == "R-17"


class BrokenTask:
    name = "circuito.tests.broken"

    def apply_async(self, args=None, kwargs=None):
        raise ConnectionError("broker caído")


class RecordingTask:
    name = "circuito.tests.recording"

    def __init__(self):
        self.calls = []

    def apply_async(self, args=None, kwargs=None):
        self.calls.append((args, kwargs))


class TestDispatchAfterCommit:

    def test_encola(self):
        task = RecordingTask()
        assert dispatch_after_commit(task, "abc") is None
        assert task.calls == [(("abc",), {})]

    def test_falla_del_broker_es_warning(self):
        warning = dispatch_after_commit(BrokenTask(), "abc")
        assert "broker caído" in warning
        assert "circuito.tests.broken" in warning
