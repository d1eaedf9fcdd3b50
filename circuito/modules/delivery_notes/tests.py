import pytest
from decimal import Decimal
from uuid import UUID

from circuito.core.config import settings
from circuito.modules.delivery_notes import service as delivery_note_service
from circuito.modules.integrations import tasks as integration_tasks
from circuito.modules.integrations.ports import AccountingSystem, ExternalDocumentResult
from circuito.modules.quotes.models import Quote
from circuito.modules.quotes.transitions import QuoteStatus


@pytest.fixture
def delivery_note(client, quote_factory):
    quote = quote_factory(status=QuoteStatus.ACCEPTED)
    response = client.post(f"/quotes/{quote.id}/delivery-note", json={"delivery_address": "Av. Siempreviva 742"})
    return response.json()["delivery_note"]


def move(client, note_id, *statuses, **extra):
    response = None
    for target in statuses:
        response = client.patch(f"/delivery-notes/{note_id}/status", json={"status": target, **extra})
        assert response.status_code == 200, response.json()
    return response.json()


class TestDeliveryNoteStatus:

    def test_camino_completo(self, client, delivery_note):
        data = move(client, delivery_note["id"], "PREPARING", "READY", "DISPATCHED")
        assert data["delivery_note"]["status"] == "DISPATCHED"

        response = client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={
            "status": "DELIVERED", "received_by": "Juan Pérez"
        })
        note = response.json()["delivery_note"]
        assert note["status"] == "DELIVERED"
        assert note["received_by"] == "Juan Pérez"
        assert note["delivery_date"] is not None

        history = client.get(f"/delivery-notes/{delivery_note['id']}/history").json()
        assert [h["to_status"] for h in history] == ["PREPARING", "READY", "DISPATCHED", "DELIVERED"]

    def test_no_se_saltean_estados(self, client, delivery_note):
        response = client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={"status": "DISPATCHED"})
        assert response.status_code == 400

    def test_cancelar_requiere_motivo(self, client, delivery_note):
        response = client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={"status": "CANCELLED"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_reason"

        response = client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={
            "status": "CANCELLED", "reason": "Cliente sin stock de depósito"
        })
        assert response.json()["delivery_note"]["status"] == "CANCELLED"

    def test_despachado_no_se_cancela(self, client, delivery_note):
        move(client, delivery_note["id"], "PREPARING", "READY", "DISPATCHED")
        response = client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={
            "status": "CANCELLED", "reason": "Error"
        })
        assert response.status_code == 400

    def test_numero_de_seguimiento(self, client, delivery_note):
        move(client, delivery_note["id"], "PREPARING", "READY")
        data = client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={
            "status": "DISPATCHED", "tracking_number": "AND-123456"
        }).json()
        assert data["delivery_note"]["tracking_number"] == "AND-123456"

    def test_listar_por_estado(self, client, delivery_note):
        assert len(client.get("/delivery-notes/", params={"status": "PENDING"}).json()) == 1
        assert client.get("/delivery-notes/", params={"status": "READY"}).json() == []


class TestDeliveryNoteInvoice:

    def test_remito_pendiente_no_se_factura(self, client, delivery_note):
        response = client.post(f"/delivery-notes/{delivery_note['id']}/invoice", json={})
        assert response.status_code == 400

    def test_facturar_remito_listo(self, client, delivery_note):
        move(client, delivery_note["id"], "PREPARING", "READY")
        response = client.post(f"/delivery-notes/{delivery_note['id']}/invoice", json={})
        assert response.status_code == 201
        invoice = response.json()["invoice"]
        assert invoice["delivery_note_id"] == delivery_note["id"]
        # Precios de la cotización de origen: 2 x 100.00 + IVA
        assert Decimal(invoice["total"]) == Decimal("242.00")

        response = client.post(f"/delivery-notes/{delivery_note['id']}/invoice", json={})
        assert response.status_code == 409

    def test_no_se_factura_lo_ya_facturado_desde_la_cotizacion(self, client, db, quote_factory):
        quote = quote_factory(status=QuoteStatus.ACCEPTED)
        note = client.post(f"/quotes/{quote.id}/delivery-note", json={}).json()["delivery_note"]

        # La cotización quedó convertida: se vuelve a aceptar para facturarla directo
        client.patch(f"/quotes/{quote.id}/status", json={"status": "ACCEPTED", "revert_reason": "Facturar directo"})
        assert client.post(f"/quotes/{quote.id}/invoice", json={}).status_code == 201

        move(client, note["id"], "PREPARING", "READY")
        response = client.post(f"/delivery-notes/{note['id']}/invoice", json={})
        assert response.status_code == 400


class RecordingAccountingSystem(AccountingSystem):
    def __init__(self):
        self.references = []

    def create_invoice(self, document):
        raise AssertionError("no se esperaba una factura")

    def create_delivery_note(self, document):
        self.references.append(document.reference)
        return ExternalDocumentResult(external_id="R-88")


class TestResendToAccounting:

    @pytest.fixture
    def colppy(self, monkeypatch):
        accounting = RecordingAccountingSystem()
        monkeypatch.setattr(settings, "COLPPY_ENABLED", True)
        monkeypatch.setattr(integration_tasks, "get_accounting_system", lambda: accounting)
        return accounting

    def test_reenvio_vincula_el_remito(self, client, db, delivery_note, colppy):
        response = client.post(f"/delivery-notes/{delivery_note['id']}/send-to-accounting")
        assert response.status_code == 202
        assert response.json()["queued"] is True
        assert colppy.references == [delivery_note["delivery_number"]]

        db.expire_all()
        assert db.get(Quote, UUID(delivery_note["quote_id"])).colppy_delivery_note_id == "R-88"

        # Ya vinculado: no se vuelve a dar de alta
        response = client.post(f"/delivery-notes/{delivery_note['id']}/send-to-accounting")
        assert response.status_code == 409

    def test_broker_caido(self, client, delivery_note, colppy, broker_down):
        broker_down(delivery_note_service, "submit_delivery_note_to_accounting_task")
        response = client.post(f"/delivery-notes/{delivery_note['id']}/send-to-accounting")
        assert response.status_code == 202
        data = response.json()
        assert data["queued"] is False
        assert "broker caído" in data["warnings"][0]
        assert colppy.references == []

    def test_colppy_deshabilitado(self, client, delivery_note):
        response = client.post(f"/delivery-notes/{delivery_note['id']}/send-to-accounting")
        assert response.status_code == 400

    def test_remito_cancelado(self, client, delivery_note, colppy):
        client.patch(f"/delivery-notes/{delivery_note['id']}/status", json={"status": "CANCELLED", "reason": "Error de carga"})
        response = client.post(f"/delivery-notes/{delivery_note['id']}/send-to-accounting")
        assert response.status_code == 400
