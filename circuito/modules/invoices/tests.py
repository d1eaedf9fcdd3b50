import pytest
from decimal import Decimal
from uuid import uuid4

from circuito.core.config import settings
from circuito.modules.integrations import tasks as integration_tasks
from circuito.modules.integrations.ports import AccountingSystem, ExternalDocumentResult
from circuito.modules.invoices import service as invoice_service
from circuito.modules.invoices.models import Invoice, InvoiceStatus
from circuito.modules.invoices.service import InvoiceLine, InvoiceService, determine_invoice_type


class TestInvoiceType:

    @pytest.mark.parametrize("tax_condition,expected", [
        ("RESPONSABLE_INSCRIPTO", "A"),
        ("MONOTRIBUTO", "B"),
        ("CONSUMIDOR_FINAL", "B"),
        ("EXENTO", "C"),
        (None, "B"),
    ])
    def test_tipo_segun_condicion_de_iva(self, tax_condition, expected):
        assert determine_invoice_type(tax_condition) == expected


class TestInvoiceService:

    def test_emitir_numera_por_tipo(self, db, customer, customer_factory):
        service = InvoiceService(db)
        first = service.create_invoice(customer, [InvoiceLine("Taladro", 1, "100")], "Usuario Test")
        second = service.create_invoice(customer, [InvoiceLine("Mecha", 3, "10.005")], "Usuario Test")
        final_consumer = customer_factory(name="Juan", tax_condition="CONSUMIDOR_FINAL")
        other_type = service.create_invoice(final_consumer, [InvoiceLine("Mecha", 1, "10")], "Usuario Test")
        db.commit()

        assert (first.invoice_type, first.invoice_number) == ("A", "0001-00000001")
        assert second.invoice_number == "0001-00000002"
        assert (other_type.invoice_type, other_type.invoice_number) == ("B", "0001-00000001")
        assert second.subtotal == Decimal("30.03")
        assert first.total == Decimal("121.00")
        assert first.status == InvoiceStatus.PENDING
        assert customer.balance == Decimal("157.34")

    def test_cobro_parcial_y_total(self, db, invoice_factory):
        invoice = invoice_factory("1000.00")
        service = InvoiceService(db)

        service.register_collection(invoice, Decimal("400.00"))
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.remaining_balance == Decimal("600.00")

        service.register_collection(invoice, Decimal("599.995"))
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_date is not None

    def test_facturas_abiertas_excluye_cobradas(self, db, customer, invoice_factory):
        open_invoice = invoice_factory("100.00")
        paid = invoice_factory("50.00")
        paid.status = InvoiceStatus.PAID
        db.commit()

        assert [i.id for i in InvoiceService(db).get_open_invoices(customer.id)] == [open_invoice.id]


class TestInvoicesAPI:

    def test_listar_y_detalle(self, client, customer, invoice_factory):
        invoice = invoice_factory("250.00")
        data = client.get("/invoices/", params={"customer_id": str(customer.id)}).json()
        assert data["total"] == 1
        assert Decimal(data["invoices"][0]["remaining_balance"]) == Decimal("250.00")

        detail = client.get(f"/invoices/{invoice.id}").json()
        assert detail["invoice_number"] == invoice.invoice_number
        assert detail["items"] == []

    def test_filtrar_por_estado(self, client, invoice_factory):
        invoice_factory("250.00")
        assert client.get("/invoices/", params={"status": "PAID"}).json()["total"] == 0

    def test_factura_inexistente(self, client):
        assert client.get(f"/invoices/{uuid4()}").status_code == 404


class RecordingAccountingSystem(AccountingSystem):
    def __init__(self):
        self.references = []

    def create_invoice(self, document):
        self.references.append(document.reference)
        return ExternalDocumentResult(external_id="F-1203")

    def create_delivery_note(self, document):
        raise AssertionError("no se esperaba un remito")


class TestResendToAccounting:

    @pytest.fixture
    def pending_invoice(self, db, invoice_factory):
        invoice = invoice_factory("242.00")
        invoice.external_submission_pending = True
        db.commit()
        return invoice

    def test_reenvio_confirma_la_factura(self, client, db, pending_invoice, monkeypatch):
        accounting = RecordingAccountingSystem()
        monkeypatch.setattr(settings, "COLPPY_ENABLED", True)
        monkeypatch.setattr(integration_tasks, "get_accounting_system", lambda: accounting)

        response = client.post(f"/invoices/{pending_invoice.id}/send-to-accounting")
        assert response.status_code == 202
        data = response.json()
        assert data["queued"] is True
        assert data["warnings"] == []
        assert accounting.references == [pending_invoice.invoice_number]

        db.expire_all()
        assert db.get(Invoice, pending_invoice.id).external_submission_pending is False

    def test_broker_caido_deja_la_factura_pendiente(self, client, db, pending_invoice, broker_down):
        task = broker_down(invoice_service, "submit_invoice_to_accounting_task")
        response = client.post(f"/invoices/{pending_invoice.id}/send-to-accounting")
        assert response.status_code == 202
        data = response.json()
        assert data["queued"] is False
        assert data["task"] == task.name
        assert "broker caído" in data["warnings"][0]

        db.expire_all()
        assert db.get(Invoice, pending_invoice.id).external_submission_pending is True

    def test_factura_sin_envio_pendiente(self, client, invoice_factory):
        invoice = invoice_factory("100.00")
        assert client.post(f"/invoices/{invoice.id}/send-to-accounting").status_code == 400

    def test_factura_anulada(self, client, db, pending_invoice):
        pending_invoice.status = InvoiceStatus.CANCELLED
        db.commit()
        assert client.post(f"/invoices/{pending_invoice.id}/send-to-accounting").status_code == 400

    def test_vendedor_no_reenvia(self, client, pending_invoice, as_role):
        as_role("VENDEDOR")
        assert client.post(f"/invoices/{pending_invoice.id}/send-to-accounting").status_code == 403
