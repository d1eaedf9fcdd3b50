import pytest
from decimal import Decimal


def purchase_payload(**overrides):
    payload = {
        "supplier_name": "Distribuidora Sur SRL",
        "supplier_cuit": "20123456786",
        "invoice_number": "0005-00001234",
        "invoice_type": "A",
        "issue_date": "2026-03-01",
        "tax_amount": "21.00",
        "total": "121.00",
        "items": [
            {"description": "Discos de corte", "quantity": "10", "unit_price": "6.00"},
            {"description": "Guantes", "quantity": "4", "unit_price": "10.00"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def purchase_invoice(client):
    return client.post("/purchase-invoices/", json=purchase_payload()).json()


class TestPurchaseInvoices:

    def test_crear(self, client):
        response = client.post("/purchase-invoices/", json=purchase_payload())
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "DRAFT"
        assert data["supplier_cuit"] == "20-12345678-6"
        assert Decimal(data["subtotal"]) == Decimal("100.00")

    def test_cuit_invalido(self, client):
        response = client.post("/purchase-invoices/", json=purchase_payload(supplier_cuit="20-12345678-0"))
        assert response.status_code == 422

    def test_aprobar(self, client, purchase_invoice):
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "APPROVED"})
        assert response.status_code == 200
        assert response.json()["purchase_invoice"]["status"] == "APPROVED"

    def test_aprobar_con_totales_que_no_cierran(self, client):
        created = client.post("/purchase-invoices/", json=purchase_payload(total="125.00")).json()
        response = client.patch(f"/purchase-invoices/{created['id']}/status", json={"status": "APPROVED"})
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["metric"] == "totals_diff"
        assert Decimal(detail["value"]) == Decimal("-4.00")

    def test_vendedor_o_gerente_no_aprueban(self, client, purchase_invoice, as_role):
        as_role("GERENTE")
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "APPROVED"})
        assert response.status_code == 403

        # Pasar a pendiente no requiere rol de aprobador
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "PENDING"})
        assert response.status_code == 200

    def test_no_se_aprueba_dos_veces(self, client, purchase_invoice):
        client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "APPROVED"})
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "APPROVED"})
        assert response.status_code == 400

    def test_paid_no_se_pide_a_mano(self, client, purchase_invoice):
        client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "APPROVED"})
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "PAID"})
        assert response.status_code == 400

    def test_cancelar_requiere_motivo(self, client, purchase_invoice):
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "CANCELLED"})
        assert response.status_code == 400
        response = client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={
            "status": "CANCELLED", "reason": "Comprobante duplicado"
        })
        assert response.json()["purchase_invoice"]["status"] == "CANCELLED"


class TestPurchaseInvoicePayments:

    def test_pagos_parciales_hasta_saldar(self, client, purchase_invoice):
        invoice_id = purchase_invoice["id"]
        client.patch(f"/purchase-invoices/{invoice_id}/status", json={"status": "APPROVED"})

        response = client.post(f"/purchase-invoices/{invoice_id}/payments", json={"amount": "100.00"})
        data = response.json()["purchase_invoice"]
        assert data["status"] == "APPROVED"
        assert Decimal(data["paid_amount"]) == Decimal("100.00")

        response = client.post(f"/purchase-invoices/{invoice_id}/payments", json={"amount": "21.00"})
        assert response.json()["purchase_invoice"]["status"] == "PAID"

        history = client.get(f"/purchase-invoices/{invoice_id}/history").json()
        assert [h["to_status"] for h in history] == ["APPROVED", "PAID"]
        assert history[-1]["notes"] == "Factura saldada"

    def test_pago_mayor_al_saldo(self, client, purchase_invoice):
        client.patch(f"/purchase-invoices/{purchase_invoice['id']}/status", json={"status": "APPROVED"})
        response = client.post(f"/purchase-invoices/{purchase_invoice['id']}/payments", json={"amount": "130.00"})
        assert response.status_code == 400

    def test_pago_de_factura_no_aprobada(self, client, purchase_invoice):
        response = client.post(f"/purchase-invoices/{purchase_invoice['id']}/payments", json={"amount": "10.00"})
        assert response.status_code == 400
