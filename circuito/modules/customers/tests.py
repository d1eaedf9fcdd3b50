import pytest
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from circuito.common.validators import calculate_cuit_dv, format_cuit, validate_cuit
from circuito.main import app
from circuito.modules.customers.schemas import CustomerCreate
from circuito.modules.integrations.dependencies import get_credit_bureau
from circuito.modules.integrations.ports import CreditBureau, ExternalServiceError


class FakeBureau(CreditBureau):
    def __init__(self, error=None):
        self.error = error
        self.queried = []

    def lookup(self, cuit):
        self.queried.append(cuit)
        if self.error:
            raise self.error
        return {"cuit": cuit, "worst_situation": 1, "traffic_light": "verde"}


@pytest.fixture
def bureau():
    fake = FakeBureau()
    app.dependency_overrides[get_credit_bureau] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_credit_bureau, None)


class TestCuit:

    @pytest.mark.parametrize("cuit", ["30-71234567-1", "30712345671", "20-12345678-6", "20.12345678.6"])
    def test_validos(self, cuit):
        assert validate_cuit(cuit)

    @pytest.mark.parametrize("cuit", ["30-71234567-2", "99-12345678-6", "2012345678", "", "20-1234567A-6"])
    def test_invalidos(self, cuit):
        assert not validate_cuit(cuit)

    def test_digito_verificador(self):
        assert calculate_cuit_dv("2012345678") == 6
        assert calculate_cuit_dv("123") is None

    def test_formato(self):
        assert format_cuit("30712345671") == "30-71234567-1"
        assert format_cuit("basura") == "basura"

    def test_esquema_formatea_y_acepta_vacio(self):
        assert CustomerCreate(name="Obra Sur", cuit="30712345671").cuit == "30-71234567-1"
        assert CustomerCreate(name="Obra Sur", cuit="  ").cuit is None

    def test_esquema_rechaza_cuit_y_email_invalidos(self):
        with pytest.raises(ValidationError):
            CustomerCreate(name="Obra Sur", cuit="30-71234567-9")
        with pytest.raises(ValidationError):
            CustomerCreate(name="Obra Sur", email="no-es-un-mail")


class TestCustomersAPI:

    def test_crear_cliente(self, client):
        response = client.post("/customers/", json={
            "name": "Corralón Oeste",
            "business_name": "Corralón Oeste S.R.L.",
            "cuit": "20123456786",
            "tax_condition": "MONOTRIBUTO",
            "email": "compras@corralon.com.ar",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["cuit"] == "20-12345678-6"
        assert Decimal(data["balance"]) == Decimal("0")
        assert data["is_active"] is True

    def test_cuit_duplicado(self, client, customer):
        response = client.post("/customers/", json={"name": "Otro", "cuit": customer.cuit})
        assert response.status_code == 409

    def test_contador_no_crea_clientes(self, client, as_role):
        as_role("CONTADOR")
        response = client.post("/customers/", json={"name": "Otro"})
        assert response.status_code == 403

    def test_buscar(self, client, customer, customer_factory):
        customer_factory(name="Pinturería Centro")
        data = client.get("/customers/", params={"search": "ferre"}).json()
        assert [c["name"] for c in data] == ["Ferretería Norte"]

    def test_desactivar(self, client, customer):
        response = client.patch(f"/customers/{customer.id}", json={"is_active": False})
        assert response.json()["is_active"] is False
        assert client.get("/customers/").json() == []
        assert len(client.get("/customers/", params={"active_only": False}).json()) == 1

    def test_cambiar_a_cuit_de_otro_cliente(self, client, customer, customer_factory):
        other = customer_factory(name="Otro", cuit="20-12345678-6")
        response = client.patch(f"/customers/{other.id}", json={"cuit": customer.cuit})
        assert response.status_code == 409

    def test_cliente_inexistente(self, client):
        assert client.get(f"/customers/{uuid4()}").status_code == 404


class TestCustomerSummary:

    def test_resumen_de_cuenta(self, client, customer, invoice_factory, bureau):
        invoice_factory("1000.00")
        invoice_factory("250.50")

        data = client.get(f"/customers/{customer.id}/summary").json()
        assert data["open_invoices"] == 2
        assert Decimal(data["open_balance"]) == Decimal("1250.50")
        assert Decimal(data["customer"]["balance"]) == Decimal("1250.50")
        assert data["draft_receipts"] == 0
        assert data["credit_report"] is None
        assert bureau.queried == []

    def test_resumen_con_situacion_crediticia(self, client, customer, bureau):
        data = client.get(f"/customers/{customer.id}/summary", params={"include_credit_report": True}).json()
        assert data["credit_report"]["traffic_light"] == "verde"
        assert bureau.queried == ["30-71234567-1"]

    def test_falla_de_la_consulta_no_bloquea(self, client, customer, bureau):
        bureau.error = ExternalServiceError("timeout")
        response = client.get(f"/customers/{customer.id}/summary", params={"include_credit_report": True})
        assert response.status_code == 200
        data = response.json()
        assert data["credit_report"] is None
        assert data["warnings"] == ["No se pudo consultar la situación crediticia: timeout"]
