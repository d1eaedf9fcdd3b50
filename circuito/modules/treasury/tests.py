from circuito.modules.treasury.models import TreasuryAccount


class TestTreasuryAccounts:

    def test_crear_cuenta(self, client):
        response = client.post("/treasury-accounts/", json={"name": "Caja", "account_code": "111101"})
        assert response.status_code == 201
        assert response.json()["is_active"] is True

    def test_codigo_contable_de_seis_digitos(self, client):
        response = client.post("/treasury-accounts/", json={"name": "Caja", "account_code": "1111"})
        assert response.status_code == 422

    def test_solo_aprobadores_crean_cuentas(self, client, as_role):
        as_role("GERENTE")
        response = client.post("/treasury-accounts/", json={"name": "Caja", "account_code": "111101"})
        assert response.status_code == 403

    def test_desactivar_oculta_la_cuenta(self, client, db, treasury_account):
        response = client.patch(f"/treasury-accounts/{treasury_account.id}", json={"is_active": False})
        assert response.json()["is_active"] is False

        assert client.get("/treasury-accounts/").json() == []
        assert len(client.get("/treasury-accounts/", params={"active_only": False}).json()) == 1
        assert db.query(TreasuryAccount).count() == 1
