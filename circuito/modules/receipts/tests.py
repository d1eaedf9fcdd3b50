"""
Tests para el módulo de Recibos de cobranza

Cubre:
- Motor de imputación (selección, acotado, deselección)
- Agregador de retenciones
- Control de cuadre (borrador vs aprobación)
- API: alta, edición, aprobación con asiento REC, anulación,
  guardar y aprobar, preview y facturas pendientes
"""
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from circuito.common.money import to_money, within_epsilon
from circuito.modules.accounting.models import JournalEntry
from circuito.modules.customers.models import Customer
from circuito.modules.invoices.models import Invoice, InvoiceStatus
from circuito.modules.receipts.allocation import (
    AllocationError, InvoiceAllocation, OpenInvoice, clamp_applied_amount
)
from circuito.modules.receipts.models import Receipt
from circuito.modules.receipts.reconciliation import (
    PaymentLine, PaymentType, ReceiptSnapshot, ReceiptValidationError, UnbalancedReceipt,
    compute_balance, validate_approval, validate_draft
)
from circuito.modules.receipts.transitions import RECEIPT_GRAPH, ReceiptStatus
from circuito.modules.receipts.withholdings import (
    WithholdingError, WithholdingGroupType, aggregate_withholdings, normalize_withholding_groups
)
from circuito.modules.workflow.exceptions import GuardFailed
from circuito.modules.workflow.machine import DocumentSnapshot, TransitionContext, propose_transition


def open_invoice(remaining="1000.00", total=None, invoice_id="inv-1", currency="ARS"):
    return OpenInvoice(
        invoice_id=invoice_id,
        invoice_total=Decimal(total or remaining),
        remaining_balance=Decimal(remaining),
        currency=currency,
        invoice_number=f"0001-{invoice_id}",
    )


def payment(amount, account="acc-1", payment_type=PaymentType.TRANSFERENCIA):
    return PaymentLine(treasury_account_id=account, payment_type=payment_type, amount=amount)


def receipt_snapshot(applications, withholdings=None, payments=(), customer_id="cust-1", receipt_date=date(2026, 3, 2)):
    return ReceiptSnapshot(
        customer_id=customer_id,
        date=receipt_date,
        applications=tuple(applications),
        withholdings=withholdings or aggregate_withholdings(),
        payment_lines=tuple(payments),
    )


# ===== IMPUTACIÓN =====

class TestAllocation:

    def test_seleccionar_imputa_el_saldo_completo(self):
        allocation = InvoiceAllocation()
        application = allocation.select(open_invoice("1000.00", total="1500.00"))
        assert application.applied_amount == Decimal("1000.00")
        assert allocation.total_applied == Decimal("1000.00")

    @pytest.mark.parametrize("value,expected", [
        ("1500", "1000.00"),
        ("0", "0.01"),
        ("-50", "0.01"),
        ("0.001", "0.01"),
        ("250.555", "250.56"),
        ("", "0.01"),
    ])
    def test_editar_acota_sin_rechazar(self, value, expected):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("1000.00"))
        application = allocation.set_applied_amount("inv-1", value)
        assert application.applied_amount == Decimal(expected)

    def test_deseleccionar_y_volver_a_seleccionar_arranca_del_saldo(self):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("1000.00"))
        allocation.set_applied_amount("inv-1", "300")
        allocation.deselect("inv-1")
        assert not allocation.is_selected("inv-1")

        application = allocation.select(open_invoice("1000.00"))
        assert application.applied_amount == Decimal("1000.00")

    def test_total_imputado(self):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("1000.00", invoice_id="a"))
        allocation.select(open_invoice("250.50", invoice_id="b"))
        allocation.set_applied_amount("a", "400")
        assert allocation.total_applied == Decimal("650.50")

    def test_factura_sin_saldo_no_se_selecciona(self):
        with pytest.raises(AllocationError):
            InvoiceAllocation().select(open_invoice("0.00", total="100.00"))

    def test_editar_factura_no_seleccionada(self):
        with pytest.raises(AllocationError):
            InvoiceAllocation().set_applied_amount("inv-9", "10")

    def test_from_requests(self):
        allocation = InvoiceAllocation.from_requests(
            [open_invoice("1000.00", invoice_id="a"), open_invoice("80.00", invoice_id="b")],
            [("a", "1200"), ("b", "30")],
        )
        assert [a.applied_amount for a in allocation.applications] == [Decimal("1000.00"), Decimal("30.00")]

    def test_limpiar_al_cambiar_de_cliente(self):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice())
        allocation.clear()
        assert allocation.applications == []
        assert allocation.total_applied == Decimal("0")

    def test_importes_siempre_entre_un_centavo_y_el_saldo(self):
        remaining = Decimal("73.40")
        for value in ("-1", "0", "0.004", "73.39", "73.40", "73.41", "9999"):
            clamped = clamp_applied_amount(value, remaining)
            assert Decimal("0.01") <= clamped <= remaining


# ===== RETENCIONES =====

class TestWithholdings:

    def test_agrupa_iibb_y_descarta_importes_en_cero(self):
        summary = aggregate_withholdings(
            iibb_lines=[
                {"withholding_type": "IIBB_CABA", "amount": "100.00", "certificate_number": "A-1"},
                {"withholding_type": "IIBB_BUENOS_AIRES", "amount": "50.25", "certificate_number": ""},
                {"withholding_type": "IIBB_CORDOBA", "amount": "0"},
            ],
            others={"IVA": {"amount": "21.00"}, "SUSS": {"amount": "0"}, "GANANCIAS": {"amount": None}},
        )
        assert summary.total_withholdings == Decimal("171.25")
        assert [g.group_type for g in summary.groups] == [WithholdingGroupType.IIBB, WithholdingGroupType.IVA]

        iibb = summary.group(WithholdingGroupType.IIBB)
        assert len(iibb.lines) == 2
        assert iibb.lines[0].jurisdiction_label == "CABA"
        assert iibb.lines[1].certificate_number is None
        assert "certificateNumber" not in iibb.lines[1].as_payload()

    def test_sin_retenciones(self):
        summary = aggregate_withholdings()
        assert summary.groups == ()
        assert summary.total_withholdings == Decimal("0")

    def test_jurisdiccion_desconocida(self):
        with pytest.raises(WithholdingError):
            aggregate_withholdings(iibb_lines=[{"withholding_type": "IIBB_MARTE", "amount": "10"}])

    def test_importe_negativo(self):
        with pytest.raises(WithholdingError):
            aggregate_withholdings(others={"IVA": {"amount": "-5"}})

    def test_normalizar_fusiona_grupos_iibb(self):
        summary = normalize_withholding_groups([
            {"group_type": "IIBB", "lines": [{"withholding_type": "IIBB_CABA", "amount": "10"}]},
            {"group_type": "IIBB", "lines": [{"withholding_type": "IIBB_SALTA", "amount": "5"}]},
            {"group_type": "GANANCIAS", "lines": [{"amount": "7.5", "certificate_number": "G-1"}]},
        ])
        assert len(summary.groups) == 2
        assert len(summary.group(WithholdingGroupType.IIBB).lines) == 2
        assert summary.group(WithholdingGroupType.GANANCIAS).lines[0].certificate_number == "G-1"
        assert summary.total_withholdings == Decimal("22.50")

    def test_normalizar_rechaza_iva_con_dos_lineas(self):
        with pytest.raises(WithholdingError):
            normalize_withholding_groups([
                {"group_type": "IVA", "lines": [{"amount": "10"}, {"amount": "5"}]},
            ])

    def test_normalizar_rechaza_tipo_desconocido(self):
        with pytest.raises(WithholdingError):
            normalize_withholding_groups([{"group_type": "SELLOS", "lines": [{"amount": "10"}]}])


# ===== CUADRE =====

class TestReconciliation:

    def scenario(self, paid):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("1000.00"))
        withholdings = aggregate_withholdings(
            iibb_lines=[{"withholding_type": "IIBB_CABA", "amount": "100.00"}]
        )
        return receipt_snapshot(allocation.applications, withholdings, [payment(paid)])

    def test_escenario_cuadrado_se_aprueba(self):
        snapshot = self.scenario("900.00")
        balance = validate_approval(snapshot)
        assert balance.total_applied == Decimal("1000.00")
        assert balance.total_withholdings == Decimal("100.00")
        assert balance.total_to_collect == Decimal("900.00")
        assert balance.total_collected == Decimal("900.00")
        assert balance.is_balanced

    def test_escenario_descuadrado_falla_con_la_diferencia(self):
        snapshot = self.scenario("850.00")
        with pytest.raises(UnbalancedReceipt) as exc:
            validate_approval(snapshot)
        assert exc.value.diff == Decimal("50.00")
        assert exc.value.metric == "diff"

    def test_borrador_no_exige_cuadre(self):
        balance = validate_draft(self.scenario("850.00"))
        assert not balance.is_balanced
        assert balance.diff == Decimal("50.00")

    @pytest.mark.parametrize("paid,balanced", [
        ("899.99", False),
        ("899.995", True),
        ("900.00", True),
        ("900.01", False),
    ])
    def test_aprueba_solo_con_diferencia_menor_a_un_centavo(self, paid, balanced):
        assert compute_balance(self.scenario(paid)).is_balanced is balanced

    def test_lineas_de_cobro_invalidas_no_suman(self):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("100.00"))
        snapshot = receipt_snapshot(allocation.applications, payments=[
            payment("100.00"),
            payment("50.00", account=None),
            payment("0", account="acc-2"),
        ])
        assert compute_balance(snapshot).total_collected == Decimal("100.00")

    def test_validacion_de_borrador_junta_todos_los_errores(self):
        snapshot = receipt_snapshot([], payments=[payment("10", account=None)], customer_id=None, receipt_date=None)
        with pytest.raises(ReceiptValidationError) as exc:
            validate_draft(snapshot)
        assert len(exc.value.errors) == 4

    def test_monedas_mezcladas(self):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("100.00", currency="USD"))
        snapshot = receipt_snapshot(allocation.applications, payments=[payment("100.00")])
        with pytest.raises(ReceiptValidationError):
            validate_draft(snapshot)

    def test_totales_se_recalculan_desde_las_lineas(self):
        allocation = InvoiceAllocation()
        allocation.select(open_invoice("500.00"))
        first = compute_balance(receipt_snapshot(allocation.applications, payments=[payment("500")]))
        allocation.set_applied_amount("inv-1", "200")
        second = compute_balance(receipt_snapshot(allocation.applications, payments=[payment("500")]))
        assert first.diff == Decimal("0.00")
        assert second.diff == Decimal("-300.00")

    def test_guarda_de_aprobacion_en_el_grafo(self):
        document = DocumentSnapshot(id="r-1", document_type="receipt", status=ReceiptStatus.BORRADOR)
        context = TransitionContext(changed_by="contador", payload={"receipt": self.scenario("850.00")})
        with pytest.raises(GuardFailed) as exc:
            propose_transition(RECEIPT_GRAPH, document, ReceiptStatus.APROBADO, context)
        assert isinstance(exc.value, UnbalancedReceipt)

        context = TransitionContext(changed_by="contador", payload={"receipt": self.scenario("900.00")})
        outcome = propose_transition(RECEIPT_GRAPH, document, ReceiptStatus.APROBADO, context)
        assert outcome.to_status == ReceiptStatus.APROBADO

    def test_tolerancia_de_redondeo(self):
        assert within_epsilon(Decimal("0.1") + Decimal("0.2"), Decimal("0.3"))
        assert to_money(0.1 + 0.2) == Decimal("0.30")


# ===== API =====

@pytest.fixture
def receipt_payload(customer, treasury_account, invoice_factory):
    def _payload(paid="900.00", iibb="100.00", applied=None, invoice=None, **extra):
        invoice = invoice or invoice_factory("1000.00")
        payload = {
            "customer_id": str(customer.id),
            "date": "2026-03-02",
            "currency": "ARS",
            "invoice_applications": [
                {"invoice_id": str(invoice.id), "applied_amount": applied or str(invoice.total)}
            ],
            "withholding_groups": [
                {"group_type": "IIBB", "lines": [
                    {"withholding_type": "IIBB_CABA", "certificate_number": "CABA-0001", "amount": iibb}
                ]},
            ],
            "payment_methods": [
                {"treasury_account_id": str(treasury_account.id), "payment_type": "TRANSFERENCIA", "amount": paid},
            ],
        }
        payload.update(extra)
        return payload
    return _payload


class TestReceiptsAPI:

    def test_crear_borrador_descuadrado(self, client, receipt_payload):
        response = client.post("/receipts/", json=receipt_payload(paid="850.00"))
        assert response.status_code == 201
        data = response.json()
        assert data["receipt"]["status"] == "BORRADOR"
        assert data["receipt"]["receipt_number"] == "0001-00000001"
        assert Decimal(data["balance"]["diff"]) == Decimal("50.00")
        assert data["balance"]["is_balanced"] is False
        assert data["warnings"] == []

    def test_numeracion_por_punto_de_venta(self, client, receipt_payload):
        first = client.post("/receipts/", json=receipt_payload()).json()
        second = client.post("/receipts/", json=receipt_payload()).json()
        other = client.post("/receipts/", json=receipt_payload(point_of_sale="0003")).json()
        assert first["receipt"]["receipt_number"] == "0001-00000001"
        assert second["receipt"]["receipt_number"] == "0001-00000002"
        assert other["receipt"]["receipt_number"] == "0003-00000001"

    def test_aprobar_recibo_cuadrado(self, client, db, receipt_payload, customer):
        created = client.post("/receipts/", json=receipt_payload()).json()
        receipt_id = created["receipt"]["id"]

        response = client.post(f"/receipts/{receipt_id}/approve")
        assert response.status_code == 200
        data = response.json()
        assert data["receipt"]["status"] == "APROBADO"
        assert data["receipt"]["approved_by"] == "Usuario Test"
        assert data["receipt"]["journal_entry_id"] is not None
        assert data["warnings"] == []

        db.expire_all()
        invoice = db.query(Invoice).one()
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_amount == Decimal("1000.00")
        assert db.get(Customer, customer.id).balance == Decimal("0.00")

        entry = db.query(JournalEntry).one()
        lines = {(line.account_code, line.debit, line.credit) for line in entry.lines}
        assert lines == {
            ("113100", Decimal("0.00"), Decimal("1000.00")),
            ("111201", Decimal("900.00"), Decimal("0.00")),
            ("114301", Decimal("100.00"), Decimal("0.00")),
        }

        history = client.get(f"/receipts/{receipt_id}/history").json()
        assert [(h["from_status"], h["to_status"]) for h in history] == [("BORRADOR", "APROBADO")]

    def test_aprobar_recibo_descuadrado_es_409_y_no_cambia_nada(self, client, db, receipt_payload):
        created = client.post("/receipts/", json=receipt_payload(paid="850.00")).json()
        receipt_id = created["receipt"]["id"]

        response = client.post(f"/receipts/{receipt_id}/approve")
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "unbalanced_receipt"
        assert detail["metric"] == "diff"
        assert Decimal(detail["value"]) == Decimal("50.00")

        db.expire_all()
        assert db.query(Receipt).one().status == ReceiptStatus.BORRADOR
        assert db.query(JournalEntry).count() == 0
        assert db.query(Invoice).one().paid_amount == Decimal("0.00")
        assert client.get(f"/receipts/{receipt_id}/history").json() == []

    def test_solo_admin_o_contador_aprueban(self, client, receipt_payload, as_role):
        created = client.post("/receipts/", json=receipt_payload()).json()
        as_role("GERENTE")
        response = client.post(f"/receipts/{created['receipt']['id']}/approve")
        assert response.status_code == 403

    def test_guardar_y_aprobar(self, client, receipt_payload):
        response = client.post("/receipts/", json=receipt_payload(approve=True))
        assert response.status_code == 201
        data = response.json()
        assert data["receipt"]["status"] == "APROBADO"
        assert data["warnings"] == []

    def test_guardar_y_aprobar_descuadrado_deja_el_borrador(self, client, db, receipt_payload):
        response = client.post("/receipts/", json=receipt_payload(paid="850.00", approve=True))
        assert response.status_code == 201
        data = response.json()
        assert data["receipt"]["status"] == "BORRADOR"
        assert len(data["warnings"]) == 1
        assert data["receipt"]["id"] in data["warnings"][0]
        assert db.query(Receipt).count() == 1

    def test_guardar_y_aprobar_sin_rol_de_aprobador(self, client, db, receipt_payload, as_role):
        as_role("GERENTE")
        response = client.post("/receipts/", json=receipt_payload(approve=True))
        assert response.status_code == 403
        assert db.query(Receipt).count() == 0

    def test_importe_mayor_al_saldo_se_rechaza_al_guardar(self, client, receipt_payload):
        response = client.post("/receipts/", json=receipt_payload(applied="1000.03"))
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_receipt"

    def test_importe_dentro_de_la_tolerancia_se_acota_al_saldo(self, client, receipt_payload):
        response = client.post("/receipts/", json=receipt_payload(applied="1000.02"))
        assert response.status_code == 201
        application = response.json()["receipt"]["invoice_applications"][0]
        assert Decimal(application["applied_amount"]) == Decimal("1000.00")

    def test_factura_de_otro_cliente(self, client, receipt_payload, invoice_factory, customer_factory):
        other = customer_factory(name="Otro Cliente")
        invoice = invoice_factory("500.00", customer_obj=other)
        response = client.post("/receipts/", json=receipt_payload(invoice=invoice, paid="400.00"))
        assert response.status_code == 400
        assert any("no pertenece" in e for e in response.json()["detail"]["errors"])

    def test_factura_cobrada_no_se_imputa(self, client, db, receipt_payload, invoice_factory):
        invoice = invoice_factory("500.00")
        invoice.status = InvoiceStatus.PAID
        db.commit()
        response = client.post("/receipts/", json=receipt_payload(invoice=invoice, paid="400.00"))
        assert response.status_code == 400

    def test_factura_duplicada(self, client, receipt_payload, invoice_factory):
        invoice = invoice_factory("1000.00")
        payload = receipt_payload(invoice=invoice)
        payload["invoice_applications"].append(payload["invoice_applications"][0])
        response = client.post("/receipts/", json=payload)
        assert response.status_code == 400

    def test_cuenta_de_tesoreria_inactiva(self, client, db, receipt_payload, treasury_account):
        treasury_account.is_active = False
        db.commit()
        response = client.post("/receipts/", json=receipt_payload())
        assert response.status_code == 400
        assert any("inactiva" in e for e in response.json()["detail"]["errors"])

    def test_faltan_datos_minimos(self, client, receipt_payload):
        payload = receipt_payload()
        payload["payment_methods"] = []
        payload["date"] = None
        response = client.post("/receipts/", json=payload)
        assert response.status_code == 400
        errors = response.json()["detail"]["errors"]
        assert "La fecha es requerida" in errors
        assert "Debes agregar al menos un medio de cobro" in errors

    def test_retencion_iva_con_dos_lineas(self, client, receipt_payload):
        payload = receipt_payload()
        payload["withholding_groups"].append({"group_type": "IVA", "lines": [{"amount": "1"}, {"amount": "2"}]})
        response = client.post("/receipts/", json=payload)
        assert response.status_code == 400

    def test_retencion_iva_sin_tipo(self, client, db, receipt_payload):
        payload = receipt_payload(paid="850.00", approve=True)
        payload["withholding_groups"].append(
            {"group_type": "IVA", "lines": [{"certificate_number": "IVA-1", "amount": "50.00"}]}
        )
        response = client.post("/receipts/", json=payload)
        assert response.status_code == 201
        receipt = response.json()["receipt"]
        assert receipt["status"] == "APROBADO"

        iva = next(g for g in receipt["withholding_groups"] if g["group_type"] == "IVA")
        [line] = iva["lines"]
        assert line["withholding_type"] == "IVA"
        assert line["certificate_number"] == "IVA-1"
        assert Decimal(line["amount"]) == Decimal("50.00")

        entry = db.query(JournalEntry).one()
        debits = {line.account_code: line.debit for line in entry.lines if line.debit}
        assert debits["114105"] == Decimal("50.00")

    def test_retencion_iibb_sin_jurisdiccion(self, client, receipt_payload):
        payload = receipt_payload()
        del payload["withholding_groups"][0]["lines"][0]["withholding_type"]
        response = client.post("/receipts/", json=payload)
        assert response.status_code == 400
        assert any("Jurisdicción IIBB desconocida" in e for e in response.json()["detail"]["errors"])

    def test_editar_borrador(self, client, receipt_payload):
        created = client.post("/receipts/", json=receipt_payload(paid="850.00")).json()
        payload = receipt_payload(paid="900.00", invoice=None)
        response = client.put(f"/receipts/{created['receipt']['id']}", json=payload)
        assert response.status_code == 200
        assert response.json()["balance"]["is_balanced"] is True

    def test_no_se_edita_un_recibo_aprobado(self, client, receipt_payload):
        created = client.post("/receipts/", json=receipt_payload(approve=True)).json()
        response = client.put(f"/receipts/{created['receipt']['id']}", json=receipt_payload())
        assert response.status_code == 400

    def test_anular_requiere_motivo(self, client, receipt_payload):
        created = client.post("/receipts/", json=receipt_payload()).json()
        receipt_id = created["receipt"]["id"]

        response = client.post(f"/receipts/{receipt_id}/void", json={"reason": "  "})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_reason"

        response = client.post(f"/receipts/{receipt_id}/void", json={"reason": "Cargado dos veces"})
        assert response.status_code == 200
        assert response.json()["receipt"]["status"] == "ANULADO"

    def test_no_se_anula_un_recibo_aprobado(self, client, receipt_payload):
        created = client.post("/receipts/", json=receipt_payload(approve=True)).json()
        response = client.post(f"/receipts/{created['receipt']['id']}/void", json={"reason": "Error"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_transition"

    def test_factura_cobrada_por_otro_recibo_bloquea_la_aprobacion(self, client, receipt_payload, invoice_factory):
        invoice = invoice_factory("1000.00")
        first = client.post("/receipts/", json=receipt_payload(invoice=invoice)).json()
        second = client.post("/receipts/", json=receipt_payload(invoice=invoice)).json()

        assert client.post(f"/receipts/{first['receipt']['id']}/approve").status_code == 200
        response = client.post(f"/receipts/{second['receipt']['id']}/approve")
        assert response.status_code == 409

    def test_preview(self, client, receipt_payload):
        response = client.post("/receipts/preview", json=receipt_payload(paid="850.00"))
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["balance"]["total_to_collect"]) == Decimal("900.00")
        assert Decimal(data["balance"]["diff"]) == Decimal("50.00")
        assert data["errors"] == []

    def test_preview_no_guarda(self, client, db, receipt_payload):
        client.post("/receipts/preview", json=receipt_payload())
        assert db.query(Receipt).count() == 0

    def test_facturas_pendientes(self, client, customer, invoice_factory):
        invoice_factory("1000.00")
        invoice_factory("250.00")
        response = client.get("/receipts/pending-invoices", params={"customer_id": str(customer.id)})
        assert response.status_code == 200
        assert sorted(Decimal(i["remaining_balance"]) for i in response.json()) == [Decimal("250.00"), Decimal("1000.00")]

    def test_recibo_inexistente(self, client):
        assert client.get(f"/receipts/{uuid4()}").status_code == 404

    def test_listar_por_estado(self, client, receipt_payload):
        client.post("/receipts/", json=receipt_payload())
        client.post("/receipts/", json=receipt_payload(approve=True))
        response = client.get("/receipts/", params={"status": "APROBADO"})
        assert [r["status"] for r in response.json()] == ["APROBADO"]
