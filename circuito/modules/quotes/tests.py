"""
Tests para el módulo de Cotizaciones

Cubre:
- Seguimiento de facturación parcial (tablero ready / partial / pending)
- Alta con numeración VAL-AAAA-NNN
- Cambios de estado con motivo, notas y fecha de respuesta
- Conversión al facturar o remitir
- Reversión de conversión y documentos vinculados
- Duplicación y reenvío del email
- Vencimiento automático
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from circuito.modules.customers.models import Customer
from circuito.modules.invoices.models import Invoice, InvoiceStatus
from circuito.modules.quotes.fulfillment import (
    BoardColumn, FulfillmentItem, ItemNotSelectableError, OverInvoicingError, apply_invoicing,
    build_partial_request, classify, farthest_delivery, full_request, is_item_in_stock, parse_delivery_days
)
from circuito.modules.quotes import service as quote_service
from circuito.modules.quotes.models import Quote
from circuito.modules.quotes.service import QuoteService
from circuito.modules.quotes.transitions import QuoteStatus
from circuito.modules.workflow.models import DocumentStatusHistory


def item(item_id, quantity=10, invoiced=0, in_stock=True, pending_submission=False):
    return FulfillmentItem(
        item_id=item_id, quantity=quantity, invoiced_quantity=invoiced,
        is_in_stock=in_stock, pending_submission=pending_submission
    )


# ===== FACTURACIÓN PARCIAL =====

class TestFulfillment:

    def test_item_totalmente_facturado_sale_del_tablero(self):
        items = [item("a", quantity=10, invoiced=10)]
        assert items[0].remaining_quantity == 0
        assert classify(items) is None

    def test_mezcla_de_stock_es_parcial(self):
        items = [item("a", quantity=5, in_stock=True), item("b", quantity=3, in_stock=False)]
        assert classify(items) == BoardColumn.PARTIAL

    def test_columnas(self):
        assert classify([item("a"), item("b")]) == BoardColumn.READY
        assert classify([item("a", in_stock=False)]) == BoardColumn.PENDING
        # Un ítem ya facturado no cuenta para la columna
        assert classify([item("a", invoiced=10, in_stock=False), item("b")]) == BoardColumn.READY

    @pytest.mark.parametrize("delivery_time,expected", [
        (None, True),
        ("", True),
        ("Inmediato", True),
        (" INMEDIATA ", True),
        ("stock", True),
        ("15 días", False),
        ("A confirmar", False),
    ])
    def test_en_stock(self, delivery_time, expected):
        assert is_item_in_stock(delivery_time) is expected

    @pytest.mark.parametrize("delivery_time,days", [
        ("Inmediato", 0),
        ("15 días", 15),
        ("7-10 días", 10),
        ("7 a 10 dias", 10),
        ("1 día", 1),
        ("A confirmar", None),
    ])
    def test_dias_de_entrega(self, delivery_time, days):
        assert parse_delivery_days(delivery_time) == days

    def test_entrega_mas_lejana(self):
        assert farthest_delivery(["Inmediato", "15 días", "7-20 días"]) == "20 días"
        assert farthest_delivery(["Inmediato", "A confirmar"]) == "A confirmar"
        assert farthest_delivery(["15 días", "A confirmar"]) == "15 días"
        assert farthest_delivery([None, "stock"]) == "Inmediato"

    def test_pedido_parcial_pide_todo_el_pendiente(self):
        items = [item("a", quantity=10, invoiced=4), item("b", quantity=2)]
        assert build_partial_request(items, ["a"]) == {"a": 6}

    @pytest.mark.parametrize("blocked", [
        item("a", invoiced=10),
        item("a", in_stock=False),
        item("a", pending_submission=True),
    ])
    def test_item_no_seleccionable(self, blocked):
        with pytest.raises(ItemNotSelectableError):
            build_partial_request([blocked], ["a"])

    def test_pedido_vacio(self):
        with pytest.raises(ItemNotSelectableError):
            build_partial_request([item("a")], [])

    def test_sobrefacturacion_no_aplica_nada(self):
        items = [item("a", quantity=5), item("b", quantity=3)]
        with pytest.raises(OverInvoicingError) as exc:
            apply_invoicing(items, {"a": 5, "b": 4})
        assert exc.value.remaining == 3
        assert [i.invoiced_quantity for i in items] == [0, 0]

    def test_facturar_acumula(self):
        items = [item("a", quantity=5), item("b", quantity=3)]
        items = apply_invoicing(items, {"a": 2})
        items = apply_invoicing(items, {"a": 3, "b": 3})
        assert [i.remaining_quantity for i in items] == [0, 0]
        assert full_request(items) == {}


# ===== API =====

class TestQuotesAPI:

    def test_crear_cotizacion(self, client, customer):
        response = client.post("/quotes/", json={
            "customer_id": str(customer.id),
            "valid_until": str(date.today() + timedelta(days=15)),
            "items": [
                {"description": "Taladro percutor", "quantity": 2, "unit_price": "150.00", "delivery_time": "Inmediato"},
                {"description": "Amoladora", "quantity": 1, "unit_price": "200.00", "delivery_time": "15 días"},
                {"description": "Taladro alternativo", "quantity": 2, "unit_price": "120.00", "is_alternative": True},
            ],
        })
        assert response.status_code == 201
        data = response.json()
        assert data["quote_number"] == f"VAL-{date.today().year}-001"
        assert data["status"] == "DRAFT"
        assert Decimal(data["subtotal"]) == Decimal("500.00")
        assert Decimal(data["tax_amount"]) == Decimal("105.00")
        assert Decimal(data["total"]) == Decimal("605.00")
        assert len(data["items"]) == 3

        second = client.post("/quotes/", json={
            "customer_id": str(customer.id),
            "items": [{"description": "Mecha", "quantity": 1, "unit_price": "10"}],
        })
        assert second.json()["quote_number"] == f"VAL-{date.today().year}-002"

    def test_crear_cotizacion_cliente_inexistente(self, client):
        response = client.post("/quotes/", json={
            "customer_id": str(uuid4()),
            "items": [{"description": "Mecha", "quantity": 1, "unit_price": "10"}],
        })
        assert response.status_code == 400

    def test_numeracion_supera_999(self, client, customer, quote_factory):
        year = date.today().year
        quote_factory(quote_number=f"VAL-{year}-999")
        payload = {
            "customer_id": str(customer.id),
            "items": [{"description": "Mecha", "quantity": 1, "unit_price": "10"}],
        }
        numbers = [client.post("/quotes/", json=payload).json()["quote_number"] for _ in range(2)]
        assert numbers == [f"VAL-{year}-1000", f"VAL-{year}-1001"]

    def test_contador_no_crea_cotizaciones(self, client, customer, as_role):
        as_role("CONTADOR")
        response = client.post("/quotes/", json={
            "customer_id": str(customer.id),
            "items": [{"description": "Mecha", "quantity": 1, "unit_price": "10"}],
        })
        assert response.status_code == 403

    def test_enviar_y_aceptar(self, client, quote_factory):
        quote = quote_factory()
        response = client.patch(f"/quotes/{quote.id}/status", json={"status": "SENT"})
        assert response.status_code == 200
        assert response.json()["quote"]["status"] == "SENT"
        assert response.json()["warnings"] == []

        response = client.patch(f"/quotes/{quote.id}/status", json={
            "status": "ACCEPTED", "customer_response": "Confirmado por mail"
        })
        data = response.json()["quote"]
        assert data["status"] == "ACCEPTED"
        assert data["customer_response"] == "Confirmado por mail"
        assert data["response_date"] is not None
        assert data["status_updated_by"] == "Usuario Test"

        history = client.get(f"/quotes/{quote.id}/history").json()
        assert [(h["from_status"], h["to_status"]) for h in history] == [("DRAFT", "SENT"), ("SENT", "ACCEPTED")]
        assert history[1]["notes"] == "Confirmado por mail"

    def test_rechazar_requiere_motivo(self, client, db, quote_factory):
        quote = quote_factory()
        response = client.patch(f"/quotes/{quote.id}/status", json={"status": "REJECTED", "rejection_reason": ""})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_reason"

        db.expire_all()
        assert db.get(Quote, quote.id).status == QuoteStatus.DRAFT
        assert db.query(DocumentStatusHistory).count() == 0

    def test_rechazar_con_motivo(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.SENT)
        response = client.patch(f"/quotes/{quote.id}/status", json={
            "status": "REJECTED", "rejection_reason": "Precio alto"
        })
        data = response.json()["quote"]
        assert data["status"] == "REJECTED"
        assert data["rejection_reason"] == "Precio alto"
        assert data["response_date"] is not None

        history = client.get(f"/quotes/{quote.id}/history").json()
        assert history[0]["reason"] == "Precio alto"

    def test_rechazada_no_vuelve_a_borrador(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.REJECTED)
        response = client.patch(f"/quotes/{quote.id}/status", json={"status": "DRAFT", "revert_reason": "Reabrir"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_transition"

    def test_usuario_no_puede_convertir(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.ACCEPTED)
        response = client.patch(f"/quotes/{quote.id}/status", json={"status": "CONVERTED"})
        assert response.status_code == 400

    def test_volver_a_borrador_limpia_la_respuesta(self, client, quote_factory):
        quote = quote_factory()
        client.patch(f"/quotes/{quote.id}/status", json={"status": "ACCEPTED", "customer_response": "OK"})
        response = client.patch(f"/quotes/{quote.id}/status", json={
            "status": "DRAFT", "revert_reason": "Cambian las cantidades", "customer_response": "Pide otra"
        })
        data = response.json()["quote"]
        assert data["status"] == "DRAFT"
        assert data["response_date"] is None
        assert data["customer_response"] is None

        history = client.get(f"/quotes/{quote.id}/history").json()
        # El motivo de reversión tiene prioridad como nota
        assert history[-1]["notes"] == "Cambian las cantidades"

    def test_revertir_conversion_desvincula_documentos(self, client, db, quote_factory):
        quote = quote_factory(status=QuoteStatus.CONVERTED)
        quote.colppy_invoice_id = "F-991"
        db.commit()

        response = client.patch(f"/quotes/{quote.id}/status", json={
            "status": "ACCEPTED", "revert_reason": "Factura emitida con error"
        })
        assert response.status_code == 200
        data = response.json()
        assert data["quote"]["status"] == "ACCEPTED"
        assert data["quote"]["colppy_invoice_id"] is None
        assert data["linked_documents_to_clear"] == [{"kind": "colppy_invoice", "document_id": "F-991"}]

    def test_listar_por_estado(self, client, quote_factory):
        quote_factory()
        quote_factory(status=QuoteStatus.SENT)
        data = client.get("/quotes/", params={"status": "SENT"}).json()
        assert data["total"] == 1
        assert data["quotes"][0]["status"] == "SENT"

    def test_cotizacion_inexistente(self, client):
        assert client.get(f"/quotes/{uuid4()}").status_code == 404


class TestQuoteDuplication:

    def test_duplicar_cotizacion_rechazada(self, client, db, quote_factory):
        original = quote_factory(
            status=QuoteStatus.REJECTED,
            items=[
                {"description": "Taladro", "quantity": 2, "unit_price": Decimal("100.00"), "delivery_time": "Inmediato"},
                {"description": "Taladro alternativo", "quantity": 2, "unit_price": Decimal("80.00"), "is_alternative": True},
            ],
        )
        original.rejection_reason = "Precio alto"
        original.customer_response = "Conseguimos mejor precio"
        db.commit()

        response = client.post(f"/quotes/{original.id}/duplicate")
        assert response.status_code == 201
        data = response.json()
        assert data["id"] != str(original.id)
        assert data["quote_number"] == f"VAL-{date.today().year}-001"
        assert data["status"] == "DRAFT"
        assert data["currency"] == original.currency
        assert data["valid_until"] == str(original.valid_until)
        assert data["rejection_reason"] is None
        assert data["customer_response"] is None
        assert Decimal(data["total"]) == Decimal("242.00")
        assert [(i["description"], i["quantity"], i["is_alternative"]) for i in data["items"]] == [
            ("Taladro", 2, False),
            ("Taladro alternativo", 2, True),
        ]

        assert client.get(f"/quotes/{data['id']}/history").json() == []
        db.expire_all()
        assert db.get(Quote, original.id).status == QuoteStatus.REJECTED

    def test_duplicar_cotizacion_vencida_y_seguir_el_circuito(self, client, quote_factory):
        original = quote_factory(status=QuoteStatus.EXPIRED)
        copy = client.post(f"/quotes/{original.id}/duplicate").json()
        response = client.patch(f"/quotes/{copy['id']}/status", json={"status": "SENT"})
        assert response.status_code == 200

    def test_contador_no_duplica(self, client, quote_factory, as_role):
        quote = quote_factory()
        as_role("CONTADOR")
        assert client.post(f"/quotes/{quote.id}/duplicate").status_code == 403

    def test_duplicar_inexistente(self, client):
        assert client.post(f"/quotes/{uuid4()}/duplicate").status_code == 404


class TestQuoteEmailResend:

    @pytest.fixture
    def sent_quote(self, db, customer, quote_factory):
        customer.email = "compras@ferreterianorte.com.ar"
        db.commit()
        return quote_factory(status=QuoteStatus.SENT)

    def test_reenviar_email(self, client, sent_quote):
        response = client.post(f"/quotes/{sent_quote.id}/send-email")
        assert response.status_code == 202
        data = response.json()
        assert data["queued"] is True
        assert data["warnings"] == []
        # El reenvío no es un cambio de estado
        assert client.get(f"/quotes/{sent_quote.id}/history").json() == []

    def test_broker_caido_devuelve_warning(self, client, sent_quote, broker_down):
        task = broker_down(quote_service, "send_quote_email_task")
        response = client.post(f"/quotes/{sent_quote.id}/send-email")
        assert response.status_code == 202
        data = response.json()
        assert data["queued"] is False
        assert data["task"] == task.name
        assert "broker caído" in data["warnings"][0]

    def test_cotizacion_no_enviada(self, client, db, customer, quote_factory):
        customer.email = "compras@ferreterianorte.com.ar"
        db.commit()
        quote = quote_factory(status=QuoteStatus.DRAFT)
        assert client.post(f"/quotes/{quote.id}/send-email").status_code == 400

    def test_cliente_sin_email(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.SENT)
        assert client.post(f"/quotes/{quote.id}/send-email").status_code == 400


class TestQuoteConversion:

    def test_facturar_todo_convierte(self, client, db, quote_factory, customer):
        quote = quote_factory(status=QuoteStatus.ACCEPTED)
        response = client.post(f"/quotes/{quote.id}/invoice", json={})
        assert response.status_code == 201
        data = response.json()
        assert data["quote_status"] == "CONVERTED"
        assert data["invoice"]["invoice_type"] == "A"
        assert data["invoice"]["status"] == "PENDING"
        assert Decimal(data["invoice"]["total"]) == Decimal("242.00")

        db.expire_all()
        assert db.get(Customer, customer.id).balance == Decimal("242.00")
        history = client.get(f"/quotes/{quote.id}/history").json()
        assert history[-1]["changed_by"] == "system"
        assert history[-1]["to_status"] == "CONVERTED"

    def test_facturar_cotizacion_no_aceptada(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.SENT)
        response = client.post(f"/quotes/{quote.id}/invoice", json={})
        assert response.status_code == 400

    def test_facturacion_parcial(self, client, db, quote_factory):
        quote = quote_factory(status=QuoteStatus.ACCEPTED, items=[
            {"description": "Taladro", "quantity": 2, "unit_price": Decimal("100.00"), "delivery_time": "Inmediato"},
            {"description": "Amoladora", "quantity": 3, "unit_price": Decimal("50.00"), "delivery_time": "15 días"},
        ])
        drill, grinder = quote.items

        board = client.get("/quotes/board").json()
        assert board["partial"]["count"] == 1
        card = board["partial"]["quotes"][0]
        assert card["farthest_delivery"] == "15 días"
        assert card["ready_items_count"] == 1

        response = client.post(f"/quotes/{quote.id}/invoice", json={"item_ids": [str(grinder.id)]})
        assert response.status_code == 400

        response = client.post(f"/quotes/{quote.id}/invoice", json={"item_ids": [str(drill.id)]})
        assert response.status_code == 201
        data = response.json()
        assert data["quote_status"] == "ACCEPTED"
        assert [(i["description"], i["quantity"]) for i in data["invoice"]["items"]] == [("Taladro", 2)]

        # Ya facturado, no se puede volver a elegir
        response = client.post(f"/quotes/{quote.id}/invoice", json={"item_ids": [str(drill.id)]})
        assert response.status_code == 400

        board = client.get("/quotes/board").json()
        assert board["partial"]["count"] == 0
        assert board["pending"]["count"] == 1
        items = {i["description"]: i for i in board["pending"]["quotes"][0]["items"]}
        assert items["Taladro"]["remaining_quantity"] == 0
        assert items["Amoladora"]["is_selectable"] is False

    def test_factura_anulada_libera_cantidades(self, client, db, quote_factory):
        quote = quote_factory(status=QuoteStatus.ACCEPTED, items=[
            {"description": "Taladro", "quantity": 2, "unit_price": Decimal("100.00")},
            {"description": "Amoladora", "quantity": 3, "unit_price": Decimal("50.00")},
        ])
        drill = quote.items[0]
        client.post(f"/quotes/{quote.id}/invoice", json={"item_ids": [str(drill.id)]})

        invoice = db.query(Invoice).one()
        invoice.status = InvoiceStatus.CANCELLED
        db.commit()

        board = client.get("/quotes/board").json()
        card = board["ready"]["quotes"][0]
        assert {i["description"]: i["remaining_quantity"] for i in card["items"]} == {"Taladro": 2, "Amoladora": 3}

    def test_tablero_totales_por_moneda(self, client, quote_factory):
        quote_factory(status=QuoteStatus.ACCEPTED)
        quote_factory(status=QuoteStatus.ACCEPTED, currency="USD")
        quote_factory(status=QuoteStatus.SENT)

        ready = client.get("/quotes/board").json()["ready"]
        assert ready["count"] == 2
        assert Decimal(ready["total_ars"]) == Decimal("242.00")
        assert Decimal(ready["total_usd"]) == Decimal("242.00")

        ready = client.get("/quotes/board", params={"currency": "USD"}).json()["ready"]
        assert ready["count"] == 1

    def test_alternativos_no_se_facturan(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.ACCEPTED, items=[
            {"description": "Taladro", "quantity": 1, "unit_price": Decimal("100.00")},
            {"description": "Taladro alternativo", "quantity": 1, "unit_price": Decimal("80.00"), "is_alternative": True},
        ])
        response = client.post(f"/quotes/{quote.id}/invoice", json={})
        assert [i["description"] for i in response.json()["invoice"]["items"]] == ["Taladro"]

    def test_remitir_convierte(self, client, quote_factory):
        quote = quote_factory(status=QuoteStatus.ACCEPTED)
        response = client.post(f"/quotes/{quote.id}/delivery-note", json={"carrier": "Andreani"})
        assert response.status_code == 201
        data = response.json()
        assert data["quote_status"] == "CONVERTED"
        assert data["delivery_note"]["delivery_number"] == "RE 0002-00000001"
        assert data["delivery_note"]["status"] == "PENDING"
        assert len(data["delivery_note"]["items"]) == 1


class TestQuoteExpiration:

    def test_vence_solo_enviadas_fuera_de_validez(self, db, quote_factory):
        yesterday = date.today() - timedelta(days=1)
        stale = quote_factory(status=QuoteStatus.SENT, valid_until=yesterday)
        draft = quote_factory(status=QuoteStatus.DRAFT, valid_until=yesterday)
        current = quote_factory(status=QuoteStatus.SENT)

        expired = QuoteService(db).expire_stale_quotes()

        assert expired == [stale.quote_number]
        db.expire_all()
        assert db.get(Quote, stale.id).status == QuoteStatus.EXPIRED
        assert db.get(Quote, draft.id).status == QuoteStatus.DRAFT
        assert db.get(Quote, current.id).status == QuoteStatus.SENT

        entry = db.query(DocumentStatusHistory).one()
        assert entry.changed_by == "system"
        assert entry.to_status == "EXPIRED"

    def test_sin_cotizaciones_vencidas(self, db, quote_factory):
        quote_factory(status=QuoteStatus.SENT)
        assert QuoteService(db).expire_stale_quotes() == []
