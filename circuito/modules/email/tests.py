from types import SimpleNamespace

from circuito.core.config import settings
from circuito.modules.email.service import email_service
from circuito.modules.email.tasks import send_quote_email_task, send_receipt_confirmation_task


class TestTemplates:

    def test_cotizacion_enviada(self):
        html = email_service.render_template("quote_sent.html", {
            "quote_number": "VAL-2026-001",
            "customer_name": "Ferretería Norte",
            "currency": "ARS",
            "total": "242,00",
            "valid_until": "15/03/2026",
            "items": [SimpleNamespace(description="Taladro", quantity=2, total_price="200.00", delivery_time="Inmediato")],
            "quote_url": "http://localhost:3000/cotizaciones/1",
        })
        assert "VAL-2026-001" in html
        assert "Ferretería Norte" in html

    def test_recibo_aprobado(self):
        html = email_service.render_template("receipt_approved.html", {
            "receipt_number": "0001-00000001",
            "customer_name": "<Ferretería>",
            "date": "02/03/2026",
            "currency": "ARS",
            "total_applied": "1,000.00",
            "total_withholdings": "100.00",
            "total_collected": "900.00",
            "applications": [{"invoice_number": "0001-00000042", "applied_amount": "1,000.00"}],
        })
        assert "0001-00000042" in html
        assert "&lt;Ferretería&gt;" in html


class TestEmailTasks:

    def test_deshabilitado_no_envia(self):
        assert send_quote_email_task.apply(args=["q-1"]).get()["status"] == "skipped"
        assert send_receipt_confirmation_task.apply(args=["r-1"]).get()["status"] == "skipped"

    def test_mensaje(self, monkeypatch):
        monkeypatch.setattr(settings, "EMAIL_FROM", "ventas@distribuidora.com.ar")
        message = email_service.build_message(["compras@ferreteria.com.ar"], "Recibo 0001-00000001", "<p>Gracias</p>")
        assert message["From"] == "Circuito Ventas <ventas@distribuidora.com.ar>"
        assert message["To"] == "compras@ferreteria.com.ar"
