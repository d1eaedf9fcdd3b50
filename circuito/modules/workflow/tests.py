"""
Tests de la máquina de estados y de la persistencia del historial

Cubre:
- aristas válidas e inválidas por variante de documento
- motivo obligatorio (vacío o en blanco)
- transiciones de sistema
- documentos vinculados a desvincular al revertir una conversión
- historial append-only
"""
import pytest
from decimal import Decimal
from uuid import uuid4

from circuito.modules.delivery_notes.transitions import DELIVERY_NOTE_GRAPH, DeliveryNoteStatus
from circuito.modules.purchase_invoices.transitions import PURCHASE_INVOICE_GRAPH, PurchaseInvoiceStatus
from circuito.modules.quotes.transitions import QUOTE_GRAPH, QuoteStatus
from circuito.modules.receipts.transitions import RECEIPT_GRAPH, ReceiptStatus
from circuito.modules.workflow.exceptions import GuardFailed, InvalidTransition, MissingReason
from circuito.modules.workflow.machine import DocumentSnapshot, TransitionContext, propose_transition
from circuito.modules.workflow.models import DocumentStatusHistory, DocumentType, ImmutableHistoryError
from circuito.modules.workflow.service import WorkflowService, http_error_from_workflow


def snapshot(status, document_type="quote", links=None):
    return DocumentSnapshot(id=str(uuid4()), document_type=document_type, status=status, links=links or {})


def user(reason=None, notes=None, **kwargs):
    return TransitionContext(changed_by="vendedor@distribuidora", reason=reason, notes=notes, **kwargs)


class TestQuoteGraph:

    @pytest.mark.parametrize("source,target", [
        (QuoteStatus.DRAFT, QuoteStatus.SENT),
        (QuoteStatus.DRAFT, QuoteStatus.ACCEPTED),
        (QuoteStatus.SENT, QuoteStatus.SENT),
        (QuoteStatus.SENT, QuoteStatus.ACCEPTED),
    ])
    def test_aristas_sin_motivo(self, source, target):
        outcome = propose_transition(QUOTE_GRAPH, snapshot(source), target, user())
        assert outcome.document.status == target
        assert len(outcome.document.history) == 1
        assert outcome.entry.from_status == source
        assert outcome.entry.to_status == target

    @pytest.mark.parametrize("source,target", [
        (QuoteStatus.DRAFT, QuoteStatus.CONVERTED),
        (QuoteStatus.DRAFT, QuoteStatus.CANCELLED),
        (QuoteStatus.SENT, QuoteStatus.DRAFT),
        (QuoteStatus.REJECTED, QuoteStatus.DRAFT),
        (QuoteStatus.REJECTED, QuoteStatus.ACCEPTED),
        (QuoteStatus.EXPIRED, QuoteStatus.SENT),
        (QuoteStatus.CONVERTED, QuoteStatus.DRAFT),
    ])
    def test_arista_inexistente_siempre_rechazada(self, source, target):
        with pytest.raises(InvalidTransition):
            propose_transition(QUOTE_GRAPH, snapshot(source), target, user(reason="motivo", system=True))

    def test_rechazo_con_motivo_vacio(self):
        """DRAFT -> REJECTED con motivo "" falla con MissingReason."""
        with pytest.raises(MissingReason):
            propose_transition(QUOTE_GRAPH, snapshot(QuoteStatus.DRAFT), QuoteStatus.REJECTED, user(reason=""))

    @pytest.mark.parametrize("reason", [None, "", "   ", "\t\n"])
    def test_motivo_en_blanco_siempre_rechazado(self, reason):
        with pytest.raises(MissingReason):
            propose_transition(QUOTE_GRAPH, snapshot(QuoteStatus.ACCEPTED), QuoteStatus.CANCELLED, user(reason=reason))

    def test_conversion_solo_la_hace_el_sistema(self):
        with pytest.raises(InvalidTransition):
            propose_transition(QUOTE_GRAPH, snapshot(QuoteStatus.ACCEPTED), QuoteStatus.CONVERTED, user())

        outcome = propose_transition(
            QUOTE_GRAPH, snapshot(QuoteStatus.ACCEPTED), QuoteStatus.CONVERTED,
            TransitionContext(changed_by="system", system=True)
        )
        assert outcome.to_status == QuoteStatus.CONVERTED

    def test_revertir_conversion_informa_documentos_vinculados(self):
        document = snapshot(QuoteStatus.CONVERTED, links={
            "colppy_invoice": ("F-991",),
            "colppy_delivery_note": ("R-17",),
        })
        outcome = propose_transition(QUOTE_GRAPH, document, QuoteStatus.ACCEPTED, user(reason="Error de precio"))

        kinds = {(link.kind, link.document_id) for link in outcome.linked_documents_to_clear}
        assert kinds == {("colppy_invoice", "F-991"), ("colppy_delivery_note", "R-17")}
        # La máquina no desvincula: la foto conserva los vínculos
        assert outcome.document.links == document.links

    def test_revertir_a_borrador_no_informa_vinculos(self):
        document = snapshot(QuoteStatus.ACCEPTED, links={"colppy_invoice": ("F-1",)})
        outcome = propose_transition(QUOTE_GRAPH, document, QuoteStatus.DRAFT, user(reason="Cambia cantidades"))
        assert outcome.linked_documents_to_clear == ()

    def test_motivo_y_notas_se_guardan_sin_espacios(self):
        outcome = propose_transition(
            QUOTE_GRAPH, snapshot(QuoteStatus.SENT), QuoteStatus.REJECTED,
            user(reason="  Precio alto  ", notes="  ")
        )
        assert outcome.entry.reason == "Precio alto"
        assert outcome.entry.notes is None

    def test_error_no_modifica_la_foto(self):
        document = snapshot(QuoteStatus.DRAFT)
        with pytest.raises(MissingReason):
            propose_transition(QUOTE_GRAPH, document, QuoteStatus.REJECTED, user())
        assert document.status == QuoteStatus.DRAFT
        assert document.history == ()


class TestOtherGraphs:

    def test_remito_camino_completo(self):
        document = snapshot(DeliveryNoteStatus.PENDING, "delivery_note")
        for target in (DeliveryNoteStatus.PREPARING, DeliveryNoteStatus.READY,
                       DeliveryNoteStatus.DISPATCHED, DeliveryNoteStatus.DELIVERED):
            document = propose_transition(DELIVERY_NOTE_GRAPH, document, target, user()).document
        assert document.status == DeliveryNoteStatus.DELIVERED
        assert len(document.history) == 4
        assert DELIVERY_NOTE_GRAPH.is_terminal(DeliveryNoteStatus.DELIVERED)

    def test_remito_despachado_no_se_cancela(self):
        with pytest.raises(InvalidTransition):
            propose_transition(
                DELIVERY_NOTE_GRAPH, snapshot(DeliveryNoteStatus.DISPATCHED, "delivery_note"),
                DeliveryNoteStatus.CANCELLED, user(reason="Cliente canceló")
            )

    def test_factura_de_compra_aprobada_no_se_vuelve_a_aprobar(self):
        with pytest.raises(InvalidTransition):
            propose_transition(
                PURCHASE_INVOICE_GRAPH, snapshot(PurchaseInvoiceStatus.APPROVED, "purchase_invoice"),
                PurchaseInvoiceStatus.APPROVED, user()
            )

    def test_guarda_de_totales_de_factura_de_compra(self):
        context = user(payload={"totals": {
            "lines_subtotal": Decimal("100.00"), "tax_amount": Decimal("21.00"), "total": Decimal("125.00")
        }})
        with pytest.raises(GuardFailed) as exc:
            propose_transition(
                PURCHASE_INVOICE_GRAPH, snapshot(PurchaseInvoiceStatus.DRAFT, "purchase_invoice"),
                PurchaseInvoiceStatus.APPROVED, context
            )
        assert exc.value.metric == "totals_diff"

    def test_recibo_sin_datos_no_se_aprueba(self):
        with pytest.raises(GuardFailed):
            propose_transition(
                RECEIPT_GRAPH, snapshot(ReceiptStatus.BORRADOR, "receipt"), ReceiptStatus.APROBADO, user()
            )

    def test_recibo_anulado_es_terminal(self):
        assert RECEIPT_GRAPH.is_terminal(ReceiptStatus.ANULADO)
        assert RECEIPT_GRAPH.is_terminal(ReceiptStatus.APROBADO)


class TestHttpErrors:

    def test_guarda_fallida_es_409(self):
        error = http_error_from_workflow(GuardFailed("No cuadra", metric="diff", value=Decimal("50.00")))
        assert error.status_code == 409
        assert error.detail["metric"] == "diff"
        assert error.detail["value"] == "50.00"

    def test_transicion_invalida_es_400(self):
        error = http_error_from_workflow(InvalidTransition("quote", QuoteStatus.REJECTED, QuoteStatus.DRAFT))
        assert error.status_code == 400
        assert error.detail["code"] == "invalid_transition"

    def test_motivo_faltante_es_400(self):
        error = http_error_from_workflow(MissingReason(QuoteStatus.DRAFT, QuoteStatus.REJECTED))
        assert error.status_code == 400
        assert error.detail["code"] == "missing_reason"


class TestWorkflowService:

    def test_aplica_estado_e_historial(self, db, quote_factory):
        quote = quote_factory()
        service = WorkflowService(db)

        service.apply(quote, QUOTE_GRAPH, QuoteStatus.SENT, user())
        db.commit()

        assert quote.status == QuoteStatus.SENT
        assert quote.status_updated_by == "vendedor@distribuidora"
        history = service.history(DocumentType.QUOTE, quote.id)
        assert [(h.from_status, h.to_status) for h in history] == [("DRAFT", "SENT")]

    def test_rechazo_no_deja_historial_huerfano(self, db, quote_factory):
        quote = quote_factory()
        service = WorkflowService(db)

        with pytest.raises(MissingReason):
            service.apply(quote, QUOTE_GRAPH, QuoteStatus.REJECTED, user(reason=" "))
        db.commit()

        assert quote.status == QuoteStatus.DRAFT
        assert service.history(DocumentType.QUOTE, quote.id) == []

    def test_snapshot_incluye_historial_previo(self, db, quote_factory):
        quote = quote_factory()
        service = WorkflowService(db)
        service.apply(quote, QUOTE_GRAPH, QuoteStatus.SENT, user())
        service.apply(quote, QUOTE_GRAPH, QuoteStatus.SENT, user(notes="Reenvío"))
        db.commit()

        document = service.snapshot(quote, QUOTE_GRAPH)
        assert len(document.history) == 2
        assert document.history[-1].notes == "Reenvío"

    def test_historial_no_se_modifica(self, db, quote_factory):
        quote = quote_factory()
        WorkflowService(db).apply(quote, QUOTE_GRAPH, QuoteStatus.SENT, user())
        db.commit()

        entry = db.query(DocumentStatusHistory).first()
        entry.notes = "editado"
        with pytest.raises(ImmutableHistoryError):
            db.commit()
        db.rollback()

    def test_historial_no_se_borra(self, db, quote_factory):
        quote = quote_factory()
        WorkflowService(db).apply(quote, QUOTE_GRAPH, QuoteStatus.SENT, user())
        db.commit()

        db.delete(db.query(DocumentStatusHistory).first())
        with pytest.raises(ImmutableHistoryError):
            db.commit()
        db.rollback()
