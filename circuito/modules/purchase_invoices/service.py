import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from circuito.common.money import ZERO, to_money
from circuito.common.validators import format_cuit
from circuito.core.config import settings
from circuito.modules.auth.dependencies import APPROVER_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.purchase_invoices.models import PurchaseInvoice, PurchaseInvoiceItem
from circuito.modules.purchase_invoices.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoicePayment, PurchaseInvoiceStatusChange
)
from circuito.modules.purchase_invoices.transitions import PURCHASE_INVOICE_GRAPH, PurchaseInvoiceStatus
from circuito.modules.workflow.exceptions import WorkflowError
from circuito.modules.workflow.machine import TransitionContext
from circuito.modules.workflow.models import DocumentType
from circuito.modules.workflow.service import WorkflowService, http_error_from_workflow

logger = logging.getLogger(__name__)


class PurchaseInvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.workflow = WorkflowService(db)

    def get_purchase_invoice(self, purchase_invoice_id: UUID) -> PurchaseInvoice:
        invoice = self.db.query(PurchaseInvoice).options(selectinload(PurchaseInvoice.items)).filter(
            PurchaseInvoice.id == purchase_invoice_id
        ).first()
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Factura de compra no encontrada"
            )
        return invoice

    def get_purchase_invoices(self, status_filter: Optional[PurchaseInvoiceStatus] = None,
                              limit: int = 100, offset: int = 0):
        query = self.db.query(PurchaseInvoice)
        if status_filter:
            query = query.filter(PurchaseInvoice.status == status_filter)
        return query.order_by(PurchaseInvoice.issue_date.desc()).offset(offset).limit(limit).all()

    def get_status_history(self, purchase_invoice_id: UUID):
        invoice = self.get_purchase_invoice(purchase_invoice_id)
        return self.workflow.history(DocumentType.PURCHASE_INVOICE, invoice.id)

    def create_purchase_invoice(self, data: PurchaseInvoiceCreate, auth_context: AuthContext) -> PurchaseInvoice:
        try:
            invoice = PurchaseInvoice(
                supplier_name=data.supplier_name,
                supplier_cuit=format_cuit(data.supplier_cuit) if data.supplier_cuit else None,
                invoice_number=data.invoice_number,
                invoice_type=data.invoice_type,
                issue_date=data.issue_date,
                due_date=data.due_date,
                created_by=auth_context.actor,
                status=PURCHASE_INVOICE_GRAPH.initial,
                currency=data.currency,
                tax_amount=to_money(data.tax_amount),
                total=to_money(data.total),
                notes=data.notes,
            )
            for item_data in data.items:
                invoice.items.append(PurchaseInvoiceItem(
                    description=item_data.description,
                    quantity=item_data.quantity,
                    unit_price=to_money(item_data.unit_price),
                    subtotal=to_money(item_data.quantity * item_data.unit_price),
                ))
            invoice.subtotal = sum((item.subtotal for item in invoice.items), ZERO)

            self.db.add(invoice)
            self.db.commit()
            self.db.refresh(invoice)
            return invoice

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando factura de compra: {str(e)}"
            )

    def change_status(self, purchase_invoice_id: UUID, change: PurchaseInvoiceStatusChange,
                      auth_context: AuthContext) -> dict:
        """
        Cambia el estado de una factura de compra.

        Aprobar exige rol ADMIN o CONTADOR y que los ítems más impuestos
        coincidan con el total. PAID no se pide: lo asigna `record_payment`.
        """
        try:
            invoice = self.get_purchase_invoice(purchase_invoice_id)

            if change.status == PurchaseInvoiceStatus.APPROVED and auth_context.user_role not in APPROVER_ROLES:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(APPROVER_ROLES)}"
                )

            try:
                self.workflow.apply(invoice, PURCHASE_INVOICE_GRAPH, change.status, TransitionContext(
                    changed_by=auth_context.actor,
                    reason=change.reason,
                    notes=change.notes,
                    payload={"totals": {
                        "lines_subtotal": invoice.lines_subtotal,
                        "tax_amount": invoice.tax_amount,
                        "total": invoice.total,
                    }},
                ))
            except WorkflowError as e:
                logger.info(f"Transición rechazada en factura de compra {invoice.invoice_number}: {e.message}")
                raise http_error_from_workflow(e)

            self.db.commit()
            self.db.refresh(invoice)
            return {"purchase_invoice": invoice, "linked_documents_to_clear": [], "warnings": []}

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error cambiando estado de la factura de compra: {str(e)}"
            )

    def record_payment(self, purchase_invoice_id: UUID, payment: PurchaseInvoicePayment,
                       auth_context: AuthContext) -> dict:
        """Registra un pago; al quedar saldada pasa a PAID (transición de sistema)."""
        try:
            invoice = self.get_purchase_invoice(purchase_invoice_id)
            if invoice.status != PurchaseInvoiceStatus.APPROVED:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Solo se pueden registrar pagos de facturas aprobadas"
                )

            remaining = to_money(invoice.total) - to_money(invoice.paid_amount)
            amount = to_money(payment.amount)
            if amount > remaining + settings.PERSISTED_AMOUNT_TOLERANCE:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"El pago ({amount}) supera el saldo de la factura ({remaining})"
                )

            invoice.paid_amount = to_money(invoice.paid_amount) + amount
            if invoice.paid_amount >= to_money(invoice.total) - settings.BALANCE_EPSILON:
                self.workflow.apply(invoice, PURCHASE_INVOICE_GRAPH, PurchaseInvoiceStatus.PAID, TransitionContext(
                    changed_by=auth_context.actor,
                    notes=payment.notes or "Factura saldada",
                    system=True,
                ))

            self.db.commit()
            self.db.refresh(invoice)
            return {"purchase_invoice": invoice, "linked_documents_to_clear": [], "warnings": []}

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error registrando pago: {str(e)}"
            )
