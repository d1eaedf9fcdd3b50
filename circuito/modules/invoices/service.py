import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from circuito.common.money import ZERO, to_money
from circuito.common.numbering import next_document_number
from circuito.core.celery import dispatch_after_commit
from circuito.core.config import settings
from circuito.modules.customers.models import Customer
from circuito.modules.integrations.tasks import submit_invoice_to_accounting_task
from circuito.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus
from circuito.modules.quotes.fulfillment import FulfillmentItem, is_item_in_stock

logger = logging.getLogger(__name__)

# Facturas que no cuentan para cantidades facturadas ni se pueden cobrar
CLOSED_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


def determine_invoice_type(tax_condition: Optional[str]) -> str:
    """Tipo de factura según la condición frente al IVA del cliente."""
    if tax_condition == "RESPONSABLE_INSCRIPTO":
        return "A"
    if tax_condition == "EXENTO":
        return "C"
    return "B"


class InvoiceLine:
    """Línea a facturar, con su ítem de cotización de origen si lo tiene"""

    def __init__(self, description: str, quantity: int, unit_price, quote_item_id: Optional[UUID] = None):
        self.description = description
        self.quantity = quantity
        self.unit_price = to_money(unit_price)
        self.quote_item_id = quote_item_id

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Factura no encontrada"
            )
        return invoice

    def get_invoices(self, customer_id: Optional[UUID] = None, status_filter: Optional[InvoiceStatus] = None,
                     limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Invoice)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        if status_filter:
            query = query.filter(Invoice.status == status_filter)
        total = query.count()
        invoices = query.order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc()).offset(offset).limit(limit).all()
        return {"invoices": invoices, "total": total, "limit": limit, "offset": offset}

    def get_open_invoices(self, customer_id: UUID) -> List[Invoice]:
        """Facturas del cliente con saldo pendiente, para imputar en un recibo"""
        invoices = self.db.query(Invoice).filter(
            Invoice.customer_id == customer_id,
            Invoice.status.notin_(CLOSED_STATUSES)
        ).order_by(Invoice.issue_date.asc(), Invoice.invoice_number.asc()).all()
        return [invoice for invoice in invoices if to_money(invoice.remaining_balance) > ZERO]

    def invoiced_quantities(self, quote_item_ids: Iterable[UUID]) -> Dict[UUID, Tuple[int, bool]]:
        """
        Por ítem de cotización: cantidad ya facturada en facturas no anuladas
        y si alguna de ellas sigue con el envío externo sin confirmar.
        """
        ids = list(quote_item_ids)
        result: Dict[UUID, Tuple[int, bool]] = {item_id: (0, False) for item_id in ids}
        if not ids:
            return result

        rows = self.db.query(InvoiceItem.quote_item_id, InvoiceItem.quantity, Invoice.external_submission_pending).join(
            Invoice, InvoiceItem.invoice_id == Invoice.id
        ).filter(
            InvoiceItem.quote_item_id.in_(ids),
            Invoice.status != InvoiceStatus.CANCELLED
        ).all()
        for quote_item_id, quantity, pending in rows:
            invoiced, any_pending = result[quote_item_id]
            result[quote_item_id] = (invoiced + quantity, any_pending or bool(pending))
        return result

    def fulfillment_items(self, quote_items: Sequence) -> List[FulfillmentItem]:
        """Arma el estado de facturación de los ítems principales (no alternativos) de una cotización."""
        main_items = [item for item in quote_items if not item.is_alternative]
        invoiced = self.invoiced_quantities(item.id for item in main_items)
        return [
            FulfillmentItem(
                item_id=str(item.id),
                quantity=item.quantity,
                invoiced_quantity=invoiced[item.id][0],
                is_in_stock=is_item_in_stock(item.delivery_time),
                pending_submission=invoiced[item.id][1],
            )
            for item in main_items
        ]

    def create_invoice(
        self,
        customer: Customer,
        lines: Sequence[InvoiceLine],
        created_by: str,
        quote_id: Optional[UUID] = None,
        delivery_note_id: Optional[UUID] = None,
        currency: str = "ARS",
        exchange_rate=1,
        point_of_sale: Optional[str] = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Invoice:
        """
        Agrega la factura a la sesión e imputa su total al saldo del cliente.
        No hace commit: la confirma el servicio que la origina.
        """
        invoice_type = determine_invoice_type(customer.tax_condition)
        point_of_sale = point_of_sale or settings.DEFAULT_POINT_OF_SALE

        subtotal = sum((line.subtotal for line in lines), ZERO)
        tax_amount = to_money(subtotal * settings.INVOICE_TAX_RATE)
        tax_percent = to_money(settings.INVOICE_TAX_RATE * 100)

        invoice = Invoice(
            invoice_number=next_document_number(
                self.db, Invoice.invoice_number, point_of_sale, Invoice.invoice_type == invoice_type
            ),
            invoice_type=invoice_type,
            customer_id=customer.id,
            quote_id=quote_id,
            delivery_note_id=delivery_note_id,
            created_by=created_by,
            status=InvoiceStatus.PENDING,
            currency=currency,
            exchange_rate=exchange_rate,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total=subtotal + tax_amount,
            paid_amount=ZERO,
            issue_date=date.today(),
            due_date=due_date or date.today() + timedelta(days=settings.INVOICE_DUE_DAYS),
            notes=notes,
            external_submission_pending=settings.COLPPY_ENABLED,
        )
        for line in lines:
            invoice.items.append(InvoiceItem(
                quote_item_id=line.quote_item_id,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                tax_rate=tax_percent,
                subtotal=line.subtotal,
            ))

        customer.balance = to_money(customer.balance) + invoice.total
        self.db.add(invoice)
        self.db.flush()

        logger.info(f"Factura {invoice.invoice_type} {invoice.invoice_number} generada por {invoice.total}")
        return invoice

    def register_collection(self, invoice: Invoice, amount, epsilon: Decimal = None) -> Invoice:
        """Suma un cobro a la factura; queda PAID cuando el saldo es menor a un centavo."""
        epsilon = settings.BALANCE_EPSILON if epsilon is None else epsilon
        invoice.paid_amount = to_money(invoice.paid_amount) + to_money(amount)
        if invoice.paid_amount >= to_money(invoice.total) - epsilon:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_date = datetime.now(timezone.utc)
        return invoice

    def resend_to_accounting(self, invoice_id: UUID) -> dict:
        """
        Vuelve a encolar el envío a Colppy de una factura que quedó pendiente,
        por ejemplo cuando se agotaron los reintentos o el broker no respondió.
        """
        invoice = self.get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No se puede enviar a Colppy una factura anulada"
            )
        if not invoice.external_submission_pending:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"La factura {invoice.invoice_number} no tiene un envío a Colppy pendiente"
            )

        warning = dispatch_after_commit(submit_invoice_to_accounting_task, str(invoice.id))
        logger.info(f"Reenvío a Colppy de la factura {invoice.invoice_number} {'encolado' if warning is None else 'fallido'}")
        return {
            "document_id": invoice.id,
            "task": submit_invoice_to_accounting_task.name,
            "queued": warning is None,
            "warnings": [warning] if warning else [],
        }
