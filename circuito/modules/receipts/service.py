"""
Servicio de Recibos de cobranza

Flujo:
- crear / editar en BORRADOR: valida facturas, cuentas de tesorería y datos
  mínimos, pero no exige que el recibo cuadre
- aprobar: el recibo debe cuadrar (|diferencia| < 0.01). En la misma
  transacción se registra el asiento REC, se imputan los cobros a las
  facturas y se descuenta el saldo del cliente
- anular: solo desde BORRADOR y con motivo
"""
import logging
from dataclasses import asdict
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from circuito.common.money import ZERO, to_money
from circuito.common.numbering import next_document_number
from circuito.core.celery import dispatch_after_commit
from circuito.core.config import settings
from circuito.modules.accounting.journal import CollectionLine, UnbalancedJournalError, build_receipt_journal_lines
from circuito.modules.accounting.service import AccountingService
from circuito.modules.auth.dependencies import APPROVER_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.customers.models import Customer
from circuito.modules.email.tasks import send_receipt_confirmation_task
from circuito.modules.invoices.models import Invoice
from circuito.modules.invoices.service import CLOSED_STATUSES, InvoiceService
from circuito.modules.receipts.allocation import (
    AllocationError, InvoiceAllocation, InvoiceApplication, OpenInvoice
)
from circuito.modules.receipts.models import (
    Receipt, ReceiptInvoiceApplication, ReceiptPaymentMethod, ReceiptWithholdingGroup, ReceiptWithholdingLine
)
from circuito.modules.receipts.reconciliation import (
    PaymentLine, PaymentType, ReceiptSnapshot, compute_balance, draft_errors, valid_payment_lines
)
from circuito.modules.receipts.schemas import ReceiptBase, ReceiptCreate, ReceiptUpdate
from circuito.modules.receipts.transitions import RECEIPT_GRAPH, ReceiptStatus
from circuito.modules.receipts.withholdings import (
    WithholdingError, WithholdingGroup, WithholdingGroupType, WithholdingLine, WithholdingSummary,
    normalize_withholding_groups
)
from circuito.modules.treasury.models import TreasuryAccount
from circuito.modules.workflow.exceptions import WorkflowError
from circuito.modules.workflow.machine import TransitionContext
from circuito.modules.workflow.models import DocumentType
from circuito.modules.workflow.service import WorkflowService, http_error_from_workflow

logger = logging.getLogger(__name__)


def _open_invoice(invoice: Invoice) -> OpenInvoice:
    remaining = ZERO if invoice.status in CLOSED_STATUSES else to_money(invoice.remaining_balance)
    return OpenInvoice(
        invoice_id=str(invoice.id),
        invoice_total=to_money(invoice.total),
        remaining_balance=remaining,
        currency=invoice.currency,
        invoice_number=invoice.invoice_number,
    )


class ReceiptService:
    def __init__(self, db: Session):
        self.db = db
        self.workflow = WorkflowService(db)
        self.invoices = InvoiceService(db)

    # ===== CONSULTAS =====

    def get_receipt(self, receipt_id: UUID) -> Receipt:
        receipt = self.db.query(Receipt).options(
            selectinload(Receipt.invoice_applications),
            selectinload(Receipt.withholding_groups).selectinload(ReceiptWithholdingGroup.lines),
            selectinload(Receipt.payment_methods),
        ).filter(Receipt.id == receipt_id).first()
        if not receipt:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Recibo no encontrado"
            )
        return receipt

    def get_receipts(self, customer_id: Optional[UUID] = None, status_filter: Optional[ReceiptStatus] = None,
                     limit: int = 100, offset: int = 0) -> List[Receipt]:
        query = self.db.query(Receipt)
        if customer_id:
            query = query.filter(Receipt.customer_id == customer_id)
        if status_filter:
            query = query.filter(Receipt.status == status_filter)
        return query.order_by(Receipt.date.desc(), Receipt.receipt_number.desc()).offset(offset).limit(limit).all()

    def get_status_history(self, receipt_id: UUID):
        receipt = self.get_receipt(receipt_id)
        return self.workflow.history(DocumentType.RECEIPT, receipt.id)

    def get_pending_invoices(self, customer_id: UUID) -> List[dict]:
        """Facturas del cliente con saldo, para elegir en el formulario de cobro"""
        return [
            {
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "invoice_type": invoice.invoice_type,
                "issue_date": invoice.issue_date,
                "due_date": invoice.due_date,
                "currency": invoice.currency,
                "invoice_total": to_money(invoice.total),
                "remaining_balance": to_money(invoice.remaining_balance),
            }
            for invoice in self.invoices.get_open_invoices(customer_id)
        ]

    # ===== ARMADO DEL RECIBO =====

    def _collect_applications(self, data: ReceiptBase, errors: List[str]) -> List[InvoiceApplication]:
        """
        Valida las facturas pedidas y arma la imputación.

        Cada importe se acepta hasta el saldo más la tolerancia de guardado, y
        luego queda acotado al saldo.
        """
        requested = [(str(a.invoice_id), a.applied_amount) for a in data.invoice_applications]
        ids = [invoice_id for invoice_id, _ in requested]
        if len(set(ids)) != len(ids):
            errors.append("Una factura no puede imputarse dos veces en el mismo recibo")
            return []
        if not requested:
            return []

        invoices = self.db.query(Invoice).filter(Invoice.id.in_([UUID(i) for i in ids])).all()
        by_id: Dict[str, Invoice] = {str(invoice.id): invoice for invoice in invoices}

        accepted: List[Tuple[str, Decimal]] = []
        for invoice_id, amount in requested:
            invoice = by_id.get(invoice_id)
            if invoice is None:
                errors.append(f"Factura {invoice_id} no encontrada")
                continue
            if data.customer_id and invoice.customer_id != data.customer_id:
                errors.append(f"La factura {invoice.invoice_number} no pertenece al cliente")
                continue
            if invoice.status in CLOSED_STATUSES:
                errors.append(f"La factura {invoice.invoice_number} está {invoice.status.value} y no admite cobros")
                continue
            remaining = to_money(invoice.remaining_balance)
            if to_money(amount) > remaining + settings.PERSISTED_AMOUNT_TOLERANCE:
                errors.append(
                    f"El importe aplicado a la factura {invoice.invoice_number} ({to_money(amount)}) "
                    f"supera su saldo ({remaining})"
                )
                continue
            accepted.append((invoice_id, amount))

        try:
            allocation = InvoiceAllocation.from_requests(
                [_open_invoice(invoice) for invoice in invoices], accepted
            )
        except AllocationError as e:
            errors.append(str(e))
            return []
        return allocation.applications

    def _collect_withholdings(self, data: ReceiptBase, errors: List[str]) -> WithholdingSummary:
        try:
            return normalize_withholding_groups([group.model_dump() for group in data.withholding_groups])
        except WithholdingError as e:
            errors.append(str(e))
            return WithholdingSummary()

    def _collect_payments(self, data: ReceiptBase, errors: List[str]) -> List[PaymentLine]:
        lines = [
            PaymentLine(
                treasury_account_id=str(p.treasury_account_id) if p.treasury_account_id else None,
                payment_type=p.payment_type,
                amount=p.amount,
                check_number=p.check_number,
                check_date=p.check_date,
                check_bank=p.check_bank,
                reference=p.reference,
                notes=p.notes,
            )
            for p in data.payment_methods
        ]
        valid = valid_payment_lines(lines)

        account_ids = {UUID(line.treasury_account_id) for line in valid}
        if account_ids:
            accounts = self.db.query(TreasuryAccount).filter(TreasuryAccount.id.in_(account_ids)).all()
            by_id = {account.id: account for account in accounts}
            for account_id in account_ids:
                account = by_id.get(account_id)
                if account is None:
                    errors.append(f"Cuenta de tesorería {account_id} no encontrada")
                elif not account.is_active:
                    errors.append(f"La cuenta de tesorería {account.name} está inactiva")
        return valid

    def _prepare(self, data: ReceiptBase) -> Tuple[ReceiptSnapshot, List[str]]:
        """Arma la foto del recibo y junta todos los errores de validación."""
        errors: List[str] = []
        if data.customer_id:
            customer = self.db.query(Customer).filter(Customer.id == data.customer_id).first()
            if customer is None:
                errors.append("Cliente no encontrado")

        snapshot = ReceiptSnapshot(
            customer_id=str(data.customer_id) if data.customer_id else None,
            date=data.date,
            applications=tuple(self._collect_applications(data, errors)),
            withholdings=self._collect_withholdings(data, errors),
            payment_lines=tuple(self._collect_payments(data, errors)),
            currency=data.currency,
        )
        errors.extend(draft_errors(snapshot))
        return snapshot, errors

    def _validated_snapshot(self, data: ReceiptBase) -> ReceiptSnapshot:
        snapshot, errors = self._prepare(data)
        if errors:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "invalid_receipt", "errors": errors}
            )
        return snapshot

    def _write_lines(self, receipt: Receipt, snapshot: ReceiptSnapshot) -> None:
        """Reemplaza las líneas del recibo y recalcula los totales guardados."""
        receipt.invoice_applications = [
            ReceiptInvoiceApplication(
                invoice_id=UUID(a.invoice_id),
                invoice_total=a.invoice_total,
                remaining_balance=a.remaining_balance,
                applied_amount=a.applied_amount,
            )
            for a in snapshot.applications
        ]
        receipt.withholding_groups = [
            ReceiptWithholdingGroup(
                group_type=group.group_type,
                total_amount=group.total_amount,
                lines=[
                    ReceiptWithholdingLine(
                        position=position,
                        withholding_type=line.withholding_type,
                        jurisdiction_label=line.jurisdiction_label,
                        certificate_number=line.certificate_number,
                        amount=line.amount,
                    )
                    for position, line in enumerate(group.lines)
                ],
            )
            for group in snapshot.withholdings.groups
        ]
        receipt.payment_methods = [
            ReceiptPaymentMethod(
                treasury_account_id=UUID(line.treasury_account_id),
                payment_type=line.payment_type,
                amount=line.money,
                check_number=line.check_number if line.payment_type == PaymentType.CHEQUE else None,
                check_date=line.check_date if line.payment_type == PaymentType.CHEQUE else None,
                check_bank=line.check_bank if line.payment_type == PaymentType.CHEQUE else None,
                reference=line.reference,
                notes=line.notes,
            )
            for line in snapshot.payment_lines
        ]

        balance = compute_balance(snapshot)
        receipt.total_applied = balance.total_applied
        receipt.total_withholdings = balance.total_withholdings
        receipt.total_to_collect = balance.total_to_collect
        receipt.total_collected = balance.total_collected

    def _snapshot_from_receipt(self, receipt: Receipt) -> ReceiptSnapshot:
        """Foto de un recibo guardado, contra los saldos actuales de sus facturas."""
        applications = []
        for a in receipt.invoice_applications:
            current = _open_invoice(a.invoice)
            applications.append(InvoiceApplication(
                invoice_id=str(a.invoice_id),
                invoice_total=to_money(a.invoice_total),
                remaining_balance=current.remaining_balance,
                applied_amount=to_money(a.applied_amount),
                currency=current.currency,
                invoice_number=current.invoice_number,
            ))

        withholdings = WithholdingSummary(groups=tuple(
            WithholdingGroup(
                WithholdingGroupType(group.group_type),
                tuple(
                    WithholdingLine(
                        withholding_type=line.withholding_type,
                        amount=to_money(line.amount),
                        jurisdiction_label=line.jurisdiction_label,
                        certificate_number=line.certificate_number,
                    )
                    for line in group.lines
                ),
            )
            for group in receipt.withholding_groups
        ))

        payments = tuple(
            PaymentLine(
                treasury_account_id=str(p.treasury_account_id),
                payment_type=p.payment_type,
                amount=p.amount,
                check_number=p.check_number,
                check_date=p.check_date,
                check_bank=p.check_bank,
                reference=p.reference,
                notes=p.notes,
            )
            for p in receipt.payment_methods
        )

        return ReceiptSnapshot(
            customer_id=str(receipt.customer_id),
            date=receipt.date,
            applications=tuple(applications),
            withholdings=withholdings,
            payment_lines=payments,
            currency=receipt.currency,
        )

    def _result(self, receipt: Receipt, warnings: Optional[List[str]] = None) -> dict:
        return {
            "receipt": receipt,
            "balance": asdict(compute_balance(self._snapshot_from_receipt(receipt))),
            "linked_documents_to_clear": [],
            "warnings": warnings or [],
        }

    # ===== PREVIEW =====

    def preview_balance(self, data: ReceiptBase) -> dict:
        """Calcula el cuadre de un recibo sin guardarlo."""
        snapshot, errors = self._prepare(data)
        return {"balance": asdict(compute_balance(snapshot)), "errors": errors}

    # ===== ALTA / EDICIÓN =====

    def create_receipt(self, data: ReceiptCreate, auth_context: AuthContext) -> dict:
        """
        Crea el recibo en BORRADOR.

        Con `approve=True` intenta aprobarlo después de guardarlo; si la
        aprobación falla el borrador queda guardado y el error vuelve como
        warning.
        """
        if data.approve and auth_context.user_role not in APPROVER_ROLES:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Se requiere uno de estos roles para aprobar: {', '.join(APPROVER_ROLES)}"
            )

        try:
            snapshot = self._validated_snapshot(data)
            point_of_sale = data.point_of_sale or settings.DEFAULT_POINT_OF_SALE

            receipt = Receipt(
                receipt_number=next_document_number(self.db, Receipt.receipt_number, point_of_sale),
                customer_id=data.customer_id,
                date=data.date,
                currency=data.currency,
                notes=data.notes,
                created_by=auth_context.actor,
                status=RECEIPT_GRAPH.initial,
            )
            self._write_lines(receipt, snapshot)
            self.db.add(receipt)
            self.db.commit()
            self.db.refresh(receipt)
            logger.info(f"Recibo {receipt.receipt_number} creado en borrador por {auth_context.actor}")

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando recibo: {str(e)}"
            )

        if not data.approve:
            return self._result(receipt)

        try:
            return self.approve_receipt(receipt.id, auth_context)
        except HTTPException as e:
            message = e.detail.get("message") if isinstance(e.detail, dict) else e.detail
            logger.info(f"Recibo {receipt.receipt_number} guardado sin aprobar: {message}")
            receipt = self.get_receipt(receipt.id)
            return self._result(receipt, [
                f"El recibo {receipt.receipt_number} ({receipt.id}) se guardó como borrador "
                f"pero no se pudo aprobar: {message}"
            ])

    def update_receipt(self, receipt_id: UUID, data: ReceiptUpdate, auth_context: AuthContext) -> dict:
        try:
            receipt = self.get_receipt(receipt_id)
            if receipt.status != ReceiptStatus.BORRADOR:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Solo se pueden editar recibos en borrador"
                )

            snapshot = self._validated_snapshot(data)
            receipt.customer_id = data.customer_id
            receipt.date = data.date
            receipt.currency = data.currency
            receipt.notes = data.notes
            self._write_lines(receipt, snapshot)

            self.db.commit()
            self.db.refresh(receipt)
            return self._result(receipt)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando recibo: {str(e)}"
            )

    # ===== CAMBIOS DE ESTADO =====

    def approve_receipt(self, receipt_id: UUID, auth_context: AuthContext) -> dict:
        """
        BORRADOR -> APROBADO.

        Estado, historial, asiento, imputación en facturas y saldo del cliente
        se confirman en un solo commit. El mail de confirmación sale después.
        """
        try:
            receipt = self.get_receipt(receipt_id)
            snapshot = self._snapshot_from_receipt(receipt)

            try:
                outcome = self.workflow.apply(receipt, RECEIPT_GRAPH, ReceiptStatus.APROBADO, TransitionContext(
                    changed_by=auth_context.actor,
                    payload={"receipt": snapshot, "epsilon": settings.BALANCE_EPSILON},
                ))
            except WorkflowError as e:
                logger.info(f"Aprobación rechazada del recibo {receipt.receipt_number}: {e.message}")
                raise http_error_from_workflow(e)

            accounts = {
                account.id: account
                for account in self.db.query(TreasuryAccount).filter(
                    TreasuryAccount.id.in_([p.treasury_account_id for p in receipt.payment_methods])
                ).all()
            }
            try:
                lines = build_receipt_journal_lines(
                    receipt.receipt_number,
                    receipt.total_applied,
                    [
                        CollectionLine(
                            account_code=accounts[p.treasury_account_id].account_code,
                            account_name=accounts[p.treasury_account_id].name,
                            payment_type=p.payment_type.value,
                            amount=to_money(p.amount),
                        )
                        for p in receipt.payment_methods
                    ],
                    snapshot.withholdings,
                )
            except UnbalancedJournalError as e:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail={"code": "unbalanced_journal", "message": str(e)}
                )

            entry = AccountingService(self.db).post_entry(
                entry_date=receipt.date,
                description=f"REC {receipt.receipt_number} - {receipt.customer.name}",
                reference=receipt.receipt_number,
                lines=lines,
                created_by=auth_context.actor,
            )
            receipt.journal_entry_id = entry.id

            for application in receipt.invoice_applications:
                self.invoices.register_collection(application.invoice, application.applied_amount)
            receipt.customer.balance = to_money(receipt.customer.balance) - to_money(receipt.total_applied)

            receipt.approved_by = auth_context.actor
            receipt.approved_at = outcome.entry.timestamp

            self.db.commit()
            self.db.refresh(receipt)
            logger.info(f"Recibo {receipt.receipt_number} aprobado por {auth_context.actor}")

            warnings = []
            warning = dispatch_after_commit(send_receipt_confirmation_task, str(receipt.id))
            if warning:
                warnings.append(warning)
            return self._result(receipt, warnings)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error aprobando recibo: {str(e)}"
            )

    def void_receipt(self, receipt_id: UUID, reason: str, auth_context: AuthContext) -> dict:
        try:
            receipt = self.get_receipt(receipt_id)
            try:
                self.workflow.apply(receipt, RECEIPT_GRAPH, ReceiptStatus.ANULADO, TransitionContext(
                    changed_by=auth_context.actor,
                    reason=reason,
                    notes=reason,
                ))
            except WorkflowError as e:
                logger.info(f"Anulación rechazada del recibo {receipt.receipt_number}: {e.message}")
                raise http_error_from_workflow(e)

            self.db.commit()
            self.db.refresh(receipt)
            return self._result(receipt)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error anulando recibo: {str(e)}"
            )
