"""
Servicio de Clientes

CRUD básico y resumen de cuenta corriente. La consulta al BCRA es solo
informativa: si falla se devuelve un warning y el resumen sale igual.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from circuito.common.money import money_sum
from circuito.modules.customers.models import Customer
from circuito.modules.customers.schemas import CustomerCreate, CustomerUpdate
from circuito.modules.integrations.ports import CreditBureau, ExternalServiceError
from circuito.modules.invoices.service import InvoiceService
from circuito.modules.receipts.models import Receipt
from circuito.modules.receipts.transitions import ReceiptStatus

logger = logging.getLogger(__name__)


class CustomerService:
    """Servicio principal para gestión de clientes"""

    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cliente no encontrado"
            )
        return customer

    def get_customers(self, search: Optional[str] = None, active_only: bool = True,
                      limit: int = 100, offset: int = 0) -> List[Customer]:
        query = self.db.query(Customer)
        if active_only:
            query = query.filter(Customer.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                Customer.name.ilike(pattern) | Customer.business_name.ilike(pattern) | Customer.cuit.ilike(pattern)
            )
        return query.order_by(Customer.name.asc()).offset(offset).limit(limit).all()

    def _check_cuit_available(self, cuit: Optional[str], exclude_id: Optional[UUID] = None) -> None:
        if not cuit:
            return
        query = self.db.query(Customer).filter(Customer.cuit == cuit)
        if exclude_id:
            query = query.filter(Customer.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe un cliente con el CUIT {cuit}"
            )

    def create_customer(self, data: CustomerCreate) -> Customer:
        """Crear un nuevo cliente"""
        try:
            self._check_cuit_available(data.cuit)

            customer = Customer(
                name=data.name,
                business_name=data.business_name,
                cuit=data.cuit,
                tax_condition=data.tax_condition.value,
                email=data.email,
            )
            self.db.add(customer)
            self.db.commit()
            self.db.refresh(customer)
            logger.info(f"Cliente {customer.name} creado")
            return customer

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Error de integridad: {str(e)}"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando cliente: {str(e)}"
            )

    def update_customer(self, customer_id: UUID, data: CustomerUpdate) -> Customer:
        try:
            customer = self.get_customer(customer_id)
            changes = data.model_dump(exclude_unset=True)
            if "cuit" in changes:
                self._check_cuit_available(changes["cuit"], exclude_id=customer.id)
            if changes.get("tax_condition") is not None:
                changes["tax_condition"] = changes["tax_condition"].value

            for field, value in changes.items():
                setattr(customer, field, value)

            self.db.commit()
            self.db.refresh(customer)
            return customer

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando cliente: {str(e)}"
            )

    def get_summary(self, customer_id: UUID, credit_bureau: Optional[CreditBureau] = None) -> dict:
        customer = self.get_customer(customer_id)
        open_invoices = InvoiceService(self.db).get_open_invoices(customer.id)
        draft_receipts = self.db.query(Receipt).filter(
            Receipt.customer_id == customer.id,
            Receipt.status == ReceiptStatus.BORRADOR
        ).count()

        credit_report = None
        warnings = []
        if credit_bureau is not None and customer.cuit:
            try:
                credit_report = credit_bureau.lookup(customer.cuit)
            except ExternalServiceError as e:
                logger.warning(f"Consulta crediticia fallida para {customer.cuit}: {e}")
                warnings.append(f"No se pudo consultar la situación crediticia: {e}")

        return {
            "customer": customer,
            "open_invoices": len(open_invoices),
            "open_balance": money_sum(invoice.remaining_balance for invoice in open_invoices),
            "draft_receipts": draft_receipts,
            "credit_report": credit_report,
            "warnings": warnings,
        }
