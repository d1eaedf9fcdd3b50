from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from circuito.database.database import get_db
from circuito.modules.auth.dependencies import AuthDependencies, SALES_ROLES
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.customers.schemas import CustomerCreate, CustomerOut, CustomerSummary, CustomerUpdate
from circuito.modules.customers.service import CustomerService
from circuito.modules.integrations.dependencies import get_credit_bureau
from circuito.modules.integrations.ports import CreditBureau

customers_router = APIRouter(prefix="/customers", tags=["Customers"])


@customers_router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    data: CustomerCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(SALES_ROLES))
):
    return CustomerService(db).create_customer(data)


@customers_router.get("/", response_model=List[CustomerOut])
def list_customers(
    search: Optional[str] = Query(None, description="Nombre, razón social o CUIT"),
    active_only: bool = Query(True),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return CustomerService(db).get_customers(search, active_only, limit, offset)


@customers_router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return CustomerService(db).get_customer(customer_id)


@customers_router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: UUID,
    data: CustomerUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(SALES_ROLES))
):
    return CustomerService(db).update_customer(customer_id, data)


@customers_router.get("/{customer_id}/summary", response_model=CustomerSummary)
def get_customer_summary(
    customer_id: UUID,
    include_credit_report: bool = Query(False, description="Consultar la Central de Deudores del BCRA"),
    db: Session = Depends(get_db),
    credit_bureau: CreditBureau = Depends(get_credit_bureau),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Saldo de cuenta corriente, facturas abiertas y recibos en borrador.

    La situación crediticia es solo informativa y no bloquea ninguna operación.
    """
    return CustomerService(db).get_summary(customer_id, credit_bureau if include_credit_report else None)
