"""
Fixtures compartidas para los tests de los módulos.

La configuración se fija antes de importar la aplicación: SQLite en memoria,
Celery en modo eager y sin servicios externos (email, Colppy).
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["COLPPY_ENABLED"] = "false"

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from circuito.database.database import Base, SessionLocal, sync_engine
from circuito.main import app
from circuito.modules.auth.dependencies import AuthDependencies
from circuito.modules.auth.schemas import AuthContext
from circuito.modules.customers.models import Customer
from circuito.modules.invoices.models import Invoice, InvoiceStatus
from circuito.modules.quotes.models import Quote, QuoteItem
from circuito.modules.quotes.transitions import QuoteStatus
from circuito.modules.treasury.models import TreasuryAccount


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def auth_context():
    """Usuario autenticado; los tests pueden cambiarle el rol."""
    return AuthContext(user_id="user-1", user_name="Usuario Test", user_role="ADMIN")


@pytest.fixture
def client(auth_context):
    app.dependency_overrides[AuthDependencies.get_auth_context] = lambda: auth_context
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def as_role(auth_context):
    def _as_role(role: str):
        auth_context.user_role = role
        return auth_context
    return _as_role


class UnreachableBrokerTask:
    """Tarea cuyo encolado falla como si el broker estuviera caído."""

    def __init__(self, name: str):
        self.name = name

    def apply_async(self, args=None, kwargs=None):
        raise ConnectionError("broker caído")


@pytest.fixture
def broker_down(monkeypatch):
    """Reemplaza `attr` en `module` por una tarea que no se puede encolar."""
    def _broker_down(module, attr: str) -> UnreachableBrokerTask:
        task = UnreachableBrokerTask(f"{module.__name__}.{attr}")
        monkeypatch.setattr(module, attr, task)
        return task
    return _broker_down


# ===== FACTORIES =====

@pytest.fixture
def customer_factory(db):
    counter = {"n": 0}

    def _create(**overrides) -> Customer:
        counter["n"] += 1
        data = {
            "name": f"Cliente {counter['n']}",
            "business_name": f"Cliente {counter['n']} S.A.",
            "tax_condition": "RESPONSABLE_INSCRIPTO",
            "email": None,
            "balance": Decimal("0"),
        }
        data.update(overrides)
        customer = Customer(**data)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer
    return _create


@pytest.fixture
def customer(customer_factory):
    return customer_factory(name="Ferretería Norte", cuit="30-71234567-1")


@pytest.fixture
def treasury_account(db):
    account = TreasuryAccount(name="Banco Galicia CC", account_code="111201", currency="ARS")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def quote_factory(db, customer):
    counter = {"n": 0}

    def _create(items=None, status=QuoteStatus.DRAFT, currency="ARS", valid_until=None, customer_id=None, quote_number=None) -> Quote:
        counter["n"] += 1
        items = items or [{"description": "Taladro", "quantity": 2, "unit_price": Decimal("100.00")}]
        quote = Quote(
            quote_number=quote_number or f"VAL-TEST-{counter['n']:03d}",
            customer_id=customer_id or customer.id,
            created_by="Usuario Test",
            status=status,
            currency=currency,
            valid_until=valid_until or date.today() + timedelta(days=15),
        )
        subtotal = Decimal("0")
        for position, item in enumerate(items, start=1):
            total_price = Decimal(str(item["unit_price"])) * item["quantity"]
            quote.items.append(QuoteItem(
                line_number=position,
                description=item["description"],
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                total_price=total_price,
                delivery_time=item.get("delivery_time"),
                is_alternative=item.get("is_alternative", False),
            ))
            if not item.get("is_alternative", False):
                subtotal += total_price
        quote.subtotal = subtotal
        quote.tax_amount = (subtotal * Decimal("0.21")).quantize(Decimal("0.01"))
        quote.total = quote.subtotal + quote.tax_amount
        db.add(quote)
        db.commit()
        db.refresh(quote)
        return quote
    return _create


@pytest.fixture
def invoice_factory(db, customer):
    """Factura pendiente de cobro por un total exacto, imputada al saldo del cliente."""
    counter = {"n": 0}

    def _create(total, customer_obj=None, currency="ARS") -> Invoice:
        counter["n"] += 1
        target = customer_obj or customer
        total = Decimal(str(total))
        invoice = Invoice(
            invoice_number=f"0001-{counter['n']:08d}",
            invoice_type="A",
            customer_id=target.id,
            created_by="Usuario Test",
            status=InvoiceStatus.PENDING,
            currency=currency,
            subtotal=total,
            tax_amount=Decimal("0"),
            total=total,
            paid_amount=Decimal("0"),
        )
        target.balance = Decimal(str(target.balance)) + total
        db.add(invoice)
        db.commit()
        db.refresh(invoice)
        return invoice
    return _create
