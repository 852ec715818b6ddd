"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before each test and
dropped after it, so no test data persists.

Services commit their own units of work, so tests can open a
second session (session_factory) to act as a concurrent caller.
"""

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from gst_billing.main import app
from gst_billing.models import Company, Customer, Product, Shipment, ShipmentItem
from gst_billing.models.base import Base, get_db
from gst_billing.schemas.invoice import DraftInvoiceCreate
from gst_billing.services.invoice_service import InvoiceService


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    This ensures each test starts with a clean database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def session_factory():
    """
    Open extra sessions, each acting as a separate caller.

    All sessions are closed when the test ends.
    """
    sessions = []

    def make_session():
        session = TestSessionLocal()
        sessions.append(session)
        return session

    yield make_session

    for session in sessions:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Collaborator data ---

@pytest.fixture
def company(db_session):
    company = Company(
        name="Shree Ganesh Textiles",
        gstin="27AAPFS1234K1Z5",
        state="Maharashtra",
    )
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def tenant_id(company):
    return company.id


@pytest.fixture
def headers(tenant_id):
    return {"X-Tenant-ID": str(tenant_id), "X-User-ID": "accountant-1"}


@pytest.fixture
def customer(db_session, tenant_id):
    """Registered buyer in the company's own state."""
    customer = Customer(
        tenant_id=tenant_id,
        name="Bharat Garments",
        gstin="27AABCB5678L1Z2",
        state="Maharashtra",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def interstate_customer(db_session, tenant_id):
    """Unregistered buyer in another state."""
    customer = Customer(
        tenant_id=tenant_id,
        name="Kaveri Fabrics",
        gstin=None,
        state="Karnataka",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def product(db_session, tenant_id):
    """Sells at 1000, costs 600; 18% GST via the default rate."""
    product = Product(
        tenant_id=tenant_id,
        name="Cotton Bale",
        hsn_code="5201",
        cost_price=Decimal("600.00"),
        selling_price=Decimal("1000.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def make_product(db_session, tenant_id):
    def _make(name="Polyester Roll", selling_price=None, cost_price=None, hsn_code="5402"):
        product = Product(
            tenant_id=tenant_id,
            name=name,
            hsn_code=hsn_code,
            cost_price=cost_price,
            selling_price=selling_price,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_shipment(db_session, tenant_id):
    """
    Build a shipment from (product, quantity[, discount]) tuples.

    Pass customer=None for a shipment with no customer assigned.
    """
    counter = {"n": 0}

    def _make(customer, items, shipment_date=None):
        counter["n"] += 1
        shipment = Shipment(
            tenant_id=tenant_id,
            shipment_number=f"GD-2025-10-{counter['n']:05d}",
            shipment_date=shipment_date or date(2025, 10, 1),
            customer_id=customer.id if customer else None,
        )
        db_session.add(shipment)
        db_session.flush()
        for item in items:
            product, quantity = item[0], item[1]
            discount = item[2] if len(item) > 2 else Decimal("0.00")
            db_session.add(
                ShipmentItem(
                    shipment_id=shipment.id,
                    product_id=product.id,
                    quantity=Decimal(str(quantity)),
                    discount_amount=Decimal(str(discount)),
                )
            )
        db_session.commit()
        return shipment

    return _make


@pytest.fixture
def shipment(make_shipment, customer, product):
    """One cotton bale to an intra-state customer: 1000 + 18% = 1180."""
    return make_shipment(customer, [(product, 1)])


@pytest.fixture
def make_invoice(db_session, tenant_id, make_shipment, customer, product):
    """
    Bill and finalize a shipment.

    Defaults to one cotton bale for the intra-state customer (1180).
    """
    def _make(items=None, buyer=None, adjustment=Decimal("0.00"), finalize=True):
        shipment = make_shipment(buyer or customer, items or [(product, 1)])
        service = InvoiceService(db_session, tenant_id)
        invoice = service.create_draft(DraftInvoiceCreate(
            shipment_id=shipment.id,
            invoice_date=date(2025, 10, 11),
            adjustment_amount=adjustment,
        ))
        if finalize:
            invoice = service.finalize(invoice.id, finalized_by="accountant-1")
        return invoice

    return _make
