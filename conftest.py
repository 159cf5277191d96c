"""
Fixtures compartidas para los tests.

Cada test usa su propia base SQLite en archivo (tmp_path) para que las
asignaciones de secuencia en otros hilos tengan conexiones independientes.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.database.database import Base, get_db
from app.modules.catalog.models import Item, ItemType
from app.modules.customers.models import Customer
from app.modules.invoices.tasks import InvoiceEventPublisher, get_event_publisher
from app.modules.organizations.models import Organization


class RecordingPublisher(InvoiceEventPublisher):
    """Publicador de prueba: guarda los eventos en memoria"""

    def __init__(self):
        self.events = []

    def publish_created(self, invoice):
        self.events.append(invoice.invoice_number)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'saral_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def event_publisher():
    return RecordingPublisher()


@pytest.fixture
def client(session_factory, event_publisher):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: event_publisher
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db_session):
    """Organización con sede en Maharashtra"""
    org = Organization(name="Saral Traders", gstin="27AAPFU0939F1ZV", state="Maharashtra")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def tenant_id(organization):
    return organization.id


@pytest.fixture
def headers(tenant_id):
    return {"X-Company-ID": str(tenant_id)}


@pytest.fixture
def b2b_customer(db_session, tenant_id):
    """Cliente registrado en el mismo estado"""
    customer = Customer(
        tenant_id=tenant_id,
        name="Mumbai Retail Pvt Ltd",
        gstin="27ABCDE1234F1Z0",
        gst_registration_type="regular",
        state="Maharashtra"
    )
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def b2c_customer(db_session, tenant_id):
    """Consumidor sin GSTIN en otro estado"""
    customer = Customer(
        tenant_id=tenant_id,
        name="Asha Rao",
        gst_registration_type="consumer",
        state="Karnataka"
    )
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def product(db_session, tenant_id):
    item = Item(
        tenant_id=tenant_id,
        name="Steel Bottle",
        item_type=ItemType.PRODUCT.value,
        unit_price=Decimal("100.00"),
        tax_rate=Decimal("18"),
        hsn_sac_code="7323",
        stock_quantity=Decimal("10"),
        sell_in_negative=False
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def service_item(db_session, tenant_id):
    item = Item(
        tenant_id=tenant_id,
        name="Installation",
        item_type=ItemType.SERVICE.value,
        unit_price=Decimal("50.00"),
        tax_rate=Decimal("18"),
        hsn_sac_code="9987",
        stock_quantity=Decimal("0")
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item
