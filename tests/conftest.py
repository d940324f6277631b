from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from storefront.auth import AuthWorkflow
from storefront.config import settings
from storefront.database import Base, get_db, make_engine
from storefront.errors import PaymentProviderError
from storefront.main import create_app
from storefront.models import Role
from storefront.paypal_service import PayPalService
from storefront.stripe_service import StripeService

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_storefront.db"
engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db(monkeypatch):
    # cheapest bcrypt cost, tests hash a lot of passwords
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


class FakeStripe:
    """Stands in for StripeService in workflow tests."""

    def __init__(self):
        self.status = "processing"
        self.error = None
        self.created = []
        self.retrieved = []

    def create_payment_intent(self, amount, currency, description=None, metadata=None):
        if self.error:
            raise PaymentProviderError(self.error)
        self.created.append({"amount": amount, "currency": currency, "metadata": metadata})
        n = len(self.created)
        return SimpleNamespace(id=f"pi_fake_{n}", client_secret=f"secret_{n}")

    def retrieve_payment_intent(self, payment_intent_id):
        self.retrieved.append(payment_intent_id)
        return SimpleNamespace(id=payment_intent_id, status=self.status, last_payment_error=None)


class FakePayPal:
    def __init__(self):
        self.capture_status = "COMPLETED"
        self.error = None
        self.orders = []
        self.captured = []

    def create_order(self, amount, currency, reference_id, description=None):
        if self.error:
            raise PaymentProviderError(self.error)
        self.orders.append({"amount": amount, "currency": currency, "reference_id": reference_id})
        return {"id": f"ORDER-{len(self.orders)}", "status": "CREATED"}

    def capture_order(self, order_id):
        self.captured.append(order_id)
        return {"id": order_id, "status": self.capture_status}


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def fake_paypal():
    return FakePayPal()


def make_account(db, email="user@example.com", password="secret1", full_name="Test User", role=Role.USER):
    auth = AuthWorkflow(db)
    account = auth.register(email, password, full_name)
    if role != Role.USER:
        account = auth.change_role(account.id, role)
    return account


@pytest.fixture
def user(db):
    return make_account(db)


@pytest.fixture
def other_user(db):
    return make_account(db, email="other@example.com", full_name="Other User")


@pytest.fixture
def admin(db):
    return make_account(db, email="admin@example.com", full_name="Admin", role=Role.ADMIN)


@pytest.fixture
def client():
    """HTTP client wired to real provider handles; tests patch the SDK / requests calls."""
    stripe_client = StripeService("sk_test_123", "whsec_test")
    paypal_client = PayPalService("client-id", "client-secret")
    app = create_app(settings, stripe_client=stripe_client, paypal_client=paypal_client)

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def token_for(account):
    session = TestingSessionLocal()
    try:
        return AuthWorkflow(session).issue_token(account)
    finally:
        session.close()
