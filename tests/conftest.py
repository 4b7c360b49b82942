import os
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_checkout.db"
os.environ.setdefault("DATABASE_URL", SQLALCHEMY_DATABASE_URL)

from checkout.config import Settings  # noqa: E402
from checkout.database import Base  # noqa: E402
from checkout.lifecycle import OrderLifecycle  # noqa: E402
from checkout.main import create_app  # noqa: E402
from checkout.models import PricingEntry  # noqa: E402
from checkout.notifications import NotificationDispatcher  # noqa: E402
from checkout.paypal_client import PayPalClient  # noqa: E402
from checkout.store import PaymentStatusStore  # noqa: E402

PAYPAL_BASE = "https://api-m.sandbox.paypal.com"
LOOKUP_URL = "https://translator.test/wp-json/custom/v1/entry-email/"
FILE_URL = "https://translator.test/files/entry-42.pdf"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


def capture_body(transaction_id="T-1", status="COMPLETED", kind="captures"):
    return {
        "id": "O-1",
        "status": "COMPLETED" if status == "COMPLETED" else "PENDING",
        "purchase_units": [{
            "reference_id": "default",
            "payments": {kind: [{"id": transaction_id, "status": status}]},
        }],
    }


class FakePayPal:
    """httpx.MockTransport handler standing in for PayPal and the entry lookup."""

    def __init__(self):
        self.requests = []
        self.order_status = 201
        self.order_body = {"id": "O-1", "status": "CREATED"}
        self.capture_status = 201
        self.capture_body = capture_body()
        self.verification_status = "SUCCESS"
        self.contact = {"email": "buyer@example.com", "file_url": FILE_URL}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "translator.test":
            if path.startswith("/files/"):
                return httpx.Response(200, content=b"%PDF-1.4 translated",
                                      headers={"content-type": "application/pdf"})
            return httpx.Response(200, json=self.contact)

        if path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token", "expires_in": 32400})
        if path == "/v1/identity/generate-token":
            return httpx.Response(200, json={"client_token": "client-token-1"})
        if path == "/v2/checkout/orders":
            return httpx.Response(self.order_status, json=self.order_body)
        if path.endswith("/capture"):
            return httpx.Response(self.capture_status, json=self.capture_body)
        if path == "/v1/notifications/verify-webhook-signature":
            return httpx.Response(200, json={"verification_status": self.verification_status})
        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]

    def api_calls(self):
        return [r for r in self.requests
                if r.url.host != "translator.test" and r.url.path != "/v1/oauth2/token"]


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def seed_pricing():
    def seed(secure_token="abc", entry_id=42, total_price="19.99"):
        db = TestingSessionLocal()
        db.add(PricingEntry(secure_token=secure_token, entry_id=entry_id,
                            total_price=Decimal(total_price)))
        db.commit()
        db.close()
    return seed


@pytest.fixture
def fake_paypal():
    return FakePayPal()


@pytest.fixture
def http(fake_paypal):
    with httpx.Client(transport=httpx.MockTransport(fake_paypal)) as c:
        yield c


@pytest.fixture
def paypal(http):
    return PayPalClient("client-id", "client-secret", PAYPAL_BASE, http)


@pytest.fixture
def store():
    return PaymentStatusStore(TestingSessionLocal)


@pytest.fixture
def notifier(mocker):
    return mocker.Mock(spec=NotificationDispatcher)


@pytest.fixture
def lifecycle(paypal, store, notifier):
    return OrderLifecycle(paypal, store, notifier)


@pytest.fixture
def settings():
    return Settings(
        paypal_client_id="client-id",
        paypal_client_secret="client-secret",
        paypal_base_url=PAYPAL_BASE,
        entry_lookup_url=LOOKUP_URL,
        mail_from="shop@example.com",
        seller_email="seller@example.com",
    )


@pytest.fixture
def client(settings, lifecycle):
    with TestClient(create_app(settings=settings, lifecycle=lifecycle)) as c:
        yield c
