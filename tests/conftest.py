"""
Pytest fixtures for the site builder backend.

Provides an in-memory database shared by the app and the tests, two
tenant sites with owners and customers, a recording event publisher and a
scripted payment gateway injected through dependency overrides.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

import itertools  # noqa: E402
from datetime import timedelta  # noqa: E402
from urllib.parse import urlparse  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from sitebuilder.core.auth import create_access_token  # noqa: E402
from sitebuilder.core.clock import utcnow  # noqa: E402
from sitebuilder.core.container import get_event_publisher, get_gateway_registry  # noqa: E402
from sitebuilder.core.gateway_client import (  # noqa: E402
    GatewayAdapter,
    GatewayRegistry,
    GatewayRequestResult,
    GatewayUnavailableError,
    GatewayVerifyResult,
    VirtualGatewayAdapter,
)
from sitebuilder.core.messaging import EventPublisher  # noqa: E402
from sitebuilder.database import create_db_and_tables, engine, get_session  # noqa: E402
from sitebuilder.main import app  # noqa: E402
from sitebuilder.models.enums import (  # noqa: E402
    DiscountType,
    GatewayKind,
    UserRole,
    UserType,
)
from sitebuilder.models.discount import Discount  # noqa: E402
from sitebuilder.models.payment import Gateway  # noqa: E402
from sitebuilder.models.product import Coupon, Product, ProductVariant  # noqa: E402
from sitebuilder.models.site import Address, Customer, Site  # noqa: E402
from sitebuilder.models.user import Plan, User  # noqa: E402

RETURN_URL = "https://shop.example/checkout/done"

_slugs = itertools.count(1)


class RecordingPublisher(EventPublisher):
    """Keeps published events in memory instead of talking to RabbitMQ."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def publish(self, routing_key, payload):
        self.events.append((routing_key, payload))

    def keys(self) -> list[str]:
        return [key for key, _ in self.events]

    def of(self, routing_key: str) -> list[dict]:
        return [payload for key, payload in self.events if key == routing_key]


class ScriptedGateway(GatewayAdapter):
    """
    Gateway whose answers are set by the test.

    request(): records the callback URL and returns a provider redirect,
               or raises when `fail_request` is set.
    verify(): returns `verify_result` (or raises if `fail_verify`).
    """

    def __init__(self):
        self.fail_request = False
        self.fail_verify = False
        self.verify_result = GatewayVerifyResult(success=True, transaction_code="TX-1")
        self.requests: list[dict] = []
        self.verify_calls = 0

    def request(self, amount, tracking_number, gateway, account_config, return_url, client_ip):
        if self.fail_request:
            raise GatewayUnavailableError("connection refused")
        self.requests.append(
            {
                "amount": amount,
                "tracking_number": tracking_number,
                "account_config": account_config,
                "return_url": return_url,
            }
        )
        return GatewayRequestResult(
            redirect_url=f"https://gateway.example/pay/{tracking_number}",
            provider_token=f"tok-{tracking_number}",
        )

    def verify(self, gateway, account_config, callback_params):
        self.verify_calls += 1
        if self.fail_verify:
            raise GatewayUnavailableError("timeout")
        return self.verify_result


# ---------------------------------------------------------
# Database
# ---------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def schema():
    create_db_and_tables()
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(schema):
    """Fresh database for each test; the app uses the same session."""
    with Session(engine) as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        yield session
        session.rollback()


# ---------------------------------------------------------
# Collaborators
# ---------------------------------------------------------


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def registry(gateway):
    return GatewayRegistry(
        {
            GatewayKind.ZARINPAL: gateway,
            GatewayKind.PARBAD_VIRTUAL: VirtualGatewayAdapter(),
        }
    )


@pytest.fixture
def client(session, publisher, registry):
    def _request_session():
        try:
            yield session
        finally:
            # whatever a failed request left uncommitted is discarded
            session.rollback()

    app.dependency_overrides[get_session] = _request_session
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_gateway_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------
# Tenants
# ---------------------------------------------------------


def _add(session, row):
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


@pytest.fixture
def owner_a(session):
    return _add(session, User(email="owner-a@example.com", name="Owner A"))


@pytest.fixture
def owner_b(session):
    return _add(session, User(email="owner-b@example.com", name="Owner B"))


@pytest.fixture
def admin(session):
    return _add(session, User(email="admin@example.com", name="Admin", role=UserRole.ADMIN))


@pytest.fixture
def site_a(session, owner_a):
    return _add(session, Site(user_id=owner_a.id, name="Shop A", domain="a.example.com"))


@pytest.fixture
def site_b(session, owner_b):
    return _add(session, Site(user_id=owner_b.id, name="Shop B", domain="b.example.com"))


@pytest.fixture
def customer(session, site_a):
    return _add(
        session,
        Customer(
            site_id=site_a.id,
            email="buyer@example.com",
            phone="09120000000",
            first_name="Sara",
        ),
    )


@pytest.fixture
def address(session, customer):
    return _add(
        session,
        Address(customer_id=customer.id, full_address="1 Valiasr St", city="Tehran"),
    )


@pytest.fixture
def site_gateway(session, site_a, owner_a):
    return _add(
        session,
        Gateway(
            site_id=site_a.id,
            user_id=owner_a.id,
            credentials={"zarinpal": {"merchant_id": "m-123"}, "parbad_virtual": {}},
            active_kinds=["parbad_virtual", "zarinpal"],
        ),
    )


@pytest.fixture
def plan(session):
    return _add(
        session,
        Plan(
            name="Pro",
            price=2_000_000,
            duration_days=30,
            sms_credits=100,
            email_credits=200,
            storage_mb_credits=1024,
        ),
    )


# ---------------------------------------------------------
# Catalog builders
# ---------------------------------------------------------


@pytest.fixture
def make_product(session):
    def _make(site, price=500, stock=5, slug=None, free_send=False, weight=0, **fields):
        product = _add(
            session,
            Product(
                site_id=site.id,
                user_id=site.user_id,
                name=fields.pop("name", "Cake"),
                slug=slug or f"product-{next(_slugs)}",
                free_send=free_send,
                weight=weight,
                **fields,
            ),
        )
        variant = _add(
            session,
            ProductVariant(product_id=product.id, name="default", price=price, stock=stock),
        )
        return product, variant

    return _make


@pytest.fixture
def make_coupon(session):
    def _make(product, type=DiscountType.PERCENTAGE, value=10, quantity=3, expires_in=timedelta(days=7)):
        return _add(
            session,
            Coupon(
                product_id=product.id,
                type=type,
                value=value,
                quantity=quantity,
                expiry_date=utcnow() + expires_in,
            ),
        )

    return _make


@pytest.fixture
def make_discount(session):
    def _make(site, code="SAVE", type=DiscountType.FIXED, value=100, quantity=10, expires_in=timedelta(days=7)):
        return _add(
            session,
            Discount(
                site_id=site.id,
                user_id=site.user_id,
                code=code,
                type=type,
                value=value,
                quantity=quantity,
                expiry_date=utcnow() + expires_in,
            ),
        )

    return _make


# ---------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------


def user_headers(user) -> dict:
    token = create_access_token(user.id, UserType.USER)
    return {"Authorization": f"Bearer {token}"}


def customer_headers(customer) -> dict:
    token = create_access_token(customer.id, UserType.CUSTOMER, site_id=customer.site_id)
    return {"Authorization": f"Bearer {token}"}


def callback_path(url: str) -> str:
    """Path + query of an absolute callback URL, for the TestClient."""
    parsed = urlparse(url)
    return f"{parsed.path}?{parsed.query}"
