import time
from decimal import Decimal

import jwt
import pytest
import requests

from storefront.app import create_app
from storefront.common.models import Product, User
from storefront.common.utils.auth import issue_admin_token
from storefront.config import StorefrontConfig


ADMIN_SECRET = "admin-secret"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeHttp:
    """Records outgoing Resend calls and serves the invoice logo."""

    def __init__(self):
        self.sent = []
        self.fail_status = None
        self.logo = None
        self.logo_content_type = "image/png"

    def post(self, url, headers=None, json=None, timeout=None):
        self.sent.append({"url": url, "headers": headers, **(json or {})})
        if self.fail_status:
            return FakeResponse(self.fail_status, {"message": "provider rejected the message"})
        return FakeResponse(200, {"id": f"msg_{len(self.sent)}"})

    def get(self, url, timeout=None, headers=None):
        if self.logo is None:
            raise requests.ConnectionError("logo host unreachable")
        return FakeResponse(200, content=self.logo, headers={"content-type": self.logo_content_type})

    def subjects(self):
        return [m["subject"] for m in self.sent]


@pytest.fixture
def config():
    return StorefrontConfig(
        database_url="sqlite://",
        secret_key="test-secret",
        admin_jwt_secret=ADMIN_SECRET,
        resend_api_key="re_test_key",
        track_miss_delay_ms=0,
    )


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def app(config, http):
    app = create_app(config, http=http)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def components(app):
    return app.extensions["storefront_components"]


@pytest.fixture
def session_factory(components):
    return components["database"].session


@pytest.fixture
def seed(session_factory):
    with session_factory() as session:
        session.add_all(
            [
                Product(id="prod-phone", name="Pixel 8", description="Android phone", price=Decimal("100.00"),
                        stock_quantity=5, in_stock=True),
                Product(id="prod-case", name="Phone Case", price=Decimal("50.00"), discount_price=Decimal("40.00"),
                        stock_quantity=1, in_stock=True),
                User(id="user-ama", email="ama@example.com", first_name="Ama", last_name="Mensah",
                     newsletter_subscribed=True),
                User(id="user-kofi", email="kofi@example.com", first_name="Kofi", last_name="Boateng",
                     newsletter_subscribed=False),
            ]
        )
    return {"phone": "prod-phone", "case": "prod-case", "subscriber": "user-ama", "unsubscribed": "user-kofi"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {issue_admin_token(ADMIN_SECRET, 'admin-1')}"}


@pytest.fixture
def customer_headers():
    now = int(time.time())
    token = jwt.encode({"sub": "user-ama", "role": "customer", "iat": now, "exp": now + 60}, ADMIN_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def stock_of(session_factory):
    def _stock(product_id):
        with session_factory() as session:
            return session.get(Product, product_id).stock_quantity

    return _stock


def build_order_payload(**overrides):
    payload = {
        "user_id": "user-ama",
        "subtotal": 200,
        "delivery_fee": 20,
        "tax": 0,
        "discount": 0,
        "total": 220,
        "payment_method": "cash_on_delivery",
        "delivery_address": {
            "recipient_name": "Ama Mensah",
            "recipient_number": "+233201234567",
            "recipient_location": "East Legon",
            "recipient_region": "Greater Accra",
            "country": "Ghana",
        },
        "order_items": [
            {"product_id": "prod-phone", "product_name": "Pixel 8", "quantity": 2, "unit_price": 100, "subtotal": 200},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def order_payload():
    return build_order_payload


@pytest.fixture
def place_order(client, seed):
    def _place(**overrides):
        response = client.post("/api/orders", json=build_order_payload(**overrides))
        assert response.status_code == 200, response.get_json()
        return response.get_json()["data"]

    return _place
