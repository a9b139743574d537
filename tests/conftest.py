"""
Shared fixtures: products, a scripted gateway built on httpx.MockTransport,
and a real in-memory mock gateway reached through httpx.ASGITransport.
"""

import json
from decimal import Decimal

import httpx
import pytest

from mock_services.mock_gateway import GatewayStore, create_app
from storefront.clients import Gateway
from storefront.models import Product

MODES = [
    {"id": 1, "mode": "Cash On Delivery", "isActive": True},
    {"id": 2, "mode": "UPI", "isActive": True},
    {"id": 3, "mode": "Debit/Credit Card", "isActive": True},
]


def make_product(product_id=1, name="Wireless Mouse", price="500.00", stock=5):
    return Product(id=product_id, name=name, price=Decimal(price), totalItemsInStock=stock)


class ScriptedGateway:
    """
    Records every request and answers from a small script.

    Attributes:
        calls (list): (method, path, json body) per request, in order.
        payment_status (str): Status returned for created payments.
        payment_error (tuple | None): (status_code, body) to fail payment creation with.
        failing_products (set): Product ids whose reduce-stock call fails.
        unreachable (bool): Raise a connection error on payment creation.
        malformed_payment (bool): Answer payment creation with a body that is not a payment record.
        malformed_products (set): Product ids whose reduce-stock call answers 200 with an empty body.
        crashing_products (set): Product ids whose reduce-stock call raises an unexpected error.
    """

    def __init__(self, modes=None):
        self.modes = MODES if modes is None else modes
        self.calls = []
        self.payment_status = "PENDING"
        self.payment_error = None
        self.failing_products = set()
        self.unreachable = False
        self.malformed_payment = False
        self.malformed_products = set()
        self.crashing_products = set()

    def calls_to(self, method, prefix):
        return [c for c in self.calls if c[0] == method and c[1].startswith(prefix)]

    def handler(self, request: httpx.Request):
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        if request.method == "GET" and path == "/payment-modes/active":
            return httpx.Response(200, json=[m for m in self.modes if m["isActive"]])

        if request.method == "POST" and path == "/payments":
            if self.unreachable:
                raise httpx.ConnectError("connection refused", request=request)
            if self.payment_error:
                status_code, error_body = self.payment_error
                return httpx.Response(status_code, json=error_body)
            if self.malformed_payment:
                return httpx.Response(201, json={"accepted": True})
            return httpx.Response(201, json={
                "id": 42,
                "paymentDate": "2026-10-19T10:00:00",
                "paymentMode": "UPI",
                "transactionId": body["transactionId"],
                "amount": body["amount"],
                "status": self.payment_status,
                "remarks": body["remarks"],
            })

        if request.method == "PATCH" and path.endswith("/reduce-stock"):
            product_id = int(path.split("/")[2])
            if product_id in self.failing_products:
                return httpx.Response(400, json={"message": "Insufficient stock!"})
            if product_id in self.malformed_products:
                return httpx.Response(200)
            if product_id in self.crashing_products:
                raise RuntimeError("worker crashed")
            return httpx.Response(200, json={"id": product_id, "name": f"P{product_id}", "price": 1.0,
                                             "totalItemsInStock": 0})

        return httpx.Response(404, json={"message": f"No route for {request.method} {path}"})


@pytest.fixture
def scripted():
    return ScriptedGateway()


@pytest.fixture
def scripted_gateway(scripted):
    return Gateway(base_url="http://gateway/api", transport=httpx.MockTransport(scripted.handler))


@pytest.fixture
def gateway_store():
    return GatewayStore()


@pytest.fixture
def mock_gateway(gateway_store):
    """A Gateway client wired to the in-memory mock gateway app."""
    transport = httpx.ASGITransport(app=create_app(gateway_store))
    return Gateway(base_url="http://gateway/api", transport=transport)
