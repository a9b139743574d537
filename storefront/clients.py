"""
This module provides the HTTP clients for the remote catalog/payment gateway:
- Products (CRUD and stock reduction)
- Categories
- Payment modes (CRUD and activation toggle)
- Payments (create, lookup, status update, aggregates)
- Dashboard statistics
All clients share one httpx.AsyncClient owned by the Gateway facade, which
encapsulates connection management and translates HTTP failures into GatewayError.
"""

import logging
import os
from decimal import Decimal
from typing import List, Optional

import httpx

from .errors import GatewayError
from .models import (
    Category,
    CheckoutRequest,
    DashboardStats,
    PaymentMode,
    PaymentModeInput,
    PaymentRecord,
    PaymentStatus,
    Product,
    ProductInput,
)

# Gateway-Adresse und Verbindungsparameter (aus Env Vars)
GATEWAY_BASE_URL = os.environ.get("GATEWAY_BASE_URL", "http://localhost:8080/api")
GATEWAY_WITH_CREDENTIALS = os.environ.get("GATEWAY_WITH_CREDENTIALS", "true").lower() == "true"
GATEWAY_CONNECT_TIMEOUT = float(os.environ.get("GATEWAY_CONNECT_TIMEOUT", "5.0"))
GATEWAY_READ_TIMEOUT = float(os.environ.get("GATEWAY_READ_TIMEOUT", "8.0"))

INVALID_RESPONSE = "Invalid gateway response"

log = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    """Extracts the gateway's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
    return response.reason_phrase


class Gateway:
    """
    Facade over the remote gateway.

    Holds the shared httpx.AsyncClient and exposes one typed client per resource.
    """
    def __init__(self, base_url: str = GATEWAY_BASE_URL, transport: Optional[httpx.AsyncBaseTransport] = None,
                 with_credentials: bool = GATEWAY_WITH_CREDENTIALS, cookies=None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Gateway base address, e.g. 'http://localhost:8080/api'.
            transport (httpx.AsyncBaseTransport | None): Custom transport (tests, ASGI apps).
            with_credentials (bool): Forward session cookies to the gateway.
            cookies: Cookies to forward when `with_credentials` is set.
        """
        timeout_config = httpx.Timeout(GATEWAY_CONNECT_TIMEOUT, read=GATEWAY_READ_TIMEOUT)
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_config,
            transport=transport,
            headers={"Content-Type": "application/json"},
            cookies=cookies if with_credentials else None,
        )
        self.products = ProductClient(self)
        self.categories = CategoryClient(self)
        self.payment_modes = PaymentModeClient(self)
        self.payments = PaymentClient(self)
        self.dashboard = DashboardClient(self)

    async def close(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def request(self, method: str, path: str, **kwargs):
        """
        Sends a request to the gateway and returns the decoded JSON body.

        Returns:
            The decoded JSON body, or None for empty responses.
        Raises:
            GatewayError: If the gateway returns a 4xx/5xx status or cannot be reached.
        """
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()  # Löst HTTPStatusError bei 4xx/5xx aus
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            if e.response.status_code < 500:
                log.warning(f"{method} {path} abgelehnt (HTTP {e.response.status_code}): {detail}")
            else:
                log.error(f"{method} {path} HTTP-Fehler beim Gateway (HTTP {e.response.status_code}): {detail}")
            raise GatewayError(e.response.status_code, detail) from e
        except httpx.TimeoutException as e:
            log.error(f"{method} {path} Gateway Timeout ({type(e).__name__}). Status unbekannt.")
            raise GatewayError(None, "Gateway did not respond in time") from e
        except httpx.RequestError as e:
            log.error(f"{method} {path} Gateway nicht erreichbar: {e}")
            raise GatewayError(None, "Gateway is unreachable. Please ensure the backend is running.") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            log.error(f"{method} {path} Antwort ist kein JSON: {e}")
            raise GatewayError(None, INVALID_RESPONSE) from e


def _validated(parse, data, method: str, path: str):
    """Turns a 2xx body that does not match the expected shape into a GatewayError."""
    try:
        return parse(data)
    except (TypeError, ValueError, ArithmeticError) as e:
        log.error(f"{method} {path} Ungültige Gateway-Antwort: {e}")
        raise GatewayError(None, INVALID_RESPONSE) from e


class _ResourceClient:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    async def _call(self, method: str, path: str, **kwargs):
        return await self.gateway.request(method, path, **kwargs)

    async def _one(self, model, method: str, path: str, **kwargs):
        data = await self._call(method, path, **kwargs)
        return _validated(model.model_validate, data, method, path)

    async def _many(self, model, method: str, path: str, **kwargs):
        data = await self._call(method, path, **kwargs)
        return _validated(lambda items: [model.model_validate(i) for i in items], data, method, path)


# --- Products ---
class ProductClient(_ResourceClient):
    """Client for `/products`."""

    async def list(self) -> List[Product]:
        return await self._many(Product, "GET", "/products")

    async def get(self, product_id: int) -> Product:
        return await self._one(Product, "GET", f"/products/{product_id}")

    async def create(self, product: ProductInput) -> Product:
        return await self._one(Product, "POST", "/products", json=product.model_dump(mode="json"))

    async def update(self, product_id: int, product: ProductInput) -> Product:
        return await self._one(Product, "PUT", f"/products/{product_id}", json=product.model_dump(mode="json"))

    async def delete(self, product_id: int):
        await self._call("DELETE", f"/products/{product_id}")

    async def reduce_stock(self, product_id: int, quantity: int) -> Product:
        """
        Reduces the stock of a product after a purchase.
        Args:
            product_id (int): Product to update.
            quantity (int): Units sold.
        Returns:
            Product: The product with its updated stock.
        Raises:
            GatewayError: If the product is unknown, the stock is insufficient
                or the gateway answers with something that is not a product.
        """
        return await self._one(Product, "PATCH", f"/products/{product_id}/reduce-stock", json={"quantity": quantity})


# --- Categories ---
class CategoryClient(_ResourceClient):
    """Client for `/categories`."""

    async def list(self) -> List[Category]:
        return await self._many(Category, "GET", "/categories")


# --- Payment modes ---
class PaymentModeClient(_ResourceClient):
    """Client for `/payment-modes`."""

    async def list(self) -> List[PaymentMode]:
        return await self._many(PaymentMode, "GET", "/payment-modes")

    async def list_active(self) -> List[PaymentMode]:
        return await self._many(PaymentMode, "GET", "/payment-modes/active")

    async def get(self, mode_id: int) -> PaymentMode:
        return await self._one(PaymentMode, "GET", f"/payment-modes/{mode_id}")

    async def create(self, mode: PaymentModeInput) -> PaymentMode:
        return await self._one(PaymentMode, "POST", "/payment-modes", json=mode.model_dump())

    async def update(self, mode_id: int, mode: PaymentModeInput) -> PaymentMode:
        return await self._one(PaymentMode, "PUT", f"/payment-modes/{mode_id}", json=mode.model_dump())

    async def toggle_active(self, mode_id: int):
        await self._call("PATCH", f"/payment-modes/{mode_id}/toggle-active")

    async def delete(self, mode_id: int):
        await self._call("DELETE", f"/payment-modes/{mode_id}")


# --- Payments ---
class PaymentClient(_ResourceClient):
    """
    Client for `/payments`.
    Handles the creation of payment records and the admin lookups.
    """

    async def create(self, request: CheckoutRequest) -> PaymentRecord:
        """
        Creates a new payment record.
        Args:
            request (CheckoutRequest): Mode, amount, transaction id and remarks.
        Returns:
            PaymentRecord: The record as stored by the gateway, including its status.
        Raises:
            GatewayError: If the gateway rejects the payment, is unreachable
                or answers with something that is not a payment record.
        """
        return await self._one(PaymentRecord, "POST", "/payments", json=request.model_dump(mode="json"))

    async def list(self) -> List[PaymentRecord]:
        return await self._many(PaymentRecord, "GET", "/payments")

    async def get(self, payment_id: int) -> PaymentRecord:
        return await self._one(PaymentRecord, "GET", f"/payments/{payment_id}")

    async def get_by_transaction_id(self, transaction_id: str) -> PaymentRecord:
        return await self._one(PaymentRecord, "GET", f"/payments/transaction/{transaction_id}")

    async def list_by_status(self, status: PaymentStatus) -> List[PaymentRecord]:
        return await self._many(PaymentRecord, "GET", f"/payments/status/{PaymentStatus(status).value}")

    async def total_completed(self) -> Decimal:
        path = "/payments/total/completed"
        data = await self._call("GET", path)
        return _validated(lambda value: Decimal(str(value or 0)), data, "GET", path)

    async def count_by_status(self, status: PaymentStatus) -> int:
        path = f"/payments/count/status/{PaymentStatus(status).value}"
        data = await self._call("GET", path)
        return _validated(lambda value: int(value or 0), data, "GET", path)

    async def update_status(self, payment_id: int, status: PaymentStatus) -> PaymentRecord:
        return await self._one(PaymentRecord, "PATCH", f"/payments/{payment_id}/status",
                               json={"status": PaymentStatus(status).value})

    async def delete(self, payment_id: int):
        await self._call("DELETE", f"/payments/{payment_id}")


# --- Dashboard ---
class DashboardClient(_ResourceClient):
    """Client for `/dashboard`."""

    async def stats(self) -> DashboardStats:
        return await self._one(DashboardStats, "GET", "/dashboard")
