"""
mock_gateway.py — Mock Implementation of the Catalog/Payment Gateway (REST API)

This module provides a simulated gateway backend for local development and for
the storefront tests. It exposes a FastAPI application that keeps products,
categories, payment modes and payments in memory and applies the same rules as
the real backend.

Simulation Scenarios:
    • Successful payment recording (status PENDING)
    • Gateway-side decline recorded with status FAILED (transactionId starts with "DECLINE")
    • Rejected payment (HTTP 402, transactionId starts with "REJECT")
    • Inactive or unknown payment mode / non-positive amount (HTTP 400)
    • Insufficient stock on reduce-stock (HTTP 400)

Endpoints:
    /api/products, /api/categories, /api/payment-modes, /api/payments, /api/dashboard

Port:
    Default: 8080 (HTTP)
"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("mock_gateway")

DEFAULT_PAYMENT_MODES = ["Cash On Delivery", "UPI", "Debit/Credit Card", "Net Banking", "Wallet"]


class ProductBody(BaseModel):
    name: str
    price: Decimal = Field(..., ge=0)
    totalItemsInStock: int = Field(..., ge=0)
    categoryId: Optional[int] = None
    imageUrl: Optional[str] = None


class ReduceStockBody(BaseModel):
    quantity: int = Field(..., gt=0)


class PaymentModeBody(BaseModel):
    mode: str
    isActive: bool = True


class PaymentBody(BaseModel):
    """
    Represents a payment creation request payload.

    Attributes:
        paymentModeId (int): Payment mode used.
        amount (Decimal): Amount to record, must be greater than zero.
        transactionId (str | None): Transaction reference, absent for Cash On Delivery.
        remarks (str | None): Free text, delivery address for Cash On Delivery.
    """
    paymentModeId: Optional[int] = None
    amount: Optional[Decimal] = None
    transactionId: Optional[str] = None
    remarks: Optional[str] = None


class StatusBody(BaseModel):
    status: str


class GatewayStore:
    """In-memory state of the mock gateway. One instance per app."""

    def __init__(self, seed: bool = True):
        self.lock = threading.Lock()
        self.categories = {}
        self.products = {}
        self.payment_modes = {}
        self.payments = {}
        self._ids = {"category": 0, "product": 0, "mode": 0, "payment": 0}
        if seed:
            self._seed()

    def next_id(self, kind):
        self._ids[kind] += 1
        return self._ids[kind]

    def add_category(self, name, description=None):
        category = {"id": self.next_id("category"), "name": name, "description": description}
        self.categories[category["id"]] = category
        return category

    def add_product(self, name, price, stock, category_id=None, image_url=None):
        product = {
            "id": self.next_id("product"),
            "name": name,
            "price": float(price),
            "totalItemsInStock": stock,
            "category": self.categories.get(category_id),
            "imageUrl": image_url,
        }
        self.products[product["id"]] = product
        return product

    def add_payment_mode(self, mode, is_active=True):
        if any(m["mode"] == mode for m in self.payment_modes.values()):
            raise HTTPException(status_code=400, detail={"message": f"Payment mode already exists: {mode}"})
        payment_mode = {"id": self.next_id("mode"), "mode": mode, "isActive": is_active}
        self.payment_modes[payment_mode["id"]] = payment_mode
        return payment_mode

    def _seed(self):
        electronics = self.add_category("Electronics", "Gadgets and devices")
        books = self.add_category("Books", "Printed and digital books")
        self.add_category("Clothing", "Apparel")
        self.add_product("Wireless Mouse", "500.00", 25, electronics["id"])
        self.add_product("Mechanical Keyboard", "3499.00", 10, electronics["id"])
        self.add_product("Python Handbook", "799.00", 0, books["id"])
        for mode in DEFAULT_PAYMENT_MODES:
            self.add_payment_mode(mode)


def _not_found(what, key):
    return HTTPException(status_code=404, detail={"message": f"{what} not found with id: {key}"})


def _payment_status(value):
    status = value.upper()
    if status not in ("PENDING", "COMPLETED", "FAILED", "REFUNDED"):
        raise HTTPException(status_code=400, detail={"message": f"Invalid payment status: {value}"})
    return status


def create_app(store: Optional[GatewayStore] = None) -> FastAPI:
    """
    Builds a mock gateway app around `store` (a freshly seeded store by default).
    """
    store = store or GatewayStore()
    app = FastAPI(title="Mock Catalog/Payment Gateway")
    app.state.store = store
    api = APIRouter(prefix="/api")

    @app.exception_handler(HTTPException)
    async def http_error(request, exc: HTTPException):
        # Fehlertexte wie im echten Backend unter "message"
        body = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=body)

    # --- Products ---
    @api.get("/products")
    def list_products():
        return list(store.products.values())

    @api.get("/products/{product_id}")
    def get_product(product_id: int):
        if product_id not in store.products:
            raise _not_found("Product", product_id)
        return store.products[product_id]

    @api.post("/products", status_code=201)
    def create_product(body: ProductBody):
        with store.lock:
            return store.add_product(body.name, body.price, body.totalItemsInStock, body.categoryId, body.imageUrl)

    @api.put("/products/{product_id}")
    def update_product(product_id: int, body: ProductBody):
        with store.lock:
            product = store.products.get(product_id)
            if product is None:
                raise _not_found("Product", product_id)
            product.update(
                name=body.name,
                price=float(body.price),
                totalItemsInStock=body.totalItemsInStock,
                category=store.categories.get(body.categoryId),
                imageUrl=body.imageUrl,
            )
            return product

    @api.delete("/products/{product_id}", status_code=204)
    def delete_product(product_id: int):
        with store.lock:
            if store.products.pop(product_id, None) is None:
                raise _not_found("Product", product_id)

    @api.patch("/products/{product_id}/reduce-stock")
    def reduce_stock(product_id: int, body: ReduceStockBody):
        """
        Reduces the stock of a product.

        Raises:
            HTTPException(404): If the product does not exist.
            HTTPException(400): If the stock is lower than the requested quantity.
        """
        with store.lock:
            product = store.products.get(product_id)
            if product is None:
                raise _not_found("Product", product_id)
            if product["totalItemsInStock"] < body.quantity:
                log.warning(f"[GW] Lagerbestand für Produkt {product_id} unzureichend.")
                raise HTTPException(status_code=400, detail={
                    "message": f"Insufficient stock! Cannot reduce by {body.quantity}"})
            product["totalItemsInStock"] -= body.quantity
            log.info(f"[GW] Lagerbestand Produkt {product_id}: {product['totalItemsInStock']}")
            return product

    # --- Categories ---
    @api.get("/categories")
    def list_categories():
        return list(store.categories.values())

    # --- Payment modes ---
    @api.get("/payment-modes")
    def list_payment_modes():
        return list(store.payment_modes.values())

    @api.get("/payment-modes/active")
    def list_active_payment_modes():
        return [m for m in store.payment_modes.values() if m["isActive"]]

    @api.get("/payment-modes/{mode_id}")
    def get_payment_mode(mode_id: int):
        if mode_id not in store.payment_modes:
            raise _not_found("Payment mode", mode_id)
        return store.payment_modes[mode_id]

    @api.post("/payment-modes", status_code=201)
    def create_payment_mode(body: PaymentModeBody):
        with store.lock:
            return store.add_payment_mode(body.mode, body.isActive)

    @api.put("/payment-modes/{mode_id}")
    def update_payment_mode(mode_id: int, body: PaymentModeBody):
        with store.lock:
            mode = store.payment_modes.get(mode_id)
            if mode is None:
                raise _not_found("Payment mode", mode_id)
            mode.update(mode=body.mode, isActive=body.isActive)
            return mode

    @api.patch("/payment-modes/{mode_id}/toggle-active")
    def toggle_payment_mode(mode_id: int):
        with store.lock:
            mode = store.payment_modes.get(mode_id)
            if mode is None:
                raise _not_found("Payment mode", mode_id)
            mode["isActive"] = not mode["isActive"]
            return mode

    @api.delete("/payment-modes/{mode_id}", status_code=204)
    def delete_payment_mode(mode_id: int):
        with store.lock:
            store.payment_modes.pop(mode_id, None)

    # --- Payments ---
    @api.post("/payments", status_code=201)
    def create_payment(body: PaymentBody):
        """
        Records a payment.

        The outcome is simulated based on the provided `transactionId`:
            - Starts with "REJECT" → Payment rejected (HTTP 402)
            - Starts with "DECLINE" → Recorded with status FAILED
            - Anything else → Recorded with status PENDING
        """
        log.info(f"[GW] Zahlungsanfrage über {body.amount} (TxID: {body.transactionId})")
        mode = store.payment_modes.get(body.paymentModeId)
        if mode is None:
            raise _not_found("Payment mode", body.paymentModeId)
        if not mode["isActive"]:
            raise HTTPException(status_code=400, detail={"message": f"Payment mode is not active: {mode['mode']}"})
        if body.amount is None or body.amount <= 0:
            raise HTTPException(status_code=400, detail={"message": "Amount must be greater than zero"})

        transaction_id = body.transactionId or ""
        if transaction_id.startswith("REJECT"):
            log.warning(f"[GW] Zahlung {transaction_id} abgelehnt.")
            raise HTTPException(status_code=402, detail={"message": "Payment declined by the bank"})

        with store.lock:
            payment = {
                "id": store.next_id("payment"),
                "paymentDate": datetime.now().isoformat(),
                "paymentMode": mode["mode"],
                "transactionId": body.transactionId,
                "amount": float(body.amount),
                "status": "FAILED" if transaction_id.startswith("DECLINE") else "PENDING",
                "remarks": body.remarks,
            }
            store.payments[payment["id"]] = payment
        log.info(f"[GW] Zahlung {payment['id']} erfasst (Status: {payment['status']}).")
        return payment

    @api.get("/payments")
    def list_payments():
        return list(store.payments.values())

    @api.get("/payments/transaction/{transaction_id}")
    def get_payment_by_transaction(transaction_id: str):
        for payment in store.payments.values():
            if payment["transactionId"] == transaction_id:
                return payment
        raise HTTPException(status_code=404, detail={
            "message": f"Payment not found with transaction id: {transaction_id}"})

    @api.get("/payments/status/{status}")
    def list_payments_by_status(status: str):
        wanted = _payment_status(status)
        return [p for p in store.payments.values() if p["status"] == wanted]

    @api.get("/payments/total/completed")
    def total_completed():
        return sum(p["amount"] for p in store.payments.values() if p["status"] == "COMPLETED")

    @api.get("/payments/count/status/{status}")
    def count_by_status(status: str):
        wanted = _payment_status(status)
        return sum(1 for p in store.payments.values() if p["status"] == wanted)

    @api.get("/payments/{payment_id}")
    def get_payment(payment_id: int):
        if payment_id not in store.payments:
            raise _not_found("Payment", payment_id)
        return store.payments[payment_id]

    @api.patch("/payments/{payment_id}/status")
    def update_payment_status(payment_id: int, body: StatusBody):
        with store.lock:
            payment = store.payments.get(payment_id)
            if payment is None:
                raise _not_found("Payment", payment_id)
            payment["status"] = _payment_status(body.status)
            return payment

    @api.delete("/payments/{payment_id}", status_code=204)
    def delete_payment(payment_id: int):
        with store.lock:
            store.payments.pop(payment_id, None)

    # --- Dashboard ---
    @api.get("/dashboard")
    def dashboard():
        products = list(store.products.values())
        recent = sorted(store.payments.values(), key=lambda p: p["paymentDate"], reverse=True)[:5]
        return {
            "totalProducts": len(products),
            "categories": list(store.categories.values()),
            "totalValue": sum(p["price"] * p["totalItemsInStock"] for p in products),
            "totalItemsInStock": sum(p["totalItemsInStock"] for p in products),
            "recentPayments": recent,
        }

    app.include_router(api)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
