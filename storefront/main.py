"""
main.py — FastAPI Entry Point for the Storefront

This module provides the REST API of the storefront and the admin console.
It is a thin presentation layer: catalog, payment and stock data live in the
remote gateway, the checkout sequence lives in the CheckoutOrchestrator.

Responsibilities:
    • Log users and admins in and out (explicit, token-based sessions)
    • Shop listing with search and category filter, cart management
    • Checkout: payment-mode selection, asynchronous processing, result display
    • Admin console: products, payment modes, payments and dashboard
    • Provide system health information
"""

from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import workflow
from .clients import Gateway
from .errors import (
    CartError,
    CheckoutAwaitingAcknowledgment,
    CheckoutError,
    CheckoutInProgress,
    GatewayError,
    NotAuthenticated,
    NotAuthorized,
    StockExceeded,
    StorefrontError,
)
from .logging_config import get_logger, setup_logging
from .models import (
    CartLine,
    Category,
    DashboardStats,
    Money,
    PaymentMode,
    PaymentModeInput,
    PaymentRecord,
    PaymentStatus,
    Product,
    ProductInput,
)
from .session import Role, Session, SessionStore
from .workflow import CheckoutOrchestrator, CheckoutOutcome, CheckoutState

# Initialization
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Storefront & Admin Console")
sessions = SessionStore()


# --- Request/response bodies ---
class LoginBody(BaseModel):
    username: str = Field(..., min_length=1)
    role: Role = Role.USER


class LoginResponse(BaseModel):
    token: str
    username: str
    role: Role


class AddItemBody(BaseModel):
    productId: int
    quantity: int = Field(1, gt=0)


class QuantityBody(BaseModel):
    quantity: int


class CartView(BaseModel):
    lines: List[CartLine]
    itemCount: int
    total: Money


class SelectModeBody(BaseModel):
    paymentModeId: int


class SubmitBody(BaseModel):
    address: Optional[str] = None
    transactionId: Optional[str] = None
    remarks: Optional[str] = None


class CheckoutView(BaseModel):
    state: CheckoutState
    busy: bool = False
    selectedMode: Optional[PaymentMode] = None
    transactionId: Optional[str] = None
    total: Money
    outcome: Optional[CheckoutOutcome] = None


class StatusBody(BaseModel):
    status: PaymentStatus


# --- Lifecycle ---
@app.on_event("startup")
def on_startup():
    """Creates the shared gateway client."""
    log.info("Storefront startet...")
    app.state.gateway = Gateway()


@app.on_event("shutdown")
async def on_shutdown():
    gateway = getattr(app.state, "gateway", None)
    if gateway is not None:
        await gateway.close()
    log.info("Storefront beendet.")


# --- Dependencies ---
def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def get_sessions() -> SessionStore:
    return sessions


def current_session(
        x_session_token: Optional[str] = Header(None),
        store: SessionStore = Depends(get_sessions),
) -> Session:
    return store.get(x_session_token)


def shopper(session: Session = Depends(current_session)) -> Session:
    return session.require(Role.USER)


def admin(session: Session = Depends(current_session)) -> Session:
    return session.require(Role.ADMIN)


def checkout_for(session: Session = Depends(shopper), gateway: Gateway = Depends(get_gateway)) -> CheckoutOrchestrator:
    """Returns the session's orchestrator, creating it on first use."""
    if session.checkout is None:
        session.checkout = CheckoutOrchestrator(
            session.cart,
            gateway,
            processing_delay=workflow.CHECKOUT_PROCESSING_DELAY,
            reduce_stock_on_failed_payment=workflow.REDUCE_STOCK_ON_FAILED_PAYMENT,
        )
    return session.checkout


# --- Error mapping ---
ERROR_STATUS = [
    (NotAuthenticated, 401),
    (NotAuthorized, 403),
    (CheckoutInProgress, 409),
    (CheckoutAwaitingAcknowledgment, 409),
    (StockExceeded, 409),
    (CartError, 400),
    (CheckoutError, 400),
]


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if isinstance(exc, GatewayError):
        # Gateway-Fehler werden mit Originaltext durchgereicht
        status_code = exc.status_code if exc.status_code in (400, 404, 409) else 502
        return JSONResponse(status_code=status_code, content={"message": exc.detail})
    status_code = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
    return JSONResponse(status_code=status_code, content={"message": exc.message, "error": type(exc).__name__})


# --- Session ---
@app.post("/session/login", response_model=LoginResponse)
def login(body: LoginBody, store: SessionStore = Depends(get_sessions)):
    """
    Opens a session. Credentials are verified by an external identity provider,
    so the storefront only records the user name and role.
    """
    session = store.login(body.username, body.role)
    return LoginResponse(token=session.token, username=session.username, role=session.role)


@app.post("/session/logout", status_code=204)
def logout(session: Session = Depends(current_session), store: SessionStore = Depends(get_sessions)):
    """Ends the session; the cart is cleared."""
    store.logout(session.token)


# --- Shop ---
@app.get("/shop/products", response_model=List[Product])
async def shop_products(search: Optional[str] = None, category: Optional[str] = None,
                        session: Session = Depends(shopper), gateway: Gateway = Depends(get_gateway)):
    products = await gateway.products.list()
    if category and category != "all":
        products = [p for p in products if p.category and p.category.name == category]
    if search:
        term = search.lower()
        products = [p for p in products if term in p.name.lower()]
    return products


@app.get("/shop/categories", response_model=List[str])
async def shop_categories(session: Session = Depends(shopper), gateway: Gateway = Depends(get_gateway)):
    names = []
    for product in await gateway.products.list():
        if product.category and product.category.name not in names:
            names.append(product.category.name)
    return names


@app.get("/shop/products/{product_id}", response_model=Product)
async def shop_product(product_id: int, session: Session = Depends(shopper), gateway: Gateway = Depends(get_gateway)):
    return await gateway.products.get(product_id)


# --- Cart ---
def cart_view(session: Session) -> CartView:
    return CartView(lines=session.cart.lines, itemCount=len(session.cart), total=session.cart.total())


@app.get("/cart", response_model=CartView)
def get_cart(session: Session = Depends(shopper)):
    return cart_view(session)


@app.post("/cart/items", response_model=CartView)
async def add_to_cart(body: AddItemBody, session: Session = Depends(shopper), gateway: Gateway = Depends(get_gateway)):
    product = await gateway.products.get(body.productId)
    session.cart.add_line(product, body.quantity)
    return cart_view(session)


@app.patch("/cart/items/{product_id}", response_model=CartView)
def update_cart_item(product_id: int, body: QuantityBody, session: Session = Depends(shopper)):
    line = session.cart.get(product_id)
    if line is not None and body.quantity > line.availableStock:
        raise StockExceeded(product_id, line.availableStock)
    session.cart.set_quantity(product_id, body.quantity)
    return cart_view(session)


@app.delete("/cart/items/{product_id}", response_model=CartView)
def remove_cart_item(product_id: int, session: Session = Depends(shopper)):
    session.cart.remove_line(product_id)
    return cart_view(session)


@app.post("/cart/buy-now/{product_id}", response_model=CartView)
async def buy_now(product_id: int, session: Session = Depends(shopper), gateway: Gateway = Depends(get_gateway)):
    """Replaces the cart with one unit of the product, ready for checkout."""
    session.cart.buy_now(await gateway.products.get(product_id))
    return cart_view(session)


# --- Checkout ---
def checkout_view(checkout: CheckoutOrchestrator) -> CheckoutView:
    return CheckoutView(
        state=checkout.state,
        busy=checkout.busy,
        selectedMode=checkout.selected_mode,
        transactionId=checkout.transaction_id,
        total=checkout.cart.total(),
        outcome=checkout.outcome,
    )


@app.get("/checkout/payment-modes", response_model=List[PaymentMode])
async def checkout_payment_modes(checkout: CheckoutOrchestrator = Depends(checkout_for)):
    return await checkout.load_payment_modes(refresh=True)


@app.post("/checkout/mode", response_model=CheckoutView)
async def checkout_select_mode(body: SelectModeBody, checkout: CheckoutOrchestrator = Depends(checkout_for)):
    await checkout.select_mode(body.paymentModeId)
    return checkout_view(checkout)


async def run_checkout(checkout: CheckoutOrchestrator, body: SubmitBody, reservation: str):
    """Background task wrapper around CheckoutOrchestrator.submit()."""
    try:
        await checkout.submit(address=body.address, transaction_id=body.transactionId, remarks=body.remarks,
                              reservation=reservation)
    except CheckoutError as e:
        log.warning(f"Checkout nicht gestartet: {e.message}")
    except Exception as e:
        log.critical(f"Unbekannter Fehler im Checkout: {e}", exc_info=True)
    finally:
        checkout.release(reservation)


@app.post("/checkout", status_code=202, response_model=CheckoutView)
async def checkout_submit(body: SubmitBody, background_tasks: BackgroundTasks,
                          checkout: CheckoutOrchestrator = Depends(checkout_for)):
    """
    Accepts a checkout submission and processes it in the background.

    Response code 202 (Accepted) indicates that processing has started; the
    result is polled via GET /checkout. The attempt is reserved before the
    response is sent, so a second submission is refused until it has run.

    Raises:
        CheckoutInProgress (409): If an attempt is already running or reserved.
        CheckoutAwaitingAcknowledgment (409): If the last payment was not acknowledged yet.
        EmptyCart (400): If the cart is empty.
    """
    reservation = checkout.reserve()
    background_tasks.add_task(run_checkout, checkout, body, reservation)
    return checkout_view(checkout)


@app.get("/checkout", response_model=CheckoutView)
def checkout_status(checkout: CheckoutOrchestrator = Depends(checkout_for)):
    return checkout_view(checkout)


@app.post("/checkout/acknowledge", response_model=CheckoutOutcome)
def checkout_acknowledge(checkout: CheckoutOrchestrator = Depends(checkout_for)):
    """Closes the success dialog: the cart is cleared and the shop is shown again."""
    return checkout.acknowledge()


@app.post("/checkout/reset", response_model=CheckoutView)
def checkout_reset(checkout: CheckoutOrchestrator = Depends(checkout_for)):
    checkout.reset()
    return checkout_view(checkout)


# --- Admin: products & categories ---
@app.get("/admin/products", response_model=List[Product])
async def admin_products(session: Session = Depends(admin), gateway: Gateway = Depends(get_gateway)):
    return await gateway.products.list()


@app.post("/admin/products", status_code=201, response_model=Product)
async def admin_create_product(body: ProductInput, session: Session = Depends(admin),
                               gateway: Gateway = Depends(get_gateway)):
    product = await gateway.products.create(body)
    log.info(f"[Admin: {session.username}] Produkt {product.id} angelegt.")
    return product


@app.put("/admin/products/{product_id}", response_model=Product)
async def admin_update_product(product_id: int, body: ProductInput, session: Session = Depends(admin),
                               gateway: Gateway = Depends(get_gateway)):
    return await gateway.products.update(product_id, body)


@app.delete("/admin/products/{product_id}", status_code=204)
async def admin_delete_product(product_id: int, session: Session = Depends(admin),
                               gateway: Gateway = Depends(get_gateway)):
    await gateway.products.delete(product_id)
    log.info(f"[Admin: {session.username}] Produkt {product_id} gelöscht.")


@app.get("/admin/categories", response_model=List[Category])
async def admin_categories(session: Session = Depends(admin), gateway: Gateway = Depends(get_gateway)):
    return await gateway.categories.list()


# --- Admin: payment modes ---
@app.get("/admin/payment-modes", response_model=List[PaymentMode])
async def admin_payment_modes(session: Session = Depends(admin), gateway: Gateway = Depends(get_gateway)):
    return await gateway.payment_modes.list()


@app.post("/admin/payment-modes", status_code=201, response_model=PaymentMode)
async def admin_create_payment_mode(body: PaymentModeInput, session: Session = Depends(admin),
                                    gateway: Gateway = Depends(get_gateway)):
    return await gateway.payment_modes.create(body)


@app.put("/admin/payment-modes/{mode_id}", response_model=PaymentMode)
async def admin_update_payment_mode(mode_id: int, body: PaymentModeInput, session: Session = Depends(admin),
                                    gateway: Gateway = Depends(get_gateway)):
    return await gateway.payment_modes.update(mode_id, body)


@app.patch("/admin/payment-modes/{mode_id}/toggle-active", response_model=PaymentMode)
async def admin_toggle_payment_mode(mode_id: int, session: Session = Depends(admin),
                                    gateway: Gateway = Depends(get_gateway)):
    await gateway.payment_modes.toggle_active(mode_id)
    return await gateway.payment_modes.get(mode_id)


@app.delete("/admin/payment-modes/{mode_id}", status_code=204)
async def admin_delete_payment_mode(mode_id: int, session: Session = Depends(admin),
                                    gateway: Gateway = Depends(get_gateway)):
    await gateway.payment_modes.delete(mode_id)


# --- Admin: payments ---
@app.get("/admin/payments", response_model=List[PaymentRecord])
async def admin_payments(status: Optional[PaymentStatus] = None, session: Session = Depends(admin),
                         gateway: Gateway = Depends(get_gateway)):
    if status is not None:
        return await gateway.payments.list_by_status(status)
    return await gateway.payments.list()


@app.get("/admin/payments/summary")
async def admin_payments_summary(session: Session = Depends(admin), gateway: Gateway = Depends(get_gateway)):
    counts = {status.value: await gateway.payments.count_by_status(status) for status in PaymentStatus}
    return {"totalCompleted": float(await gateway.payments.total_completed()), "countByStatus": counts}


@app.get("/admin/payments/transaction/{transaction_id}", response_model=PaymentRecord)
async def admin_payment_by_transaction(transaction_id: str, session: Session = Depends(admin),
                                       gateway: Gateway = Depends(get_gateway)):
    return await gateway.payments.get_by_transaction_id(transaction_id)


@app.get("/admin/payments/{payment_id}", response_model=PaymentRecord)
async def admin_payment(payment_id: int, session: Session = Depends(admin), gateway: Gateway = Depends(get_gateway)):
    return await gateway.payments.get(payment_id)


@app.patch("/admin/payments/{payment_id}/status", response_model=PaymentRecord)
async def admin_update_payment_status(payment_id: int, body: StatusBody, session: Session = Depends(admin),
                                      gateway: Gateway = Depends(get_gateway)):
    payment = await gateway.payments.update_status(payment_id, body.status)
    log.info(f"[Admin: {session.username}] Zahlung {payment_id} auf {body.status.value} gesetzt.")
    return payment


@app.delete("/admin/payments/{payment_id}", status_code=204)
async def admin_delete_payment(payment_id: int, session: Session = Depends(admin),
                               gateway: Gateway = Depends(get_gateway)):
    await gateway.payments.delete(payment_id)


@app.get("/admin/dashboard", response_model=DashboardStats)
async def admin_dashboard(session: Session = Depends(admin), gateway: Gateway = Depends(get_gateway)):
    return await gateway.dashboard.stats()


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint for monitoring systems and container orchestrators.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}
