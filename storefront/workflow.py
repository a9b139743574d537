"""
workflow.py — Core Orchestration Logic for Checkout

This module contains the checkout state machine. It coordinates the payment
and stock calls to the gateway in the correct sequence for one shopping session.

Workflow Overview:
1. Select a payment mode (auto-populates a transaction id for online modes)
2. Validate the mode-specific required fields
3. Simulate the payment gateway round-trip (fixed processing delay)
4. Create the payment record via the gateway
5. Reduce stock for every cart line, sequentially and best-effort
6. Report the outcome; the cart is cleared once the user acknowledges success

The failure boundary is drawn before payment creation. Once the gateway has
recorded a payment there is no compensation from this layer: stock-reduction
failures are reported as a StockSyncWarning and never fail the checkout.
"""

import asyncio
import logging
import os
import random
import time
import uuid
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError

from .cart import Cart
from .clients import INVALID_RESPONSE, Gateway
from .errors import (
    CheckoutAwaitingAcknowledgment,
    CheckoutInProgress,
    CheckoutValidationError,
    EmptyCart,
    GatewayError,
    NoModeSelected,
    PaymentCreationError,
)
from .models import CartLine, CheckoutRequest, PaymentMode, PaymentRecord, PaymentStatus

CHECKOUT_PROCESSING_DELAY = float(os.environ.get("CHECKOUT_PROCESSING_DELAY", "2.0"))
REDUCE_STOCK_ON_FAILED_PAYMENT = os.environ.get("REDUCE_STOCK_ON_FAILED_PAYMENT", "true").lower() == "true"

STOCK_SYNC_INTERRUPTED = "Stock reduction was interrupted"

log = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    SELECTING_MODE = "SelectingMode"
    VALIDATING_FIELDS = "ValidatingFields"
    AWAITING_GATEWAY_RESULT = "AwaitingGatewayResult"
    RECORDING_PAYMENT = "RecordingPayment"
    REDUCING_STOCK = "ReducingStock"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


IN_FLIGHT_STATES = {
    CheckoutState.VALIDATING_FIELDS,
    CheckoutState.AWAITING_GATEWAY_RESULT,
    CheckoutState.RECORDING_PAYMENT,
    CheckoutState.REDUCING_STOCK,
}


class StockSyncFailure(BaseModel):
    productId: int
    name: str
    quantity: int
    detail: str


class StockSyncWarning(BaseModel):
    """
    Non-fatal notice that the gateway recorded the payment but one or more
    stock reductions failed. Needs manual reconciliation.
    """
    paymentId: int
    failures: List[StockSyncFailure]

    @property
    def message(self) -> str:
        names = ", ".join(f.name for f in self.failures)
        return f"Warning: Payment succeeded but stock update failed for: {names}. Please contact support."


class CheckoutOutcome(BaseModel):
    """Result of one checkout attempt as shown by the presentation layer."""
    attemptId: str
    state: CheckoutState
    reason: Optional[str] = None
    error: Optional[str] = None
    request: Optional[CheckoutRequest] = None
    payment: Optional[PaymentRecord] = None
    warning: Optional[StockSyncWarning] = None


def generate_transaction_id() -> str:
    """Client-side placeholder transaction id: TXN<millis since epoch><0..9999>."""
    return f"TXN{int(time.time() * 1000)}{random.randint(0, 9999)}"


class CheckoutOrchestrator:
    """
    Checkout state machine for one shopping session.

    States: SelectingMode → ValidatingFields → AwaitingGatewayResult →
    RecordingPayment → ReducingStock → Succeeded, with Failed reachable from
    ValidatingFields, AwaitingGatewayResult and RecordingPayment.

    Only one attempt runs at a time, and a succeeded attempt must be acknowledged
    before the next one. An attempt interrupted by an unexpected exception or a
    cancellation never stays in flight: it ends Failed if no payment was recorded,
    otherwise Succeeded with the unreduced lines in its StockSyncWarning.
    """

    def __init__(self, cart: Cart, gateway: Gateway, processing_delay: float = CHECKOUT_PROCESSING_DELAY,
                 reduce_stock_on_failed_payment: bool = REDUCE_STOCK_ON_FAILED_PAYMENT,
                 sleep: Callable = asyncio.sleep):
        self.cart = cart
        self.gateway = gateway
        self.processing_delay = processing_delay
        self.reduce_stock_on_failed_payment = reduce_stock_on_failed_payment
        self._sleep = sleep

        self.state = CheckoutState.SELECTING_MODE
        self.payment_modes: List[PaymentMode] = []
        self.selected_mode: Optional[PaymentMode] = None
        self.transaction_id: Optional[str] = None
        self.outcome: Optional[CheckoutOutcome] = None
        self._reservation: Optional[str] = None

        # Bookkeeping of the running attempt
        self._request: Optional[CheckoutRequest] = None
        self._payment: Optional[PaymentRecord] = None
        self._stock_failures: List[StockSyncFailure] = []
        self._unsynced: List[CartLine] = []

    # --- Mode selection ---
    async def load_payment_modes(self, refresh: bool = False) -> List[PaymentMode]:
        """
        Loads the active payment modes from the gateway and preselects the first one.

        Raises:
            GatewayError: If the modes cannot be loaded.
        """
        if self.payment_modes and not refresh:
            return self.payment_modes
        self.payment_modes = [m for m in await self.gateway.payment_modes.list_active() if m.isActive]
        if self.payment_modes and self.selected_mode is None:
            self._apply_mode(self.payment_modes[0])
        return self.payment_modes

    async def select_mode(self, mode_id: int) -> PaymentMode:
        """
        Selects an active payment mode.

        For online modes a placeholder transaction id is generated, for
        Cash On Delivery the transaction id is cleared.

        Raises:
            CheckoutInProgress: If an attempt is running.
            CheckoutAwaitingAcknowledgment: If the last attempt succeeded and was not acknowledged.
            NoModeSelected: If `mode_id` is not an active payment mode.
        """
        self._ensure_idle()
        await self.load_payment_modes()
        mode = next((m for m in self.payment_modes if m.id == mode_id), None)
        if mode is None:
            raise NoModeSelected()
        self._apply_mode(mode)
        return mode

    def _apply_mode(self, mode: PaymentMode):
        self.selected_mode = mode
        self.transaction_id = generate_transaction_id() if mode.kind.requires_transaction_id else None
        if self.state is CheckoutState.FAILED:
            self.state = CheckoutState.SELECTING_MODE

    # --- Submission ---
    @property
    def busy(self) -> bool:
        """True while an attempt is running or has been reserved for the background."""
        return self.state in IN_FLIGHT_STATES or self._reservation is not None

    def reserve(self) -> str:
        """
        Claims the next attempt before it is handed to a background task.

        Until `submit(reservation=...)` or `release()` is called, any other
        submission, mode change or reset is rejected with CheckoutInProgress.

        Returns:
            str: The reservation, reused as the attempt id.
        Raises:
            CheckoutInProgress: If an attempt is running or already reserved.
            CheckoutAwaitingAcknowledgment: If the last attempt succeeded and was not acknowledged.
            EmptyCart: If there is nothing to check out.
        """
        self._ensure_idle()
        if self.cart.is_empty:
            raise EmptyCart()
        self._reservation = uuid.uuid4().hex[:12]
        return self._reservation

    def release(self, reservation: str):
        """Drops a reservation that was never submitted."""
        if self._reservation == reservation:
            self._reservation = None

    async def submit(self, address: Optional[str] = None, transaction_id: Optional[str] = None,
                     remarks: Optional[str] = None, reservation: Optional[str] = None) -> CheckoutOutcome:
        """
        Runs one checkout attempt to completion.

        Args:
            address (str | None): Delivery address, required for Cash On Delivery.
            transaction_id (str | None): Overrides the auto-populated transaction id.
            remarks (str | None): Free text for online modes.
            reservation (str | None): The value returned by `reserve()`, if the attempt was reserved.

        Returns:
            CheckoutOutcome: Succeeded (possibly with a StockSyncWarning) or Failed.
                NoModeSelected and validation errors leave the machine in SelectingMode.

        Raises:
            CheckoutInProgress: If another attempt is running or holds the reservation.
            CheckoutAwaitingAcknowledgment: If the last attempt succeeded and was not acknowledged.
            EmptyCart: If there is nothing to check out.
        """
        if reservation is None or reservation != self._reservation:
            self._ensure_idle()
        self._reservation = None
        if self.cart.is_empty:
            raise EmptyCart()

        attempt_id = reservation or uuid.uuid4().hex[:12]
        log_prefix = f"[Checkout: {attempt_id}]"
        self.outcome = None
        self._request = None
        self._payment = None
        self._stock_failures = []
        self._unsynced = []
        try:
            return await self._attempt(attempt_id, log_prefix, address, transaction_id, remarks)
        finally:
            if self.state in IN_FLIGHT_STATES:
                self._interrupted(attempt_id, log_prefix)

    async def _attempt(self, attempt_id: str, log_prefix: str, address: Optional[str],
                       transaction_id: Optional[str], remarks: Optional[str]) -> CheckoutOutcome:
        # --- 1. SelectingMode → ValidatingFields ---
        if self.selected_mode is None:
            log.warning(f"{log_prefix} Abgelehnt: keine Zahlungsart gewählt.")
            return self._back_to_selection(attempt_id, NoModeSelected())
        self.state = CheckoutState.VALIDATING_FIELDS

        # --- 2. Validierung ---
        mode = self.selected_mode
        if transaction_id is not None:
            self.transaction_id = transaction_id
        try:
            request = self._build_request(mode, address, remarks)
        except CheckoutValidationError as e:
            log.warning(f"{log_prefix} Validierung fehlgeschlagen: {e.message}")
            return self._back_to_selection(attempt_id, e)
        self._request = request

        lines = [line.model_copy() for line in self.cart]
        log.info(f"{log_prefix} Starte Zahlung via {mode.mode} über {request.amount} "
                 f"({len(lines)} Positionen).")

        # --- 3. Simulierter Gateway-Roundtrip ---
        self.state = CheckoutState.AWAITING_GATEWAY_RESULT
        await self._sleep(self.processing_delay)

        # --- 4. Zahlungsdatensatz anlegen ---
        self.state = CheckoutState.RECORDING_PAYMENT
        try:
            payment = await self.gateway.payments.create(request)
        except (GatewayError, ValidationError) as e:
            detail = _detail(e)
            log.error(f"{log_prefix} Zahlung fehlgeschlagen: {detail}. Warenkorb bleibt unverändert.")
            return self._fail(attempt_id, PaymentCreationError(detail), request)
        self._payment = payment

        log.info(f"{log_prefix} Zahlung erfasst. (ID: {payment.id}, Status: {payment.status.value}, "
                 f"TxID: {payment.transactionId})")

        if payment.status is PaymentStatus.FAILED and not self.reduce_stock_on_failed_payment:
            log.warning(f"{log_prefix} Gateway meldet Status FAILED. Kein Lagerabbau.")
            return self._fail(attempt_id, PaymentCreationError("Payment was declined by the gateway"),
                              request, payment)

        # --- 5. Lagerbestand reduzieren ---
        self.state = CheckoutState.REDUCING_STOCK
        self._unsynced = list(lines)
        await self._reduce_stock(log_prefix)

        # --- 6. Ergebnis ---
        return self._succeed(attempt_id, log_prefix)

    def _build_request(self, mode: PaymentMode, address: Optional[str], remarks: Optional[str]) -> CheckoutRequest:
        kind = mode.kind
        amount: Decimal = self.cart.total()

        if kind.requires_address:
            if not address or not address.strip():
                raise CheckoutValidationError("Please enter your delivery address for Cash On Delivery")
            return CheckoutRequest(paymentModeId=mode.id, amount=amount, transactionId=None,
                                   remarks=address.strip())

        transaction_id = (self.transaction_id or "").strip()
        if kind.requires_transaction_id and not transaction_id:
            raise CheckoutValidationError("Transaction ID is required for this payment mode")
        remarks = (remarks or "").strip() or f"Payment via {mode.mode} - {transaction_id}"
        return CheckoutRequest(paymentModeId=mode.id, amount=amount, transactionId=transaction_id,
                               remarks=remarks)

    async def _reduce_stock(self, log_prefix: str):
        """
        Issues one reduce-stock call per cart line, in cart order.

        Every line is attempted once; a failure is recorded and the loop goes on.
        A line leaves `_unsynced` once its call has returned or failed.
        """
        while self._unsynced:
            line = self._unsynced[0]
            try:
                await self.gateway.products.reduce_stock(line.productId, line.quantity)
                log.info(f"{log_prefix} Lagerbestand reduziert: Produkt {line.productId} um {line.quantity}.")
            except (GatewayError, ValidationError) as e:
                detail = _detail(e)
                log.error(f"{log_prefix} Lagerabbau für Produkt {line.productId} fehlgeschlagen: {detail}")
                self._stock_failures.append(StockSyncFailure(productId=line.productId, name=line.name,
                                                             quantity=line.quantity, detail=detail))
            self._unsynced.pop(0)

    def _succeed(self, attempt_id: str, log_prefix: str) -> CheckoutOutcome:
        warning = None
        if self._stock_failures:
            warning = StockSyncWarning(paymentId=self._payment.id, failures=self._stock_failures)
            log.critical(f"{log_prefix} LAGERABGLEICH FEHLGESCHLAGEN für Zahlung {self._payment.id}: "
                         f"{[f.productId for f in self._stock_failures]}. BENÖTIGT MANUELLE AKTION!")
        self.state = CheckoutState.SUCCEEDED
        self.outcome = CheckoutOutcome(
            attemptId=attempt_id,
            state=self.state,
            request=self._request,
            payment=self._payment,
            warning=warning,
        )
        log.info(f"{log_prefix} Checkout erfolgreich abgeschlossen.")
        return self.outcome

    def _interrupted(self, attempt_id: str, log_prefix: str):
        """Settles an attempt that was left in flight by an unexpected exception or a cancellation."""
        if self._payment is None:
            log.critical(f"{log_prefix} Checkout in Zustand {self.state.value} abgebrochen, "
                         f"keine Zahlung erfasst. Warenkorb bleibt unverändert.")
            self._fail(attempt_id, PaymentCreationError(), self._request)
            return
        log.critical(f"{log_prefix} Checkout nach Zahlung {self._payment.id} abgebrochen. "
                     f"Lagerabbau offen für {[line.productId for line in self._unsynced]}.")
        self._stock_failures.extend(
            StockSyncFailure(productId=line.productId, name=line.name, quantity=line.quantity,
                             detail=STOCK_SYNC_INTERRUPTED)
            for line in self._unsynced)
        self._unsynced = []
        self._succeed(attempt_id, log_prefix)

    # --- After the attempt ---
    def acknowledge(self) -> CheckoutOutcome:
        """Acknowledges a successful checkout: clears the cart and starts over."""
        if self.state is not CheckoutState.SUCCEEDED:
            raise CheckoutValidationError("There is no completed checkout to acknowledge")
        outcome = self.outcome
        self.cart.clear()
        self._start_over()
        return outcome

    def reset(self):
        """Returns to mode selection after a failure."""
        self._ensure_idle()
        self._start_over()

    def _start_over(self):
        self.state = CheckoutState.SELECTING_MODE
        self.outcome = None
        # a recorded transaction id must not be sent twice
        if self.selected_mode is not None and self.selected_mode.kind.requires_transaction_id:
            self.transaction_id = generate_transaction_id()

    def _ensure_idle(self):
        if self.busy:
            raise CheckoutInProgress()
        if self.state is CheckoutState.SUCCEEDED:
            raise CheckoutAwaitingAcknowledgment()

    def _back_to_selection(self, attempt_id: str, error) -> CheckoutOutcome:
        self.state = CheckoutState.SELECTING_MODE
        self.outcome = CheckoutOutcome(attemptId=attempt_id, state=CheckoutState.FAILED,
                                       reason=type(error).__name__, error=error.message)
        return self.outcome

    def _fail(self, attempt_id: str, error: PaymentCreationError, request: Optional[CheckoutRequest],
              payment: Optional[PaymentRecord] = None) -> CheckoutOutcome:
        self.state = CheckoutState.FAILED
        self.outcome = CheckoutOutcome(attemptId=attempt_id, state=self.state, reason=type(error).__name__,
                                       error=error.message, request=request, payment=payment)
        return self.outcome


def _detail(error) -> str:
    return error.detail if isinstance(error, GatewayError) else INVALID_RESPONSE
