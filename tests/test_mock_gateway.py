"""
End-to-end tests of the gateway clients and the orchestrator against the
in-memory mock gateway.
"""

from decimal import Decimal

import pytest

from storefront.cart import Cart
from storefront.errors import GatewayError
from storefront.models import CheckoutRequest, PaymentModeInput, PaymentStatus
from storefront.workflow import CheckoutOrchestrator, CheckoutState


async def no_delay(_):
    return None


class TestCatalog:

    @pytest.mark.asyncio
    async def test_seeded_catalog(self, mock_gateway):
        products = await mock_gateway.products.list()
        categories = await mock_gateway.categories.list()
        modes = await mock_gateway.payment_modes.list_active()

        assert [p.name for p in products][:2] == ["Wireless Mouse", "Mechanical Keyboard"]
        assert products[0].category.name == "Electronics"
        assert {c.name for c in categories} == {"Electronics", "Books", "Clothing"}
        assert [m.kind.value for m in modes] == [
            "Cash On Delivery", "UPI", "Debit/Credit Card", "Net Banking", "Wallet"]

    @pytest.mark.asyncio
    async def test_reduce_stock_rejects_insufficient_stock(self, mock_gateway, gateway_store):
        with pytest.raises(GatewayError) as exc_info:
            await mock_gateway.products.reduce_stock(1, 26)

        assert exc_info.value.status_code == 400
        assert "Insufficient stock" in exc_info.value.detail
        assert gateway_store.products[1]["totalItemsInStock"] == 25

    @pytest.mark.asyncio
    async def test_unknown_product(self, mock_gateway):
        with pytest.raises(GatewayError) as exc_info:
            await mock_gateway.products.get(999)

        assert exc_info.value.status_code == 404


class TestPaymentModes:

    @pytest.mark.asyncio
    async def test_toggle_hides_mode_from_checkout(self, mock_gateway):
        await mock_gateway.payment_modes.toggle_active(2)

        active = await mock_gateway.payment_modes.list_active()

        assert 2 not in [m.id for m in active]
        assert (await mock_gateway.payment_modes.get(2)).isActive is False

    @pytest.mark.asyncio
    async def test_duplicate_label_is_rejected(self, mock_gateway):
        with pytest.raises(GatewayError) as exc_info:
            await mock_gateway.payment_modes.create(PaymentModeInput(mode="UPI"))

        assert "already exists" in exc_info.value.detail


class TestPayments:

    @pytest.mark.asyncio
    async def test_inactive_mode_is_rejected(self, mock_gateway):
        await mock_gateway.payment_modes.toggle_active(2)

        with pytest.raises(GatewayError) as exc_info:
            await mock_gateway.payments.create(
                CheckoutRequest(paymentModeId=2, amount=Decimal("10"), transactionId="T1"))

        assert exc_info.value.detail == "Payment mode is not active: UPI"

    @pytest.mark.asyncio
    async def test_lookup_status_and_aggregates(self, mock_gateway):
        created = await mock_gateway.payments.create(
            CheckoutRequest(paymentModeId=2, amount=Decimal("250.50"), transactionId="T-1", remarks="r"))
        assert created.status is PaymentStatus.PENDING

        await mock_gateway.payments.update_status(created.id, PaymentStatus.COMPLETED)

        assert (await mock_gateway.payments.get_by_transaction_id("T-1")).id == created.id
        assert [p.id for p in await mock_gateway.payments.list_by_status(PaymentStatus.COMPLETED)] == [created.id]
        assert await mock_gateway.payments.count_by_status(PaymentStatus.PENDING) == 0
        assert await mock_gateway.payments.total_completed() == Decimal("250.5")

        await mock_gateway.payments.delete(created.id)
        assert await mock_gateway.payments.list() == []

    @pytest.mark.asyncio
    async def test_dashboard_lists_five_recent_payments(self, mock_gateway):
        for n in range(7):
            await mock_gateway.payments.create(
                CheckoutRequest(paymentModeId=2, amount=Decimal("1"), transactionId=f"T{n}"))

        stats = await mock_gateway.dashboard.stats()

        assert stats.totalProducts == 3
        assert stats.totalItemsInStock == 35
        assert stats.totalValue == Decimal("47490")
        assert len(stats.recentPayments) == 5


class TestCheckoutAgainstMockGateway:

    @pytest.mark.asyncio
    async def test_checkout_reduces_stock(self, mock_gateway, gateway_store):
        cart = Cart()
        mouse = await mock_gateway.products.get(1)
        cart.add_line(mouse)
        cart.add_line(mouse)
        checkout = CheckoutOrchestrator(cart, mock_gateway, sleep=no_delay)
        await checkout.select_mode(1)

        outcome = await checkout.submit(address="12 Main St")

        assert outcome.state is CheckoutState.SUCCEEDED
        assert outcome.payment.remarks == "12 Main St"
        assert outcome.payment.transactionId is None
        assert gateway_store.products[1]["totalItemsInStock"] == 23

    @pytest.mark.asyncio
    async def test_stale_stock_yields_warning(self, mock_gateway, gateway_store):
        cart = Cart()
        cart.add_line(await mock_gateway.products.get(1))
        cart.add_line(await mock_gateway.products.get(2))
        gateway_store.products[1]["totalItemsInStock"] = 0
        checkout = CheckoutOrchestrator(cart, mock_gateway, sleep=no_delay)
        await checkout.select_mode(4)

        outcome = await checkout.submit()

        assert outcome.state is CheckoutState.SUCCEEDED
        assert [f.productId for f in outcome.warning.failures] == [1]
        assert gateway_store.products[2]["totalItemsInStock"] == 9

    @pytest.mark.asyncio
    async def test_rejected_payment_keeps_stock(self, mock_gateway, gateway_store):
        cart = Cart()
        cart.add_line(await mock_gateway.products.get(1))
        checkout = CheckoutOrchestrator(cart, mock_gateway, sleep=no_delay)
        await checkout.select_mode(3)

        outcome = await checkout.submit(transaction_id="REJECT-1")

        assert outcome.state is CheckoutState.FAILED
        assert outcome.error == "Payment declined by the bank"
        assert gateway_store.products[1]["totalItemsInStock"] == 25
        assert len(cart) == 1
