"""
Unit tests for the shopping cart.
"""

from decimal import Decimal

import pytest

from storefront.cart import Cart
from storefront.errors import OutOfStock, StockExceeded

from conftest import make_product


class TestAddLine:

    def test_new_line_starts_at_one(self):
        cart = Cart()
        line = cart.add_line(make_product(stock=3))

        assert line.quantity == 1
        assert line.unitPrice == Decimal("500.00")
        assert len(cart) == 1

    def test_existing_line_grows_by_one(self):
        cart = Cart()
        product = make_product(stock=3)
        cart.add_line(product)
        cart.add_line(product)

        assert cart.get(product.id).quantity == 2

    def test_out_of_stock_leaves_cart_unchanged(self):
        cart = Cart()
        cart.add_line(make_product(product_id=1))

        with pytest.raises(OutOfStock) as exc_info:
            cart.add_line(make_product(product_id=2, stock=0))

        assert exc_info.value.product_id == 2
        assert [line.productId for line in cart] == [1]

    def test_stock_exceeded(self):
        cart = Cart()
        product = make_product(stock=2)
        cart.add_line(product)
        cart.add_line(product)

        with pytest.raises(StockExceeded) as exc_info:
            cart.add_line(product)

        assert exc_info.value.available == 2
        assert "Only 2 items" in exc_info.value.message
        assert cart.get(product.id).quantity == 2

    def test_lines_keep_insertion_order(self):
        cart = Cart()
        for product_id in (3, 1, 2):
            cart.add_line(make_product(product_id=product_id))

        assert [line.productId for line in cart.lines] == [3, 1, 2]


class TestQuantity:

    def test_set_quantity_zero_equals_remove(self):
        a, b = Cart(), Cart()
        for cart in (a, b):
            cart.add_line(make_product(product_id=1))
            cart.add_line(make_product(product_id=2))

        a.set_quantity(1, 0)
        b.remove_line(1)

        assert [line.productId for line in a] == [line.productId for line in b] == [2]

    def test_negative_quantity_removes(self):
        cart = Cart()
        cart.add_line(make_product())
        cart.set_quantity(1, -3)

        assert cart.is_empty

    def test_positive_quantity_is_not_clamped(self):
        cart = Cart()
        cart.add_line(make_product(stock=2))

        line = cart.set_quantity(1, 7)

        assert line.quantity == 7

    def test_set_quantity_unknown_line(self):
        assert Cart().set_quantity(99, 2) is None

    def test_remove_is_idempotent(self):
        cart = Cart()
        cart.remove_line(5)
        cart.add_line(make_product(product_id=5))
        cart.remove_line(5)
        cart.remove_line(5)

        assert cart.is_empty


class TestTotal:

    def test_total_tracks_every_mutation(self):
        cart = Cart()
        mouse = make_product(product_id=1, price="500.00", stock=10)
        keyboard = make_product(product_id=2, name="Keyboard", price="3499.50", stock=10)

        assert cart.total() == Decimal("0")
        cart.add_line(mouse)
        cart.add_line(mouse)
        assert cart.total() == Decimal("1000.00")
        cart.add_line(keyboard)
        assert cart.total() == Decimal("4499.50")
        cart.set_quantity(2, 3)
        assert cart.total() == Decimal("11498.50")
        cart.remove_line(1)
        assert cart.total() == Decimal("10498.50")
        assert cart.total() == cart.total()

    def test_clear(self):
        cart = Cart()
        cart.add_line(make_product())
        cart.clear()

        assert cart.is_empty
        assert cart.total() == Decimal("0")


class TestBuyNow:

    def test_replaces_cart(self):
        cart = Cart()
        cart.add_line(make_product(product_id=1))
        cart.add_line(make_product(product_id=1))

        cart.buy_now(make_product(product_id=2, price="10.00"))

        assert [(line.productId, line.quantity) for line in cart] == [(2, 1)]
        assert cart.total() == Decimal("10.00")

    def test_out_of_stock(self):
        cart = Cart()
        cart.add_line(make_product(product_id=1))

        with pytest.raises(OutOfStock):
            cart.buy_now(make_product(product_id=2, stock=0))

        assert len(cart) == 1
