"""
cart.py — In-Memory Shopping Cart

The cart is an ordered collection of CartLine objects, keyed by product id and
owned by a single shopping session. Stock is checked against the product data
at the time a line is added; it is not re-validated against the gateway until
checkout reduces it.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from .errors import OutOfStock, StockExceeded
from .models import CartLine, Product


class Cart:
    """
    Ordered shopping cart.

    Lines keep insertion order, which is also the order in which checkout
    reduces stock.
    """

    def __init__(self):
        self._lines: Dict[int, CartLine] = {}

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(list(self._lines.values()))

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get(self, product_id: int) -> Optional[CartLine]:
        return self._lines.get(product_id)

    def add_line(self, product: Product, quantity: int = 1) -> CartLine:
        """
        Adds a product to the cart.

        An existing line grows by one unit as long as the product's stock allows it.
        A new line is only created for a product that has stock.

        Args:
            product (Product): The product to add.
            quantity (int): Quantity the product is being added with. Only used for
                a new line; an existing line always grows by one.

        Returns:
            CartLine: The created or updated line.

        Raises:
            StockExceeded: If the line already holds all available units.
            OutOfStock: If the product has no stock.
        """
        line = self._lines.get(product.id)
        if line is not None:
            if line.quantity + 1 > product.totalItemsInStock:
                raise StockExceeded(product.id, product.totalItemsInStock)
            line.quantity += 1
            line.availableStock = product.totalItemsInStock
            return line

        if product.totalItemsInStock <= 0:
            raise OutOfStock(product.id)

        line = CartLine.from_product(product, quantity=min(max(quantity, 1), product.totalItemsInStock))
        self._lines[product.id] = line
        return line

    def set_quantity(self, product_id: int, new_quantity: int) -> Optional[CartLine]:
        """
        Sets the quantity of a line. A quantity of zero or less removes the line.

        Positive values are not clamped against stock; callers clamp.
        Returns the updated line, or None if the line was removed or does not exist.
        """
        if new_quantity <= 0:
            self.remove_line(product_id)
            return None
        line = self._lines.get(product_id)
        if line is None:
            return None
        line.quantity = new_quantity
        return line

    def remove_line(self, product_id: int):
        self._lines.pop(product_id, None)

    def buy_now(self, product: Product) -> CartLine:
        """Replaces the cart content with a single unit of `product`."""
        if product.totalItemsInStock <= 0:
            raise OutOfStock(product.id)
        self._lines = {product.id: CartLine.from_product(product)}
        return self._lines[product.id]

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines.values()), Decimal("0"))

    def clear(self):
        self._lines.clear()
