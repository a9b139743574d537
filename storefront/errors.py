"""
errors.py — Error Taxonomy of the Storefront

Cart errors are raised by the cart model, session errors by the session store,
checkout errors by the checkout orchestrator and GatewayError by the gateway clients.
The presentation layer maps each family to an HTTP status code.
"""


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


# --- Cart ---
class CartError(StorefrontError):
    pass


class OutOfStock(CartError):
    def __init__(self, product_id):
        super().__init__("This product is out of stock!")
        self.product_id = product_id


class StockExceeded(CartError):
    def __init__(self, product_id, available):
        super().__init__(f"Only {available} items available in stock!")
        self.product_id = product_id
        self.available = available


# --- Session ---
class NotAuthenticated(StorefrontError):
    pass


class NotAuthorized(StorefrontError):
    pass


# --- Gateway ---
class GatewayError(StorefrontError):
    """
    Raised by the gateway clients when a call fails.

    Attributes:
        status_code (int | None): HTTP status returned by the gateway, None if unreachable.
        detail (str): Error message reported by the gateway, or a transport error description.
    """

    def __init__(self, status_code, detail):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


# --- Checkout ---
class CheckoutError(StorefrontError):
    pass


class NoModeSelected(CheckoutError):
    def __init__(self):
        super().__init__("Please select a payment mode")


class CheckoutValidationError(CheckoutError):
    """A mode-specific required field is missing or not allowed."""


class EmptyCart(CheckoutError):
    def __init__(self):
        super().__init__("Your cart is empty!")


class CheckoutInProgress(CheckoutError):
    def __init__(self):
        super().__init__("A checkout is already being processed")


class CheckoutAwaitingAcknowledgment(CheckoutError):
    def __init__(self):
        super().__init__("The payment is complete. Please acknowledge it before starting a new checkout")


class PaymentCreationError(CheckoutError):
    """The gateway rejected the payment or could not be reached."""

    DEFAULT_MESSAGE = "Payment failed. Please try again."

    def __init__(self, detail=None):
        super().__init__(detail or self.DEFAULT_MESSAGE)
        self.detail = detail
