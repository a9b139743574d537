"""
models.py — Data Models for the Storefront

This module defines the data structures exchanged with the remote catalog/payment
gateway and returned by the storefront API. It uses Pydantic models to ensure type
safety and automatic validation of gateway responses.

Models:
    - Category, Product: Catalog entries.
    - PaymentModeKind: Tagged variant over payment-mode labels with its required-field schema.
    - PaymentMode: A payment mode as configured in the gateway.
    - PaymentStatus, PaymentRecord: Payments as recorded by the gateway.
    - CheckoutRequest: Payload of the create-payment call.
    - CartLine: A single (product, quantity) line of the shopping cart.
    - DashboardStats: Aggregate statistics for the admin dashboard.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Decimal in Python, plain JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Category(BaseModel):
    """
    Represents a product category.

    Attributes:
        id (int): Gateway-assigned identifier.
        name (str): Display name, unique per catalog.
        description (str | None): Optional free text.
    """
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    description: Optional[str] = None


class Product(BaseModel):
    """
    Represents a catalog product as returned by the gateway.

    Attributes:
        id (int): Gateway-assigned identifier.
        name (str): Product name.
        price (Decimal): Unit price, non-negative.
        totalItemsInStock (int): Units currently available.
        category (Category | None): Owning category.
        imageUrl (str | None): Optional picture URL.
    """
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    price: Money = Field(..., ge=0)
    totalItemsInStock: int = Field(0, ge=0)
    category: Optional[Category] = None
    imageUrl: Optional[str] = None


class ProductInput(BaseModel):
    """Payload for creating or updating a product from the admin console."""
    name: str = Field(..., min_length=1)
    price: Money = Field(..., ge=0)
    totalItemsInStock: int = Field(..., ge=0)
    categoryId: int
    imageUrl: Optional[str] = None


class PaymentModeKind(str, Enum):
    """
    Known payment-mode kinds.

    The gateway only knows free-text labels; the storefront parses each label once
    into a kind, and the kind decides which checkout fields are required.
    """
    CASH_ON_DELIVERY = "Cash On Delivery"
    UPI = "UPI"
    CARD = "Debit/Credit Card"
    NET_BANKING = "Net Banking"
    WALLET = "Wallet"
    OTHER = "Other"

    @classmethod
    def from_label(cls, label: str) -> "PaymentModeKind":
        normalized = " ".join(label.split()).lower()
        for kind in cls:
            if kind.value.lower() == normalized:
                return kind
        return cls.OTHER

    @property
    def requires_address(self) -> bool:
        return self is PaymentModeKind.CASH_ON_DELIVERY

    @property
    def requires_transaction_id(self) -> bool:
        return self is not PaymentModeKind.CASH_ON_DELIVERY


class PaymentMode(BaseModel):
    """
    Represents a payment mode configured in the gateway.

    Attributes:
        id (int): Gateway-assigned identifier.
        mode (str): Display label, e.g. 'UPI' or 'Cash On Delivery'.
        isActive (bool): Only active modes are offered at checkout.
    """
    model_config = ConfigDict(extra="ignore")

    id: int
    mode: str
    isActive: bool = True

    @property
    def kind(self) -> PaymentModeKind:
        return PaymentModeKind.from_label(self.mode)


class PaymentModeInput(BaseModel):
    """Payload for creating or updating a payment mode."""
    mode: str = Field(..., min_length=1)
    isActive: bool = True


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class CheckoutRequest(BaseModel):
    """
    Payload of the gateway's create-payment operation.

    Attributes:
        paymentModeId (int): Selected payment mode.
        amount (Decimal): Cart total captured at submission time.
        transactionId (str | None): Required for online modes, None for Cash On Delivery.
        remarks (str | None): Free text; carries the delivery address for Cash On Delivery.
    """
    paymentModeId: int
    amount: Money
    transactionId: Optional[str] = None
    remarks: Optional[str] = None


class PaymentRecord(BaseModel):
    """
    A payment as recorded by the gateway. Owned by the gateway, read-only here.

    Attributes:
        id (int): Gateway-assigned identifier.
        paymentDate (datetime | None): Creation time.
        paymentMode (str | None): Label of the payment mode used.
        transactionId (str | None): Transaction reference, None for Cash On Delivery.
        amount (Decimal): Charged amount.
        status (PaymentStatus): Gateway-reported status.
        remarks (str | None): Free text from the request.
    """
    model_config = ConfigDict(extra="ignore")

    id: int
    paymentDate: Optional[datetime] = None
    paymentMode: Optional[str] = None
    transactionId: Optional[str] = None
    amount: Money
    status: PaymentStatus = PaymentStatus.PENDING
    remarks: Optional[str] = None


class CartLine(BaseModel):
    """
    A single line of the shopping cart.

    Attributes:
        productId (int): Product identifier in the gateway.
        name (str): Product name, kept for display and diagnostics.
        unitPrice (Decimal): Price per unit when the line was added.
        availableStock (int): Stock when the line was added.
        quantity (int): Units in the cart, at least one.
    """
    productId: int
    name: str
    unitPrice: Money = Field(..., ge=0)
    availableStock: int = Field(..., ge=0)
    quantity: int = Field(1, gt=0)

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> "CartLine":
        return cls(
            productId=product.id,
            name=product.name,
            unitPrice=product.price,
            availableStock=product.totalItemsInStock,
            quantity=quantity,
        )

    @property
    def subtotal(self) -> Decimal:
        return self.unitPrice * self.quantity


class DashboardStats(BaseModel):
    """Aggregate statistics shown on the admin dashboard."""
    model_config = ConfigDict(extra="ignore")

    totalProducts: int = 0
    categories: List[Category] = []
    totalValue: Money = Decimal("0")
    totalItemsInStock: int = 0
    recentPayments: List[dict] = []
