"""
Tests for payment-mode kinds and wire models.
"""

from decimal import Decimal

import pytest

from storefront.models import CartLine, PaymentMode, PaymentModeKind, PaymentRecord


@pytest.mark.parametrize("label, kind", [
    ("Cash On Delivery", PaymentModeKind.CASH_ON_DELIVERY),
    ("cash  on delivery ", PaymentModeKind.CASH_ON_DELIVERY),
    ("UPI", PaymentModeKind.UPI),
    ("Debit/Credit Card", PaymentModeKind.CARD),
    ("Net Banking", PaymentModeKind.NET_BANKING),
    ("Wallet", PaymentModeKind.WALLET),
    ("Crypto", PaymentModeKind.OTHER),
])
def test_kind_from_label(label, kind):
    assert PaymentModeKind.from_label(label) is kind


def test_required_field_schema():
    cod = PaymentMode(id=1, mode="Cash On Delivery").kind
    upi = PaymentMode(id=2, mode="UPI").kind

    assert cod.requires_address and not cod.requires_transaction_id
    assert upi.requires_transaction_id and not upi.requires_address
    assert PaymentModeKind.OTHER.requires_transaction_id


def test_cart_line_rejects_zero_quantity():
    with pytest.raises(ValueError):
        CartLine(productId=1, name="Mouse", unitPrice=Decimal("1"), availableStock=1, quantity=0)


def test_payment_record_ignores_unknown_fields():
    record = PaymentRecord.model_validate({"id": 1, "amount": 12.5, "status": "COMPLETED", "order": {"id": 3}})

    assert record.amount == Decimal("12.5")
    assert record.model_dump(mode="json")["amount"] == 12.5
