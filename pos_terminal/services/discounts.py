"""
Single order-level discount: percentage of subtotal or fixed amount, clamped to [0, subtotal].
Permission checks happen before these functions are reached.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pos_terminal.core.errors import ValidationFailed
from pos_terminal.schemas.order import DiscountType, Order

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def discount_amount_for(discount_type: DiscountType, value: Decimal, subtotal: Decimal) -> Decimal:
    if discount_type == DiscountType.NONE:
        return ZERO
    if discount_type == DiscountType.PERCENTAGE:
        amount = (subtotal * value / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        amount = value
    return min(max(ZERO, amount), max(ZERO, subtotal))


def _check_value(discount_type: DiscountType, value: Decimal) -> None:
    if not value.is_finite() or value < 0:
        raise ValidationFailed("Discount value must be a non-negative number")
    if discount_type == DiscountType.PERCENTAGE and value > HUNDRED:
        raise ValidationFailed("Percentage discount cannot exceed 100")


def apply_discount(
    order: Order,
    discount_type: DiscountType,
    value: Decimal,
    reference: Optional[str] = None,
) -> Order:
    """Replace any active discount with this one; the amount is taken against the current subtotal."""
    if discount_type == DiscountType.NONE:
        return remove_discount(order)
    _check_value(discount_type, value)
    amount = discount_amount_for(discount_type, value, order.subtotal)
    return order.model_copy(
        update={
            "discount_type": discount_type,
            "discount_value": value,
            "discount_amount": amount,
            "discount_reference": reference or None,
        }
    )


def remove_discount(order: Order) -> Order:
    return order.model_copy(
        update={
            "discount_type": DiscountType.NONE,
            "discount_value": ZERO,
            "discount_amount": ZERO,
            "discount_reference": None,
        }
    )


def rebase_discount(order: Order, subtotal: Decimal) -> Order:
    """Re-derive the active discount against a new subtotal (percentages follow the subtotal, fixed amounts re-clamp)."""
    amount = discount_amount_for(order.discount_type, order.discount_value, subtotal)
    return order.model_copy(update={"discount_amount": amount})
