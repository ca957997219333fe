"""
Order totals, recomputed from the current lines. Pure: no I/O, safe to call any number of times.

    subtotal = sum(line.total_price)
    total    = max(0, subtotal - discount_amount) + delivery_charge
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from pos_terminal.schemas.order import Order, OrderLine, OrderTotals, OrderType

ZERO = Decimal("0")


def line_subtotal(lines: Iterable[OrderLine]) -> Decimal:
    return sum((line.total_price for line in lines), ZERO)


def effective_delivery_charge(order: Order) -> Decimal:
    """Only delivery orders carry a charge; anything negative or non-finite counts as none."""
    if order.order_type != OrderType.DELIVERY:
        return ZERO
    charge = order.delivery_charge
    if not charge.is_finite() or charge < 0:
        return ZERO
    return charge


def clamp_discount(discount_amount: Decimal, subtotal: Decimal) -> Decimal:
    if not discount_amount.is_finite() or discount_amount < 0:
        return ZERO
    return min(discount_amount, max(ZERO, subtotal))


def compute_totals(order: Order, lines: Iterable[OrderLine]) -> OrderTotals:
    subtotal = line_subtotal(lines)
    discount_amount = clamp_discount(order.discount_amount, subtotal)
    delivery_charge = effective_delivery_charge(order)
    total = max(ZERO, subtotal - discount_amount) + delivery_charge
    return OrderTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        delivery_charge=delivery_charge,
        total=total,
    )


def recompute(order: Order, lines: Iterable[OrderLine]) -> Order:
    """Copy of `order` with totals consistent with `lines`. The stored discount is clamped, not re-derived."""
    totals = compute_totals(order, lines)
    return order.model_copy(
        update={
            "subtotal": totals.subtotal,
            "discount_amount": totals.discount_amount,
            "delivery_charge": totals.delivery_charge,
            "total": totals.total,
        }
    )
