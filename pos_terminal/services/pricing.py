"""
Line pricing: unit and total price of menu item and deal lines, deal breakdown expansion.
Callers gate on SelectionState.validate(); nothing is re-validated here.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, DecimalException
from typing import Iterable, Mapping, Optional

from pos_terminal.core.errors import InconsistentNumericInput
from pos_terminal.schemas.catalog import Deal, MenuItem, ResolvedDealMember
from pos_terminal.schemas.order import DealBreakdownEntry, OrderLine, VariantSelection

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class LinePrice:
    unit_price: Decimal
    total_price: Decimal


def variant_total(selections: Iterable[VariantSelection]) -> Decimal:
    """Sum of price modifiers over every selected option of every variant."""
    return sum((s.price_modifier_total for s in selections), ZERO)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    """unit x quantity, floored at zero; non-finite results are refused."""
    try:
        total = unit_price * quantity
    except DecimalException as e:
        raise InconsistentNumericInput(f"Cannot price {quantity} x {unit_price}") from e
    if not total.is_finite():
        raise InconsistentNumericInput(f"Non-finite line total for {quantity} x {unit_price}")
    return max(ZERO, total)


def price_menu_item(
    menu_item: MenuItem, selections: Iterable[VariantSelection], quantity: int = 1
) -> LinePrice:
    unit_price = menu_item.price + variant_total(selections)
    return LinePrice(unit_price=unit_price, total_price=line_total(unit_price, quantity))


def price_deal(
    deal: Deal, deal_selections: Iterable[VariantSelection], quantity: int = 1
) -> LinePrice:
    """
    Bundle price plus deal-level modifiers, applied once per deal.
    Member-level choices are recorded in the breakdown only and never change the price.
    """
    unit_price = deal.price + variant_total(deal_selections)
    return LinePrice(unit_price=unit_price, total_price=line_total(unit_price, quantity))


def expand_deal_breakdown(
    members: Iterable[ResolvedDealMember],
    deal_selections: list[VariantSelection],
    unit_selections: Optional[Mapping[str, list[list[VariantSelection]]]] = None,
) -> list[DealBreakdownEntry]:
    """
    One entry per physical unit for members carrying variants (deal-level choices first, then the unit's own),
    a single entry of quantity N for members without.
    """
    unit_selections = unit_selections or {}
    breakdown: list[DealBreakdownEntry] = []
    for member in members:
        quantity = member.link.quantity
        if member.has_variants and quantity > 0:
            units = unit_selections.get(member.link.id, [])
            for index in range(quantity):
                own = units[index] if index < len(units) else []
                breakdown.append(
                    DealBreakdownEntry(
                        menu_item_id=member.menu_item.id,
                        menu_item_name=member.menu_item.name,
                        quantity=1,
                        selected_variants=[*deal_selections, *own],
                    )
                )
        else:
            breakdown.append(
                DealBreakdownEntry(
                    menu_item_id=member.menu_item.id,
                    menu_item_name=member.menu_item.name,
                    quantity=quantity,
                    selected_variants=list(deal_selections),
                )
            )
    return breakdown


def unit_price_of(line: OrderLine) -> Decimal:
    """Recover the unit price of a stored line; quantity may transiently be 0 during decrement-to-removal."""
    if line.quantity > 0:
        try:
            return line.total_price / line.quantity
        except DecimalException as e:
            raise InconsistentNumericInput(f"Cannot derive unit price of line {line.id}") from e
    return line.unit_price


def reprice_quantity(line: OrderLine, quantity: int) -> OrderLine:
    """Copy of `line` at a new quantity (>= 1)."""
    total = line_total(unit_price_of(line), quantity)
    return line.model_copy(update={"quantity": quantity, "total_price": total.quantize(CENT)})
