"""
Request bodies of the terminal API. Selections map variant id -> chosen option ids.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import Field

from pos_terminal.schemas.base import CamelModel
from pos_terminal.schemas.order import DiscountType

Selections = dict[str, list[str]]


class ItemAdd(CamelModel):
    """POST /orders/{order_id}/items. Without `selections` configured options are auto-attached."""

    menu_item_id: str
    quantity: int = Field(default=1, ge=1, le=100)
    notes: Optional[str] = None
    selections: Optional[Selections] = None


class DealAdd(CamelModel):
    """POST /orders/{order_id}/deals. `member_selections` maps deal member link id -> one entry per unit."""

    deal_id: str
    quantity: int = Field(default=1, ge=1, le=100)
    notes: Optional[str] = None
    selections: Optional[Selections] = None
    member_selections: dict[str, list[Selections]] = Field(default_factory=dict)


class LineEdit(CamelModel):
    """PUT /orders/{order_id}/items/{line_id}. Omitted `selections` keeps the stored ones."""

    selections: Optional[Selections] = None
    notes: Optional[str] = None


class QuantityUpdate(CamelModel):
    """PATCH /orders/{order_id}/items/{line_id}. Zero removes the line."""

    quantity: int = Field(ge=0, le=100)


class DiscountApply(CamelModel):
    discount_type: DiscountType
    discount_value: Decimal = Field(ge=0)
    discount_reference: Optional[str] = None


class DeliveryChargeUpdate(CamelModel):
    include_delivery_charge: bool
    delivery_charge: Decimal = Decimal("0")


class OrderComplete(CamelModel):
    is_paid: bool = False


class OrderCancel(CamelModel):
    reason: str = Field(min_length=1)


class SyncAck(CamelModel):
    delivered: int
