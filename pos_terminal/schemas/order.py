"""
Order-side types: variant selections, order lines, deal breakdowns, orders and the view model.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    Discriminator,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    Tag,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from pos_terminal.schemas.base import CamelModel, Money

ZERO = Decimal("0")


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKE_AWAY = "take_away"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DiscountType(str, Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class LineItemType(str, Enum):
    MENU_ITEM = "menu_item"
    DEAL = "deal"


class SelectedOption(CamelModel):
    option_id: str
    option_name: str
    price_modifier: Money = ZERO


def _key(info: SerializationInfo, name: str) -> str:
    return to_camel(name) if info.by_alias else name


def _pick(data: dict, name: str):
    """Read a field by camelCase or snake_case name."""
    camel = to_camel(name)
    return data[camel] if camel in data else data.get(name)


# The backend stores every selection flat:
#   {variantId, variantName, optionId, optionName, priceModifier, selectedOptions?}
# single-select entries carry the option inline, multi-select entries list theirs
# in selectedOptions and leave the inline option blank. `kind` is ours and optional.


class SingleChoice(CamelModel):
    """Exactly one option chosen for a single-select variant."""

    kind: Literal["single"] = "single"
    variant_id: str
    variant_name: str
    option: SelectedOption

    @model_validator(mode="before")
    @classmethod
    def _from_flat(cls, data: Any) -> Any:
        if isinstance(data, dict) and "option" not in data and _pick(data, "option_id"):
            data = {
                "kind": "single",
                "variantId": _pick(data, "variant_id"),
                "variantName": _pick(data, "variant_name"),
                "option": {
                    "optionId": _pick(data, "option_id"),
                    "optionName": _pick(data, "option_name") or "",
                    "priceModifier": _pick(data, "price_modifier") or 0,
                },
            }
        return data

    @model_serializer(mode="wrap")
    def _to_flat(self, handler: SerializerFunctionWrapHandler, info: SerializationInfo) -> dict:
        data = handler(self)
        data.update(data.pop(_key(info, "option")))
        return data

    @property
    def option_ids(self) -> list[str]:
        return [self.option.option_id]

    @property
    def price_modifier_total(self) -> Decimal:
        return self.option.price_modifier


class MultiChoice(CamelModel):
    """Options chosen for a multiple-select variant, or the full set of an all-mode variant."""

    kind: Literal["multiple", "all"] = "multiple"
    variant_id: str
    variant_name: str
    options: list[SelectedOption] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_flat(cls, data: Any) -> Any:
        if isinstance(data, dict) and "options" not in data:
            data = {
                "kind": _pick(data, "kind") or "multiple",
                "variantId": _pick(data, "variant_id"),
                "variantName": _pick(data, "variant_name"),
                "options": _pick(data, "selected_options") or [],
            }
        return data

    @model_serializer(mode="wrap")
    def _to_flat(self, handler: SerializerFunctionWrapHandler, info: SerializationInfo) -> dict:
        data = handler(self)
        data[_key(info, "option_id")] = ""
        data[_key(info, "option_name")] = ""
        data[_key(info, "price_modifier")] = 0.0 if info.mode == "json" else ZERO
        data[_key(info, "selected_options")] = data.pop(_key(info, "options"))
        return data

    @property
    def option_ids(self) -> list[str]:
        return [o.option_id for o in self.options]

    @property
    def price_modifier_total(self) -> Decimal:
        return sum((o.price_modifier for o in self.options), ZERO)


def _selection_kind(value: Any) -> Optional[str]:
    if isinstance(value, SingleChoice):
        return "single"
    if isinstance(value, MultiChoice):
        return "multiple"
    if not isinstance(value, dict):
        return None
    kind = _pick(value, "kind")
    if kind:
        return "single" if kind == "single" else "multiple"
    if _pick(value, "selected_options") or not (_pick(value, "option_id") or "option" in value):
        return "multiple"
    return "single"


VariantSelection = Annotated[
    Union[Annotated[SingleChoice, Tag("single")], Annotated[MultiChoice, Tag("multiple")]],
    Discriminator(_selection_kind),
]


class DealBreakdownEntry(CamelModel):
    """Kitchen-facing expansion of one deal member (or one unit of it)."""

    menu_item_id: str
    menu_item_name: str
    quantity: int = Field(ge=1)
    selected_variants: list[VariantSelection] = Field(default_factory=list)


class OrderLine(CamelModel):
    id: str
    order_id: str
    item_type: LineItemType
    menu_item_id: Optional[str] = None
    deal_id: Optional[str] = None
    name: Optional[str] = None
    quantity: int = 1
    selected_variants: list[VariantSelection] = Field(default_factory=list)
    unit_price: Money = ZERO
    total_price: Money = ZERO
    notes: Optional[str] = None
    deal_breakdown: Optional[list[DealBreakdownEntry]] = None

    @field_validator("selected_variants", mode="before")
    @classmethod
    def _null_variants(cls, value):
        return value or []


class Order(CamelModel):
    id: str
    order_number: str
    order_type: OrderType = OrderType.DINE_IN
    status: OrderStatus = OrderStatus.OPEN
    subtotal: Money = ZERO
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Money = ZERO
    discount_amount: Money = ZERO
    discount_reference: Optional[str] = None
    delivery_charge: Money = ZERO
    total: Money = ZERO
    is_paid: bool = False
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("discount_type", mode="before")
    @classmethod
    def _null_discount(cls, value):
        # backend stores "no discount" as null
        return value or DiscountType.NONE

    @field_validator(
        "subtotal", "discount_value", "discount_amount", "delivery_charge", "total", mode="before"
    )
    @classmethod
    def _null_amount(cls, value):
        return ZERO if value is None else value

    @property
    def is_open(self) -> bool:
        return self.status == OrderStatus.OPEN


class OrderTotals(CamelModel):
    subtotal: Money
    discount_amount: Money
    delivery_charge: Money
    total: Money


class OrderViewModel(CamelModel):
    """Everything the presentation layer renders for one order."""

    order: Order
    lines: list[OrderLine]
    totals: OrderTotals
    is_open: bool


class OrderCreate(CamelModel):
    """POST /orders body (terminal-facing and forwarded to the backend)."""

    order_type: OrderType
    register_session_id: Optional[str] = None
    table_id: Optional[str] = None
    waiter_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_id: Optional[str] = None
    rider_id: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_charge: Money = Field(default=ZERO, ge=0)
    notes: Optional[str] = None
    created_by: Optional[str] = None
