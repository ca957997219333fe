"""
Read-only catalog data as served by the backend: menu items, deals, variants, bindings.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from pos_terminal.schemas.base import CamelModel, Money


class SelectionMode(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    ALL = "all"


class OwnerKind(str, Enum):
    """What a variant binding is attached to."""

    MENU_ITEM = "menu_item"
    DEAL = "deal"


class MenuItem(CamelModel):
    id: str
    name: str
    price: Money = Field(ge=0)
    category_id: Optional[str] = None
    has_variants: bool = False
    is_active: bool = True
    is_deal_only: bool = False


class Deal(CamelModel):
    id: str
    name: str
    price: Money = Field(ge=0)
    category_id: Optional[str] = None
    has_variants: bool = False
    is_active: bool = True


class DealMemberLink(CamelModel):
    """One bundle member of a deal: `quantity` units of a menu item."""

    id: str
    deal_id: str
    menu_item_id: str
    quantity: int = Field(default=1, ge=1)
    sort_order: int = 0


class Variant(CamelModel):
    id: str
    name: str
    type: str = "custom"
    sort_order: int = 0
    is_active: bool = True


class VariantOption(CamelModel):
    id: str
    variant_id: str
    name: str
    price_modifier: Money = Decimal("0")
    sort_order: int = 0
    is_active: bool = True


class VariantBinding(CamelModel):
    """
    Attaches a variant to a menu item or deal.
    An empty `available_option_ids` means every active option is allowed.
    """

    variant_id: str
    menu_item_id: Optional[str] = None
    deal_id: Optional[str] = None
    is_required: bool = False
    selection_mode: SelectionMode = SelectionMode.SINGLE
    available_option_ids: list[str] = Field(default_factory=list)

    @field_validator("selection_mode", mode="before")
    @classmethod
    def _default_mode(cls, value):
        return value or SelectionMode.SINGLE

    @field_validator("available_option_ids", mode="before")
    @classmethod
    def _default_ids(cls, value):
        return value or []


class VariantConfig(CamelModel):
    """A binding resolved against the catalog, ready for selection."""

    variant: Variant
    options: list[VariantOption]
    is_required: bool
    selection_mode: SelectionMode
    # binding narrowed the option set to an explicit subset
    is_restricted: bool = False

    def option(self, option_id: str) -> Optional[VariantOption]:
        return next((o for o in self.options if o.id == option_id), None)


class ResolvedDealMember(CamelModel):
    link: DealMemberLink
    menu_item: MenuItem
    variants: list[VariantConfig] = Field(default_factory=list)

    @property
    def has_variants(self) -> bool:
        return self.menu_item.has_variants


class ResolvedDeal(CamelModel):
    deal: Deal
    variants: list[VariantConfig] = Field(default_factory=list)
    members: list[ResolvedDealMember] = Field(default_factory=list)
