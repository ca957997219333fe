"""
Pytest fixtures: in-memory catalog and order backend, a small seeded menu, ASGI test client.
No network: the HTTP clients themselves are covered with respx in tests/integration.
"""
from __future__ import annotations

import itertools
from decimal import Decimal
from typing import Any, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from pos_terminal.core.errors import CatalogUnavailable, MutationRejected, OrderUnavailable
from pos_terminal.schemas.catalog import (
    Deal,
    DealMemberLink,
    MenuItem,
    OwnerKind,
    Variant,
    VariantBinding,
    VariantConfig,
    VariantOption,
)
from pos_terminal.schemas.order import DiscountType, Order, OrderCreate, OrderLine
from pos_terminal.services.change_feed import ChangeFeed
from pos_terminal.services.registry import SessionRegistry


def money(value) -> Decimal:
    return Decimal(str(value))


def make_option(option_id: str, variant_id: str, price="0", active: bool = True, sort_order: int = 0) -> VariantOption:
    return VariantOption(
        id=option_id,
        variant_id=variant_id,
        name=option_id.replace("-", " ").title(),
        price_modifier=money(price),
        sort_order=sort_order,
        is_active=active,
    )


def make_config(
    variant_id: str,
    options: list[VariantOption],
    mode: str = "single",
    required: bool = False,
    restricted: bool = False,
) -> VariantConfig:
    return VariantConfig(
        variant=Variant(id=variant_id, name=variant_id.title()),
        options=options,
        is_required=required,
        selection_mode=mode,
        is_restricted=restricted,
    )


class FakeCatalog:
    """CatalogClient stand-in backed by dicts."""

    def __init__(self) -> None:
        self.menu_items: dict[str, MenuItem] = {}
        self.deals: dict[str, Deal] = {}
        self.members: dict[str, list[DealMemberLink]] = {}
        self.bindings: dict[tuple[OwnerKind, str], list[VariantBinding]] = {}
        self.variants: dict[str, Variant] = {}
        self.options: dict[str, list[VariantOption]] = {}
        self.unavailable = False

    def _check(self) -> None:
        if self.unavailable:
            raise CatalogUnavailable("backend unreachable")

    def add_variant(self, variant_id: str, name: str, options: list[VariantOption]) -> None:
        self.variants[variant_id] = Variant(id=variant_id, name=name)
        self.options[variant_id] = options

    def bind(
        self,
        owner: OwnerKind,
        owner_id: str,
        variant_id: str,
        required: bool = False,
        mode: str = "single",
        available: Optional[list[str]] = None,
    ) -> None:
        key = "menu_item_id" if owner == OwnerKind.MENU_ITEM else "deal_id"
        self.bindings.setdefault((owner, owner_id), []).append(
            VariantBinding(
                variant_id=variant_id,
                is_required=required,
                selection_mode=mode,
                available_option_ids=available or [],
                **{key: owner_id},
            )
        )

    async def get_menu_item(self, menu_item_id: str) -> MenuItem:
        self._check()
        if menu_item_id not in self.menu_items:
            raise CatalogUnavailable(f"Menu item not found: {menu_item_id}", 404)
        return self.menu_items[menu_item_id]

    async def get_deal(self, deal_id: str) -> Deal:
        self._check()
        if deal_id not in self.deals:
            raise CatalogUnavailable(f"Deal not found: {deal_id}", 404)
        return self.deals[deal_id]

    async def get_deal_members(self, deal_id: str) -> list[DealMemberLink]:
        self._check()
        return sorted(self.members.get(deal_id, []), key=lambda link: link.sort_order)

    async def get_variant_bindings(self, owner: OwnerKind, owner_id: str) -> list[VariantBinding]:
        self._check()
        return list(self.bindings.get((owner, owner_id), []))

    async def get_variant(self, variant_id: str) -> Optional[Variant]:
        self._check()
        return self.variants.get(variant_id)

    async def get_variant_options(self, variant_id: str) -> list[VariantOption]:
        self._check()
        return sorted(self.options.get(variant_id, []), key=lambda o: o.sort_order)


class FakeOrderClient:
    """OrderClient stand-in: stores what it is sent and can be told to reject operations."""

    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.lines: dict[str, list[OrderLine]] = {}
        self.reject: set[str] = set()
        self.calls: list[str] = []
        self._ids = itertools.count(1)

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.reject:
            raise MutationRejected(f"{operation} rejected by backend", 400)

    def _order(self, order_id: str) -> Order:
        if order_id not in self.orders:
            raise MutationRejected(f"Order not found: {order_id}", 404)
        return self.orders[order_id]

    def seed(self, order: Order, lines: Optional[list[OrderLine]] = None) -> None:
        self.orders[order.id] = order
        self.lines[order.id] = list(lines or [])

    async def create_order(self, params: OrderCreate) -> Order:
        self._call("create_order")
        n = next(self._ids)
        order = Order(
            id=f"order-{n}",
            order_number=f"ORD-{n:04d}",
            order_type=params.order_type,
            delivery_charge=params.delivery_charge,
            notes=params.notes,
        )
        self.seed(order)
        return order

    async def get_order_with_lines(self, order_id: str) -> tuple[Order, list[OrderLine]]:
        self.calls.append("get_order_with_lines")
        if order_id not in self.orders:
            raise OrderUnavailable(f"Order not found: {order_id}", 404)
        return self.orders[order_id], list(self.lines[order_id])

    async def add_line(self, order_id: str, line: OrderLine) -> OrderLine:
        self._call("add_line")
        self._order(order_id)
        saved = line.model_copy(update={"id": f"line-{next(self._ids)}"})
        self.lines[order_id].append(saved)
        return saved

    def _update_line(self, order_id: str, line_id: str, changes: dict[str, Any]) -> OrderLine:
        for index, line in enumerate(self.lines.get(order_id, [])):
            if line.id == line_id:
                saved = line.model_copy(update=changes)
                self.lines[order_id][index] = saved
                return saved
        raise MutationRejected(f"Order item not found: {line_id}", 404)

    async def update_line_quantity(self, order_id, line_id, quantity, total_price) -> OrderLine:
        self._call("update_line_quantity")
        return self._update_line(order_id, line_id, {"quantity": quantity, "total_price": total_price})

    async def update_line_variants(self, line: OrderLine) -> OrderLine:
        self._call("update_line_variants")
        return self._update_line(
            line.order_id,
            line.id,
            {
                "selected_variants": line.selected_variants,
                "notes": line.notes,
                "unit_price": line.unit_price,
                "total_price": line.total_price,
            },
        )

    async def remove_line(self, order_id: str, line_id: str) -> None:
        self._call("remove_line")
        before = len(self.lines.get(order_id, []))
        self.lines[order_id] = [x for x in self.lines.get(order_id, []) if x.id != line_id]
        if len(self.lines[order_id]) == before:
            raise MutationRejected(f"Order item not found: {line_id}", 404)

    async def apply_discount(self, order: Order) -> Order:
        self._call("apply_discount")
        stored = self._order(order.id).model_copy(
            update={
                "discount_type": order.discount_type or DiscountType.NONE,
                "discount_value": order.discount_value,
                "discount_amount": order.discount_amount,
                "discount_reference": order.discount_reference,
                "subtotal": order.subtotal,
                "total": order.total,
            }
        )
        self.orders[order.id] = stored
        return stored

    async def update_order(self, order_id: str, changes: dict[str, Any]) -> Order:
        self._call("update_order")
        stored = Order.model_validate({**self._order(order_id).to_wire(), **changes})
        self.orders[order_id] = stored
        return stored


@pytest.fixture
def catalog() -> FakeCatalog:
    """
    burger 500: Size (required single: small +0, large +150), Extras (multiple: cheese +50, bacon +100)
    fries 200: Salt (optional single with one option)
    cola 150: no variants
    combo deal 1200: burger x2 + cola x1; Drink (multiple: coke +0, fries +100)
    """
    c = FakeCatalog()
    c.menu_items["burger"] = MenuItem(id="burger", name="Burger", price=money(500), has_variants=True)
    c.menu_items["fries"] = MenuItem(id="fries", name="Fries", price=money(200), has_variants=True)
    c.menu_items["cola"] = MenuItem(id="cola", name="Cola", price=money(150))

    c.add_variant("size", "Size", [
        make_option("small", "size", "0", sort_order=1),
        make_option("large", "size", "150", sort_order=2),
    ])
    c.add_variant("extras", "Extras", [
        make_option("cheese", "extras", "50", sort_order=1),
        make_option("bacon", "extras", "100", sort_order=2),
    ])
    c.add_variant("salt", "Salt", [make_option("sea-salt", "salt", "0")])
    c.add_variant("drink", "Drink", [
        make_option("coke", "drink", "0", sort_order=1),
        make_option("side-fries", "drink", "100", sort_order=2),
    ])

    c.bind(OwnerKind.MENU_ITEM, "burger", "size", required=True)
    c.bind(OwnerKind.MENU_ITEM, "burger", "extras", mode="multiple")
    c.bind(OwnerKind.MENU_ITEM, "fries", "salt")

    c.deals["combo"] = Deal(id="combo", name="Combo", price=money(1200), has_variants=True)
    c.members["combo"] = [
        DealMemberLink(id="link-burger", deal_id="combo", menu_item_id="burger", quantity=2, sort_order=0),
        DealMemberLink(id="link-cola", deal_id="combo", menu_item_id="cola", quantity=1, sort_order=1),
    ]
    c.bind(OwnerKind.DEAL, "combo", "drink", mode="multiple")
    return c


@pytest.fixture
def order_client() -> FakeOrderClient:
    return FakeOrderClient()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def registry(order_client, catalog, feed) -> SessionRegistry:
    return SessionRegistry(order_client=order_client, catalog=catalog, feed=feed, auto_refresh=False)


@pytest.fixture
async def client(registry):
    from pos_terminal.main import app
    from pos_terminal.services.registry import get_registry

    app.dependency_overrides[get_registry] = lambda: registry
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
        await registry.close_all()
