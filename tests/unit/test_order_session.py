"""
Unit tests: optimistic mutations, rollback on rejection, sync and timer refetches, order-level changes.
Runs against the in-memory backend fakes from conftest.
"""
import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from pos_terminal.core.errors import (
    InconsistentNumericInput,
    MutationRejected,
    OrderClosed,
    OrderUnavailable,
    ValidationFailed,
)
from pos_terminal.schemas.order import (
    DiscountType,
    LineItemType,
    OrderCreate,
    OrderLine,
    OrderStatus,
    OrderType,
)
from pos_terminal.schemas.sync import SyncEvent
from pos_terminal.services.order_session import OrderSession
from pos_terminal.services.selection import ItemSelection

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def session(order_client, catalog):
    s = await OrderSession.create(order_client, catalog, OrderCreate(order_type=OrderType.DINE_IN))
    yield s
    await s.close()


async def add_burger(session, option_id="large", quantity=2):
    selection = await session.prepare_item("burger")
    selection.state.toggle_option("size", option_id)
    return await session.add_item(selection, quantity)


async def test_add_item_prices_line_and_totals(session, order_client):
    line = await add_burger(session)

    assert line.id.startswith("line-")
    assert line.unit_price == Decimal("650")
    assert line.total_price == Decimal("1300")
    assert [x.id for x in session.lines] == [line.id]
    assert session.order.subtotal == Decimal("1300")
    assert session.view.totals.total == Decimal("1300")
    assert order_client.lines[session.order.id][0].id == line.id


async def test_totals_are_recomputed_before_backend_confirms(session, order_client):
    seen = {}
    original = order_client.add_line

    async def add_line(order_id, line):
        seen["subtotal"] = session.order.subtotal
        seen["provisional"] = [x.id for x in session.lines]
        return await original(order_id, line)

    order_client.add_line = add_line
    await add_burger(session)

    assert seen["subtotal"] == Decimal("1300")
    assert seen["provisional"][0].startswith("local-")


async def test_required_variant_gate_blocks_add(session, order_client):
    selection = await session.prepare_item("burger")
    assert selection.needs_prompt
    with pytest.raises(ValidationFailed) as exc:
        await session.add_item(selection)
    assert exc.value.missing == ["Size"]
    assert session.lines == []
    assert "add_line" not in order_client.calls


async def test_quick_add_auto_attaches_or_names_missing(session):
    fries = await session.quick_add_item("fries")
    assert [s.option_ids for s in fries.selected_variants] == [["sea-salt"]]

    cola = await session.quick_add_item("cola", quantity=2)
    assert cola.total_price == Decimal("300")

    with pytest.raises(ValidationFailed) as exc:
        await session.quick_add_item("burger")
    assert exc.value.missing == ["Size"]
    assert session.order.subtotal == Decimal("500")


async def test_rejected_add_rolls_back_to_server_state(session, order_client):
    await add_burger(session, quantity=1)
    order_client.reject.add("add_line")

    with pytest.raises(MutationRejected):
        await session.quick_add_item("cola")

    assert len(session.lines) == 1
    assert session.order.subtotal == Decimal("650")
    assert order_client.calls[-1] == "get_order_with_lines"


async def test_edit_same_options_keeps_price(session):
    line = await add_burger(session)

    selection = await session.prepare_edit(line.id)
    assert [s.option_ids for s in selection.state.selections()] == [["large"]]
    edited = await session.edit_line(line.id, selection)

    assert edited.unit_price == Decimal("650")
    assert edited.total_price == Decimal("1300")
    assert session.order.subtotal == Decimal("1300")


async def test_edit_replaces_selections_and_reprices(session):
    line = await add_burger(session)

    current = await session.prepare_edit(line.id)
    selection = ItemSelection(current.menu_item, current.state.configs)
    selection.state.toggle_option("size", "small")
    selection.state.toggle_option("extras", "cheese")
    edited = await session.edit_line(line.id, selection, notes="no onions")

    assert edited.unit_price == Decimal("550")
    assert edited.total_price == Decimal("1100")
    assert edited.notes == "no onions"
    assert session.order.total == Decimal("1100")


async def test_rejected_edit_restores_stored_line(session, order_client):
    line = await add_burger(session)
    order_client.reject.add("update_line_variants")

    current = await session.prepare_edit(line.id)
    selection = ItemSelection(current.menu_item, current.state.configs)
    selection.state.toggle_option("size", "small")
    with pytest.raises(MutationRejected):
        await session.edit_line(line.id, selection)

    assert session.lines[0].total_price == Decimal("1300")
    assert session.order.subtotal == Decimal("1300")


async def test_deal_lines_cannot_be_edited(session):
    selection = await session.prepare_deal("combo")
    for index in range(2):
        selection.unit("link-burger", index).toggle_option("size", "small")
    line = await session.add_deal(selection)

    with pytest.raises(ValidationFailed):
        await session.prepare_edit(line.id)


async def test_add_deal_price_is_flat_and_breakdown_per_unit(session):
    selection = await session.prepare_deal("combo")
    selection.state.select("drink", ["coke", "side-fries"])
    selection.unit("link-burger", 0).toggle_option("size", "small")
    selection.unit("link-burger", 1).toggle_option("size", "large")
    selection.unit("link-burger", 1).toggle_option("extras", "bacon")

    line = await session.add_deal(selection)

    assert line.item_type == LineItemType.DEAL
    assert line.unit_price == Decimal("1300")
    assert line.total_price == Decimal("1300")
    assert [(e.menu_item_id, e.quantity) for e in line.deal_breakdown] == [
        ("burger", 1),
        ("burger", 1),
        ("cola", 1),
    ]
    assert [s.variant_id for s in line.deal_breakdown[1].selected_variants] == ["drink", "size", "extras"]


async def test_update_quantity_reprices_and_zero_removes(session, order_client):
    line = await add_burger(session)

    updated = await session.update_quantity(line.id, 3)
    assert updated.total_price == Decimal("1950")
    assert session.order.subtotal == Decimal("1950")

    assert await session.update_quantity(line.id, 0) is None
    assert session.lines == []
    assert session.order.total == Decimal("0")
    assert order_client.lines[session.order.id] == []


async def test_unknown_line_is_rejected(session):
    with pytest.raises(MutationRejected) as exc:
        await session.remove_line("line-999")
    assert exc.value.status_code == 404


async def test_percentage_discount_follows_subtotal(session):
    await add_burger(session, option_id="small", quantity=2)
    view = await session.apply_discount(DiscountType.PERCENTAGE, Decimal("10"))
    assert view.totals.discount_amount == Decimal("100.00")
    assert view.totals.total == Decimal("900.00")

    await session.quick_add_item("cola")
    assert session.order.discount_amount == Decimal("115.00")
    assert session.order.total == Decimal("1035.00")

    view = await session.remove_discount()
    assert view.totals.total == Decimal("1150")


async def test_fixed_discount_clamped_to_subtotal(session):
    await add_burger(session, option_id="small", quantity=1)
    view = await session.apply_discount(DiscountType.FIXED, Decimal("800"))
    assert view.totals.discount_amount == Decimal("500")
    assert view.totals.total == Decimal("0")


async def test_delivery_charge(order_client, catalog):
    dine_in = await OrderSession.create(
        order_client, catalog, OrderCreate(order_type=OrderType.DINE_IN, delivery_charge=Decimal("50"))
    )
    assert dine_in.order.delivery_charge == Decimal("0")
    with pytest.raises(ValidationFailed):
        await dine_in.set_delivery_charge(Decimal("50"))

    delivery = await OrderSession.create(order_client, catalog, OrderCreate(order_type=OrderType.DELIVERY))
    await delivery.quick_add_item("cola")
    view = await delivery.set_delivery_charge(Decimal("50"))
    assert view.totals.total == Decimal("200")
    view = await delivery.set_delivery_charge(None)
    assert view.totals.total == Decimal("150")


async def test_sync_event_triggers_refetch(session, order_client, feed):
    session.attach(feed)
    order_client.lines[session.order.id].append(
        OrderLine(
            id="line-remote",
            order_id=session.order.id,
            item_type=LineItemType.MENU_ITEM,
            menu_item_id="cola",
            quantity=1,
            unit_price=Decimal("150"),
            total_price=Decimal("150"),
        )
    )

    await feed.publish(SyncEvent(resource="orders", action="update", id="order-other"))
    assert session.lines == []

    await feed.publish(SyncEvent(resource="order_items", action="create", id="line-remote"))
    assert [x.id for x in session.lines] == ["line-remote"]
    assert session.order.subtotal == Decimal("150")

    session.detach()
    assert feed.listener_count("order_items") == 0


async def test_timer_refresh(session, order_client):
    order_client.orders[session.order.id] = order_client.orders[session.order.id].model_copy(
        update={"notes": "table moved"}
    )
    session.start_auto_refresh(interval=0.01)
    await asyncio.sleep(0.05)
    assert session.order.notes == "table moved"
    await session.stop_auto_refresh()


async def test_closed_order_refuses_mutations(session, order_client):
    line = await add_burger(session)
    view = await session.complete_order(is_paid=True)
    assert view.order.status == OrderStatus.COMPLETED
    assert view.order.is_paid
    assert not view.is_open

    calls = list(order_client.calls)
    with pytest.raises(OrderClosed):
        await session.quick_add_item("cola")
    with pytest.raises(OrderClosed):
        await session.update_quantity(line.id, 5)
    with pytest.raises(OrderClosed):
        await session.apply_discount(DiscountType.FIXED, Decimal("1"))
    assert order_client.calls == calls


async def test_cancel_order(session):
    view = await session.cancel_order("customer left")
    assert view.order.status == OrderStatus.CANCELLED
    assert view.order.cancellation_reason == "customer left"
    with pytest.raises(OrderClosed):
        await session.cancel_order("again")


async def test_rejection_still_raises_when_refetch_fails(session, order_client):
    await session.quick_add_item("cola")
    before = list(session.lines)
    order_client.reject.add("add_line")
    with patch.object(
        order_client, "get_order_with_lines", AsyncMock(side_effect=OrderUnavailable("backend down"))
    ) as refetch:
        with pytest.raises(MutationRejected):
            await session.quick_add_item("cola")
    refetch.assert_awaited_once()
    assert session.lines == before
    assert session.order.subtotal == Decimal("150")
    assert session.order.total == Decimal("150")


async def test_rejected_discount_restores_previous_totals_when_refetch_fails(session, order_client):
    await add_burger(session, option_id="small", quantity=2)
    order_client.reject.add("apply_discount")
    with patch.object(
        order_client, "get_order_with_lines", AsyncMock(side_effect=OrderUnavailable("backend down"))
    ):
        with pytest.raises(MutationRejected):
            await session.apply_discount(DiscountType.FIXED, Decimal("200"))

    assert session.order.discount_type == DiscountType.NONE
    assert session.order.discount_amount == Decimal("0")
    assert session.order.total == Decimal("1000")


async def test_timer_refresh_stops_once_closed_elsewhere(session, order_client):
    order_client.orders[session.order.id] = order_client.orders[session.order.id].model_copy(
        update={"status": OrderStatus.COMPLETED}
    )
    session.start_auto_refresh(interval=0.01)
    await asyncio.sleep(0.05)

    assert not session.order.is_open
    assert session._refresh_task.done()
    assert order_client.calls.count("get_order_with_lines") == 1


async def test_non_finite_line_total_forces_resync(session, order_client):
    broken = OrderLine(
        id="line-broken",
        order_id=session.order.id,
        item_type=LineItemType.MENU_ITEM,
        menu_item_id="cola",
        quantity=1,
    ).model_copy(update={"total_price": Decimal("Infinity")})
    session.lines = [broken]

    with pytest.raises(InconsistentNumericInput):
        await session.update_quantity("line-broken", 2)

    assert "get_order_with_lines" in order_client.calls
    assert "update_line_quantity" not in order_client.calls
    assert session.lines == []


async def test_refresh_reads_lines_stored_by_other_terminals(session, order_client):
    stored = {
        "id": "line-web",
        "orderId": session.order.id,
        "itemType": "menu_item",
        "menuItemId": "burger",
        "quantity": 1,
        "selectedVariants": [
            {"variantId": "size", "variantName": "Size", "optionId": "large", "optionName": "Large",
             "priceModifier": 150},
            {"variantId": "extras", "variantName": "Extras", "optionId": "", "optionName": "",
             "priceModifier": 0, "selectedOptions": [
                 {"optionId": "cheese", "optionName": "Cheese", "priceModifier": 50},
             ]},
        ],
        "unitPrice": 700,
        "totalPrice": 700,
    }
    order_client.lines[session.order.id].append(OrderLine.model_validate(stored))

    await session.refresh()
    selection = await session.prepare_edit("line-web")

    assert [s.option_ids for s in selection.state.selections()] == [["large"], ["cheese"]]
    assert selection.state.price_modifier_total == Decimal("200")
    assert session.order.subtotal == Decimal("700")
