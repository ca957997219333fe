"""
Orders API - one terminal's view of an order: line composition, discounts, delivery charge, closing.
Every response is the recomputed view model; engine errors are mapped to HTTP statuses in main.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from pos_terminal.schemas.order import OrderCreate, OrderViewModel
from pos_terminal.schemas.terminal import (
    DealAdd,
    DeliveryChargeUpdate,
    DiscountApply,
    ItemAdd,
    LineEdit,
    OrderCancel,
    OrderComplete,
    QuantityUpdate,
    Selections,
)
from pos_terminal.services.registry import SessionRegistry, get_registry
from pos_terminal.services.selection import ItemSelection, SelectionState

router = APIRouter(prefix="/orders", tags=["orders"])


def _apply(state: SelectionState, selections: Optional[Selections]) -> None:
    for variant_id, option_ids in (selections or {}).items():
        state.select(variant_id, option_ids)


@router.post(
    "",
    response_model=OrderViewModel,
    status_code=status.HTTP_201_CREATED,
    summary="Open a new order",
    description="Delivery charge is dropped for non-delivery orders.",
)
async def create_order(
    body: OrderCreate, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.create(body)
    return session.view


@router.get("/{order_id}", response_model=OrderViewModel, summary="Get order view")
async def get_order(order_id: str, registry: SessionRegistry = Depends(get_registry)) -> OrderViewModel:
    session = await registry.get(order_id)
    return session.view


@router.post(
    "/{order_id}/refresh",
    response_model=OrderViewModel,
    summary="Refetch order and lines from the backend",
)
async def refresh_order(order_id: str, registry: SessionRegistry = Depends(get_registry)) -> OrderViewModel:
    session = await registry.get(order_id)
    return await session.refresh()


@router.post(
    "/{order_id}/items",
    response_model=OrderViewModel,
    status_code=status.HTTP_201_CREATED,
    summary="Add a menu item line",
    description="Without selections, configured options are auto-attached; required variants return 422 listing them.",
    responses={422: {"description": "Required variants missing"}},
)
async def add_item(
    order_id: str, body: ItemAdd, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    if body.selections is None:
        await session.quick_add_item(body.menu_item_id, body.quantity)
        return session.view
    selection = await session.prepare_item(body.menu_item_id)
    _apply(selection.state, body.selections)
    await session.add_item(selection, body.quantity, body.notes)
    return session.view


@router.post(
    "/{order_id}/deals",
    response_model=OrderViewModel,
    status_code=status.HTTP_201_CREATED,
    summary="Add a deal line",
    description="memberSelections maps deal member link id to one selection mapping per unit.",
    responses={422: {"description": "Required variants missing"}},
)
async def add_deal(
    order_id: str, body: DealAdd, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    if body.selections is None and not body.member_selections:
        await session.quick_add_deal(body.deal_id, body.quantity)
        return session.view
    selection = await session.prepare_deal(body.deal_id)
    _apply(selection.state, body.selections)
    for link_id, units in body.member_selections.items():
        for index, unit in enumerate(units):
            _apply(selection.unit(link_id, index), unit)
    await session.add_deal(selection, body.quantity, body.notes)
    return session.view


@router.put(
    "/{order_id}/items/{line_id}",
    response_model=OrderViewModel,
    summary="Edit a menu item line's selections and notes",
    responses={422: {"description": "Deal line, or required variants missing"}},
)
async def edit_line(
    order_id: str, line_id: str, body: LineEdit, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    selection = await session.prepare_edit(line_id)
    if body.selections is not None:
        selection = ItemSelection(selection.menu_item, selection.state.configs)
        _apply(selection.state, body.selections)
    await session.edit_line(line_id, selection, body.notes)
    return session.view


@router.patch(
    "/{order_id}/items/{line_id}",
    response_model=OrderViewModel,
    summary="Change line quantity (0 removes the line)",
)
async def update_quantity(
    order_id: str, line_id: str, body: QuantityUpdate, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    await session.update_quantity(line_id, body.quantity)
    return session.view


@router.delete("/{order_id}/items/{line_id}", response_model=OrderViewModel, summary="Remove a line")
async def remove_line(
    order_id: str, line_id: str, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    await session.remove_line(line_id)
    return session.view


@router.post("/{order_id}/discount", response_model=OrderViewModel, summary="Apply a discount")
async def apply_discount(
    order_id: str, body: DiscountApply, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    return await session.apply_discount(body.discount_type, body.discount_value, body.discount_reference)


@router.delete("/{order_id}/discount", response_model=OrderViewModel, summary="Remove the discount")
async def remove_discount(order_id: str, registry: SessionRegistry = Depends(get_registry)) -> OrderViewModel:
    session = await registry.get(order_id)
    return await session.remove_discount()


@router.put(
    "/{order_id}/delivery-charge",
    response_model=OrderViewModel,
    summary="Include or exclude the delivery charge",
)
async def set_delivery_charge(
    order_id: str, body: DeliveryChargeUpdate, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    amount = body.delivery_charge if body.include_delivery_charge else None
    return await session.set_delivery_charge(amount)


@router.post("/{order_id}/complete", response_model=OrderViewModel, summary="Complete the order")
async def complete_order(
    order_id: str, body: OrderComplete, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    view = await session.complete_order(body.is_paid)
    await registry.release(order_id)
    return view


@router.post("/{order_id}/cancel", response_model=OrderViewModel, summary="Cancel the order")
async def cancel_order(
    order_id: str, body: OrderCancel, registry: SessionRegistry = Depends(get_registry)
) -> OrderViewModel:
    session = await registry.get(order_id)
    view = await session.cancel_order(body.reason)
    await registry.release(order_id)
    return view


@router.delete(
    "/{order_id}/session",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop tracking an order on this terminal",
)
async def release_order(order_id: str, registry: SessionRegistry = Depends(get_registry)) -> Response:
    await registry.release(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
