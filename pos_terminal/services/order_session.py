"""
One terminal's live view of one order.

Every mutation is applied locally first and totals are recomputed before control returns,
then the backend is asked to persist it. A rejection discards local state by refetching
the canonical order and lines. Change notifications from other terminals and a periodic
timer trigger the same full refetch. No locking: the last successful server write wins.
"""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar
from uuid import uuid4

from pos_terminal.config import get_settings
from pos_terminal.core.errors import (
    InconsistentNumericInput,
    MutationRejected,
    OrderClosed,
    OrderEngineError,
    ValidationFailed,
)
from pos_terminal.core.metrics import ORDER_MUTATIONS, ORDER_RESYNCS
from pos_terminal.schemas.order import (
    DiscountType,
    LineItemType,
    Order,
    OrderCreate,
    OrderLine,
    OrderStatus,
    OrderType,
    OrderViewModel,
)
from pos_terminal.schemas.sync import SyncEvent
from pos_terminal.services import discounts
from pos_terminal.services.aggregator import compute_totals, line_subtotal, recompute
from pos_terminal.services.catalog_client import CatalogClient
from pos_terminal.services.catalog_resolver import resolve_deal, resolve_item_variants
from pos_terminal.services.change_feed import ChangeFeed
from pos_terminal.services.order_client import OrderClient
from pos_terminal.services.pricing import (
    expand_deal_breakdown,
    price_deal,
    price_menu_item,
    reprice_quantity,
)
from pos_terminal.services.selection import DealSelection, ItemSelection

logger = logging.getLogger(__name__)

T = TypeVar("T")

# resources whose changes can affect an open order's lines or totals
RESYNC_RESOURCES = ("orders", "order_items", "payments")


def _provisional_id() -> str:
    return f"local-{uuid4()}"


def _check_quantity(quantity: int) -> None:
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")


class OrderSession:
    def __init__(
        self,
        order_client: OrderClient,
        catalog: CatalogClient,
        order: Order,
        lines: list[OrderLine],
        terminal_id: Optional[str] = None,
    ) -> None:
        self.order_client = order_client
        self.catalog = catalog
        self.terminal_id = terminal_id or get_settings().terminal_id
        self.lines: list[OrderLine] = []
        self.order = order
        self._refresh_task: Optional[asyncio.Task] = None
        self._unsubscribe = None
        self._set_state(order, lines)

    @classmethod
    async def create(
        cls, order_client: OrderClient, catalog: CatalogClient, params: OrderCreate
    ) -> "OrderSession":
        if params.order_type != OrderType.DELIVERY:
            params = params.model_copy(update={"delivery_charge": Decimal("0")})
        order = await order_client.create_order(params)
        logger.info("order_created", extra={"order_id": order.id})
        return cls(order_client, catalog, order, [])

    @classmethod
    async def open(
        cls, order_client: OrderClient, catalog: CatalogClient, order_id: str
    ) -> "OrderSession":
        order, lines = await order_client.get_order_with_lines(order_id)
        return cls(order_client, catalog, order, lines)

    # state

    def _extra(self, line_id: Optional[str] = None) -> dict:
        return {"terminal_id": self.terminal_id, "order_id": self.order.id, "line_id": line_id}

    def _with_totals(self, order: Order) -> Order:
        order = discounts.rebase_discount(order, line_subtotal(self.lines))
        return recompute(order, self.lines)

    def _set_state(self, order: Order, lines: list[OrderLine]) -> None:
        self.lines = list(lines)
        self.order = self._with_totals(order)

    def _set_lines(self, lines: list[OrderLine]) -> None:
        """Local mutation: swap lines and recompute totals before anything else can observe them."""
        self.lines = list(lines)
        self.order = self._with_totals(self.order)

    def _replace_line(self, line_id: str, saved: OrderLine) -> None:
        if any(line.id == saved.id for line in self.lines) and saved.id != line_id:
            # a refetch already brought the server copy in
            self._set_lines([line for line in self.lines if line.id != line_id])
            return
        if any(line.id == line_id for line in self.lines):
            self._set_lines([saved if line.id == line_id else line for line in self.lines])
        else:
            self._set_lines([*self.lines, saved])

    def _line(self, line_id: str) -> OrderLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise MutationRejected(f"Order item not found: {line_id}", 404)

    def _ensure_open(self) -> None:
        if not self.order.is_open:
            raise OrderClosed(
                f"Order {self.order.order_number} is {self.order.status.value}; no further changes allowed"
            )

    @property
    def view(self) -> OrderViewModel:
        return OrderViewModel(
            order=self.order,
            lines=list(self.lines),
            totals=compute_totals(self.order, self.lines),
            is_open=self.order.is_open,
        )

    # reconciliation

    async def refresh(self) -> OrderViewModel:
        """Replace local state with the server's order and lines."""
        order, lines = await self.order_client.get_order_with_lines(self.order.id)
        self._set_state(order, lines)
        return self.view

    async def _resync(self, reason: str) -> None:
        ORDER_RESYNCS.labels(reason=reason).inc()
        try:
            await self.refresh()
        except OrderEngineError:
            logger.exception("order_resync_failed", extra=self._extra())

    def _snapshot(self) -> tuple[Order, list[OrderLine]]:
        return self.order, list(self.lines)

    async def _confirm(
        self,
        operation: str,
        call: Awaitable[T],
        snapshot: tuple[Order, list[OrderLine]],
        line_id: Optional[str] = None,
    ) -> T:
        """
        Await the backend call for a mutation already applied locally. On rejection the
        local change is dropped (state before the mutation) and the order is refetched.
        """
        try:
            result = await call
        except MutationRejected as e:
            self.order, self.lines = snapshot[0], list(snapshot[1])
            ORDER_MUTATIONS.labels(operation=operation, outcome="rejected").inc()
            logger.warning(
                "order_mutation_rejected",
                extra={**self._extra(line_id), "error": e.message, "operation": operation},
            )
            await self._resync("rejected")
            raise
        ORDER_MUTATIONS.labels(operation=operation, outcome="confirmed").inc()
        return result

    async def _on_change(self, event: SyncEvent) -> None:
        if event.resource == "orders" and event.id and event.id != self.order.id:
            return
        ORDER_RESYNCS.labels(reason="sync").inc()
        await self.refresh()

    def attach(self, feed: ChangeFeed) -> None:
        """Refetch whenever another terminal touches orders, order items or payments."""
        self.detach()
        self._unsubscribe = feed.subscribe(RESYNC_RESOURCES, self._on_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def start_auto_refresh(self, interval: Optional[float] = None) -> None:
        if interval is None:
            interval = get_settings().order_refresh_interval
        if interval <= 0 or (self._refresh_task is not None and not self._refresh_task.done()):
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(interval))

    async def _refresh_loop(self, interval: float) -> None:
        while self.order.is_open:
            await asyncio.sleep(interval)
            ORDER_RESYNCS.labels(reason="timer").inc()
            try:
                await self.refresh()
            except OrderEngineError as e:
                logger.warning("order_refresh_failed", extra={**self._extra(), "error": e.message})
        logger.info("order_refresh_stopped", extra={**self._extra(), "status": self.order.status.value})

    async def stop_auto_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        self.detach()
        await self.stop_auto_refresh()

    # selection

    async def prepare_item(self, menu_item_id: str) -> ItemSelection:
        menu_item = await self.catalog.get_menu_item(menu_item_id)
        configs = await resolve_item_variants(self.catalog, menu_item.id) if menu_item.has_variants else []
        return ItemSelection(menu_item, configs)

    async def prepare_deal(self, deal_id: str) -> DealSelection:
        return DealSelection(await resolve_deal(self.catalog, deal_id))

    async def prepare_edit(self, line_id: str) -> ItemSelection:
        """Selection pre-populated with the line's stored choices."""
        line = self._line(line_id)
        if line.item_type != LineItemType.MENU_ITEM or not line.menu_item_id:
            raise ValidationFailed("Cannot update variants for deal items")
        menu_item = await self.catalog.get_menu_item(line.menu_item_id)
        configs = await resolve_item_variants(self.catalog, menu_item.id)
        return ItemSelection(menu_item, configs, existing=line.selected_variants)

    # line mutations

    async def _add_line(self, line: OrderLine, operation: str) -> OrderLine:
        snapshot = self._snapshot()
        self._set_lines([*self.lines, line])
        saved = await self._confirm(
            operation, self.order_client.add_line(self.order.id, line), snapshot, line.id
        )
        self._replace_line(line.id, saved)
        logger.info("order_line_added", extra=self._extra(saved.id))
        return saved

    async def add_item(
        self, selection: ItemSelection, quantity: int = 1, notes: Optional[str] = None
    ) -> OrderLine:
        self._ensure_open()
        _check_quantity(quantity)
        selection.validate()
        chosen = selection.state.selections()
        price = price_menu_item(selection.menu_item, chosen, quantity)
        line = OrderLine(
            id=_provisional_id(),
            order_id=self.order.id,
            item_type=LineItemType.MENU_ITEM,
            menu_item_id=selection.menu_item.id,
            name=selection.menu_item.name,
            quantity=quantity,
            selected_variants=chosen,
            unit_price=price.unit_price,
            total_price=price.total_price,
            notes=notes or None,
        )
        return await self._add_line(line, "add_item")

    async def add_deal(
        self, selection: DealSelection, quantity: int = 1, notes: Optional[str] = None
    ) -> OrderLine:
        self._ensure_open()
        _check_quantity(quantity)
        selection.validate()
        chosen = selection.state.selections()
        price = price_deal(selection.deal, chosen, quantity)
        line = OrderLine(
            id=_provisional_id(),
            order_id=self.order.id,
            item_type=LineItemType.DEAL,
            deal_id=selection.deal.id,
            name=selection.deal.name,
            quantity=quantity,
            selected_variants=chosen,
            unit_price=price.unit_price,
            total_price=price.total_price,
            notes=notes or None,
            deal_breakdown=expand_deal_breakdown(selection.members, chosen, selection.unit_selections()),
        )
        return await self._add_line(line, "add_deal")

    async def quick_add_item(self, menu_item_id: str, quantity: int = 1) -> OrderLine:
        """
        Add without prompting. Configured options are auto-attached; an item with required
        variants fails with ValidationFailed naming them, so the caller can prompt instead.
        """
        self._ensure_open()
        selection = await self.prepare_item(menu_item_id)
        selection.state.auto_attach()
        return await self.add_item(selection, quantity)

    async def quick_add_deal(self, deal_id: str, quantity: int = 1) -> OrderLine:
        self._ensure_open()
        selection = await self.prepare_deal(deal_id)
        selection.auto_attach()
        return await self.add_deal(selection, quantity)

    async def edit_line(
        self, line_id: str, selection: ItemSelection, notes: Optional[str] = None
    ) -> OrderLine:
        """Replace a menu item line's selections wholesale and reprice it at its current quantity."""
        self._ensure_open()
        line = self._line(line_id)
        if line.item_type != LineItemType.MENU_ITEM:
            raise ValidationFailed("Cannot update variants for deal items")
        selection.validate()
        chosen = selection.state.selections()
        price = price_menu_item(selection.menu_item, chosen, line.quantity)
        updated = line.model_copy(
            update={
                "selected_variants": chosen,
                "unit_price": price.unit_price,
                "total_price": price.total_price,
                "notes": notes or None,
            }
        )
        snapshot = self._snapshot()
        self._set_lines([updated if x.id == line_id else x for x in self.lines])
        saved = await self._confirm(
            "edit_line", self.order_client.update_line_variants(updated), snapshot, line_id
        )
        if saved is not None:
            self._replace_line(line_id, saved)
            return saved
        return updated

    async def update_quantity(self, line_id: str, quantity: int) -> Optional[OrderLine]:
        """Set a line's quantity; zero or less removes the line."""
        self._ensure_open()
        line = self._line(line_id)
        if quantity <= 0:
            await self.remove_line(line_id)
            return None

        try:
            updated = reprice_quantity(line, quantity)
        except InconsistentNumericInput:
            logger.error("invalid_price_calculation", extra={**self._extra(line_id), "quantity": quantity})
            await self._resync("numeric")
            raise

        snapshot = self._snapshot()
        self._set_lines([updated if x.id == line_id else x for x in self.lines])
        saved = await self._confirm(
            "update_quantity",
            self.order_client.update_line_quantity(self.order.id, line_id, quantity, updated.total_price),
            snapshot,
            line_id,
        )
        if saved is not None:
            self._replace_line(line_id, saved)
            return saved
        return updated

    async def remove_line(self, line_id: str) -> None:
        self._ensure_open()
        self._line(line_id)
        snapshot = self._snapshot()
        self._set_lines([x for x in self.lines if x.id != line_id])
        await self._confirm(
            "remove_line", self.order_client.remove_line(self.order.id, line_id), snapshot, line_id
        )

    # order-level mutations

    async def apply_discount(
        self, discount_type: DiscountType, value: Decimal, reference: Optional[str] = None
    ) -> OrderViewModel:
        self._ensure_open()
        discounted = discounts.apply_discount(self.order, discount_type, Decimal(value), reference)
        snapshot = self._snapshot()
        self.order = recompute(discounted, self.lines)
        saved = await self._confirm("apply_discount", self.order_client.apply_discount(self.order), snapshot)
        self.order = self._with_totals(saved)
        return self.view

    async def remove_discount(self) -> OrderViewModel:
        self._ensure_open()
        snapshot = self._snapshot()
        self.order = recompute(discounts.remove_discount(self.order), self.lines)
        saved = await self._confirm("remove_discount", self.order_client.apply_discount(self.order), snapshot)
        self.order = self._with_totals(saved)
        return self.view

    async def set_delivery_charge(self, amount: Optional[Decimal]) -> OrderViewModel:
        """Opt a delivery order into (or out of, with None) a delivery charge."""
        self._ensure_open()
        charge = Decimal("0") if amount is None else Decimal(amount)
        if not charge.is_finite() or charge < 0:
            charge = Decimal("0")
        if self.order.order_type != OrderType.DELIVERY and charge > 0:
            raise ValidationFailed("Delivery charge only applies to delivery orders")
        snapshot = self._snapshot()
        self.order = recompute(self.order.model_copy(update={"delivery_charge": charge}), self.lines)
        saved = await self._confirm(
            "set_delivery_charge",
            self.order_client.update_order(
                self.order.id,
                {"deliveryCharge": float(charge), "total": float(self.order.total)},
            ),
            snapshot,
        )
        self.order = self._with_totals(saved)
        return self.view

    async def _close(self, operation: str, status: OrderStatus, changes: dict) -> OrderViewModel:
        self._ensure_open()
        snapshot = self._snapshot()
        self.order = self.order.model_copy(update={"status": status})
        saved = await self._confirm(
            operation,
            self.order_client.update_order(self.order.id, {"status": status.value, **changes}),
            snapshot,
        )
        self.order = self._with_totals(saved)
        await self.stop_auto_refresh()
        logger.info("order_closed", extra={**self._extra(), "status": status.value})
        return self.view

    async def complete_order(self, is_paid: bool = False) -> OrderViewModel:
        return await self._close("complete_order", OrderStatus.COMPLETED, {"isPaid": is_paid})

    async def cancel_order(self, reason: str) -> OrderViewModel:
        return await self._close("cancel_order", OrderStatus.CANCELLED, {"cancellationReason": reason})
