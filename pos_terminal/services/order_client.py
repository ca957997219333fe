"""
Order persistence on the POS backend. Every call returns the server's canonical record.
Write failures raise MutationRejected; read failures raise OrderUnavailable.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pos_terminal.core.errors import MutationRejected, OrderUnavailable
from pos_terminal.schemas.order import DiscountType, Order, OrderCreate, OrderLine
from pos_terminal.services.backend_client import BackendClient


def _money(value: Decimal) -> float:
    # backend stores REAL columns
    return float(value)


class OrderClient(BackendClient):
    async def create_order(self, params: OrderCreate) -> Order:
        body = await self._request("POST", "/orders", MutationRejected, json=params.to_wire())
        return self._parse(Order, body, MutationRejected)

    async def get_order_with_lines(self, order_id: str) -> tuple[Order, list[OrderLine]]:
        body = await self._request("GET", f"/orders/{order_id}", OrderUnavailable)
        if not isinstance(body, dict):
            raise OrderUnavailable(f"Malformed order payload for {order_id}")
        items = body.get("items") or []
        order = self._parse(Order, {k: v for k, v in body.items() if k != "items"}, OrderUnavailable)
        return order, [self._parse(OrderLine, x, OrderUnavailable) for x in items]

    async def add_line(self, order_id: str, line: OrderLine) -> OrderLine:
        payload = line.to_wire()
        payload.pop("id", None)
        body = await self._request("POST", f"/orders/{order_id}/items", MutationRejected, json=payload)
        return self._parse(OrderLine, body, MutationRejected)

    async def update_line_quantity(
        self, order_id: str, line_id: str, quantity: int, total_price: Decimal
    ) -> Optional[OrderLine]:
        body = await self._request(
            "PUT",
            f"/orders/{order_id}/items/{line_id}",
            MutationRejected,
            json={"quantity": quantity, "totalPrice": _money(total_price)},
        )
        return self._parse(OrderLine, body, MutationRejected) if body else None

    async def update_line_variants(self, line: OrderLine) -> Optional[OrderLine]:
        wire = line.to_wire()
        payload = {
            k: wire[k] for k in ("selectedVariants", "notes", "unitPrice", "totalPrice")
        }
        body = await self._request(
            "PUT", f"/orders/{line.order_id}/items/{line.id}", MutationRejected, json=payload
        )
        return self._parse(OrderLine, body, MutationRejected) if body else None

    async def remove_line(self, order_id: str, line_id: str) -> None:
        await self._request("DELETE", f"/orders/{order_id}/items/{line_id}", MutationRejected)

    async def apply_discount(self, order: Order) -> Order:
        """Persist the discount fields (and resulting totals) already computed locally."""
        return await self.update_order(
            order.id,
            {
                "discountType": order.discount_type.value if order.discount_type != DiscountType.NONE else None,
                "discountValue": _money(order.discount_value),
                "discountReference": order.discount_reference,
                "discountAmount": _money(order.discount_amount),
                "subtotal": _money(order.subtotal),
                "total": _money(order.total),
            },
        )

    async def update_order(self, order_id: str, changes: dict[str, Any]) -> Order:
        body = await self._request("PUT", f"/orders/{order_id}", MutationRejected, json=changes)
        if isinstance(body, dict):
            body = {k: v for k, v in body.items() if k != "items"}
        return self._parse(Order, body, MutationRejected)
