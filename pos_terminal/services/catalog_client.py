"""
Read-only catalog access: menu items, deals, deal members, variant bindings and options.
"""
from __future__ import annotations

from typing import Optional

from pos_terminal.config import get_settings
from pos_terminal.core.errors import CatalogUnavailable
from pos_terminal.schemas.catalog import (
    Deal,
    DealMemberLink,
    MenuItem,
    OwnerKind,
    Variant,
    VariantBinding,
    VariantOption,
)
from pos_terminal.services.backend_client import BackendClient

_OWNER_PATHS = {
    OwnerKind.MENU_ITEM: "/menu-items",
    OwnerKind.DEAL: "/deals",
}


class CatalogClient(BackendClient):
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        if timeout is None:
            timeout = get_settings().catalog_request_timeout
        super().__init__(base_url, timeout)

    async def _get(self, path: str, allow_missing: bool = False):
        return await self._request("GET", path, CatalogUnavailable, allow_missing=allow_missing)

    async def get_menu_item(self, menu_item_id: str) -> MenuItem:
        body = await self._get(f"/menu-items/{menu_item_id}", allow_missing=True)
        if body is None:
            raise CatalogUnavailable(f"Menu item not found: {menu_item_id}", 404)
        return self._parse(MenuItem, body, CatalogUnavailable)

    async def get_deal(self, deal_id: str) -> Deal:
        body = await self._get(f"/deals/{deal_id}", allow_missing=True)
        if body is None:
            raise CatalogUnavailable(f"Deal not found: {deal_id}", 404)
        return self._parse(Deal, body, CatalogUnavailable)

    async def get_deal_members(self, deal_id: str) -> list[DealMemberLink]:
        body = await self._get(f"/deals/{deal_id}/items")
        links = [self._parse(DealMemberLink, x, CatalogUnavailable) for x in body or []]
        return sorted(links, key=lambda link: link.sort_order)

    async def get_variant_bindings(self, owner: OwnerKind, owner_id: str) -> list[VariantBinding]:
        body = await self._get(f"{_OWNER_PATHS[owner]}/{owner_id}/variants")
        return [self._parse(VariantBinding, x, CatalogUnavailable) for x in body or []]

    async def get_variant(self, variant_id: str) -> Optional[Variant]:
        """None when the variant no longer exists (dangling binding)."""
        body = await self._get(f"/variants/{variant_id}", allow_missing=True)
        return self._parse(Variant, body, CatalogUnavailable) if body is not None else None

    async def get_variant_options(self, variant_id: str) -> list[VariantOption]:
        body = await self._get(f"/variants/{variant_id}/options")
        options = [self._parse(VariantOption, x, CatalogUnavailable) for x in body or []]
        return sorted(options, key=lambda o: o.sort_order)
