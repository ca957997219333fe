"""
Resolve variant bindings of a menu item or deal into selectable configurations.
Inactive options are dropped, availability restrictions applied, dangling variants skipped.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pos_terminal.schemas.catalog import (
    OwnerKind,
    ResolvedDeal,
    ResolvedDealMember,
    VariantBinding,
    VariantConfig,
)
from pos_terminal.services.catalog_client import CatalogClient

logger = logging.getLogger(__name__)


async def _resolve_binding(
    catalog: CatalogClient, binding: VariantBinding
) -> Optional[VariantConfig]:
    variant, options = await asyncio.gather(
        catalog.get_variant(binding.variant_id),
        catalog.get_variant_options(binding.variant_id),
    )
    if variant is None:
        logger.warning(
            "variant_binding_skipped",
            extra={"variant_id": binding.variant_id, "reason": "variant not found"},
        )
        return None

    options = [o for o in options if o.is_active]
    if binding.available_option_ids:
        allowed = set(binding.available_option_ids)
        options = [o for o in options if o.id in allowed]

    return VariantConfig(
        variant=variant,
        options=options,
        is_required=binding.is_required,
        selection_mode=binding.selection_mode,
        is_restricted=bool(binding.available_option_ids),
    )


async def resolve_variants(
    catalog: CatalogClient, owner: OwnerKind, owner_id: str
) -> list[VariantConfig]:
    """
    Ordered variant configurations for a menu item or deal.
    Raises CatalogUnavailable on any read failure; never returns partial data.
    """
    bindings = await catalog.get_variant_bindings(owner, owner_id)
    resolved = await asyncio.gather(*[_resolve_binding(catalog, b) for b in bindings])
    return [config for config in resolved if config is not None]


async def resolve_item_variants(catalog: CatalogClient, menu_item_id: str) -> list[VariantConfig]:
    return await resolve_variants(catalog, OwnerKind.MENU_ITEM, menu_item_id)


async def resolve_deal_variants(catalog: CatalogClient, deal_id: str) -> list[VariantConfig]:
    return await resolve_variants(catalog, OwnerKind.DEAL, deal_id)


async def resolve_deal(catalog: CatalogClient, deal_id: str) -> ResolvedDeal:
    """Deal, its deal-level variants and its members (with their own variants when they carry any)."""
    deal, variants, links = await asyncio.gather(
        catalog.get_deal(deal_id),
        resolve_deal_variants(catalog, deal_id),
        catalog.get_deal_members(deal_id),
    )

    async def enrich(link):
        menu_item = await catalog.get_menu_item(link.menu_item_id)
        member_variants = (
            await resolve_item_variants(catalog, menu_item.id) if menu_item.has_variants else []
        )
        return ResolvedDealMember(link=link, menu_item=menu_item, variants=member_variants)

    members = await asyncio.gather(*[enrich(link) for link in links])
    return ResolvedDeal(deal=deal, variants=variants, members=list(members))
