"""
Catalog API - variant configurations as the terminal would prompt for them.
"""
from fastapi import APIRouter, Depends

from pos_terminal.schemas.catalog import ResolvedDeal, VariantConfig
from pos_terminal.services.catalog_resolver import resolve_deal, resolve_item_variants
from pos_terminal.services.registry import SessionRegistry, get_registry

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get(
    "/menu-items/{menu_item_id}/variants",
    response_model=list[VariantConfig],
    summary="Resolved variant configs for a menu item",
    description="Inactive options are hidden; restricted bindings only expose their available options.",
)
async def menu_item_variants(
    menu_item_id: str, registry: SessionRegistry = Depends(get_registry)
) -> list[VariantConfig]:
    return await resolve_item_variants(registry.catalog, menu_item_id)


@router.get("/deals/{deal_id}", response_model=ResolvedDeal, summary="Deal with members and variant configs")
async def deal_detail(deal_id: str, registry: SessionRegistry = Depends(get_registry)) -> ResolvedDeal:
    return await resolve_deal(registry.catalog, deal_id)
