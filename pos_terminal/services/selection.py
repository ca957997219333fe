"""
Variant selection state for one menu item, one deal, or one unit of a deal member.

single   -> radio semantics, exactly one option once resolved
multiple -> toggle on/off, the variant entry disappears when nothing is left
all      -> not user-toggleable, populated with every available option up front
An incomplete state cannot be confirmed into an order line.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Optional

from pos_terminal.core.errors import ValidationFailed
from pos_terminal.schemas.catalog import (
    Deal,
    MenuItem,
    ResolvedDeal,
    ResolvedDealMember,
    SelectionMode,
    VariantConfig,
    VariantOption,
)
from pos_terminal.schemas.order import MultiChoice, SelectedOption, SingleChoice, VariantSelection

logger = logging.getLogger(__name__)


def _selected(option: VariantOption) -> SelectedOption:
    return SelectedOption(option_id=option.id, option_name=option.name, price_modifier=option.price_modifier)


def _matches_mode(selection: VariantSelection, mode: SelectionMode) -> bool:
    if mode == SelectionMode.SINGLE:
        return isinstance(selection, SingleChoice)
    return isinstance(selection, MultiChoice)


class SelectionState:
    def __init__(
        self,
        configs: Iterable[VariantConfig],
        existing: Optional[Iterable[VariantSelection]] = None,
    ) -> None:
        self.configs = list(configs)
        self._configs_by_id = {c.variant.id: c for c in self.configs}
        self._selected: dict[str, VariantSelection] = {}

        # edit in place: keep stored choices whose binding still exists in the same mode
        for selection in existing or []:
            config = self._configs_by_id.get(selection.variant_id)
            if config is None or not _matches_mode(selection, config.selection_mode):
                logger.info("stale_selection_dropped", extra={"variant_id": selection.variant_id})
                continue
            self._selected[selection.variant_id] = selection

        for config in self.configs:
            if config.selection_mode == SelectionMode.ALL:
                self._select_all(config)

    def _config(self, variant_id: str) -> VariantConfig:
        config = self._configs_by_id.get(variant_id)
        if config is None:
            raise ValidationFailed(f"Unknown variant: {variant_id}")
        return config

    def _select_all(self, config: VariantConfig, kind: str = "all") -> None:
        if not config.options:
            self._selected.pop(config.variant.id, None)
            return
        self._selected[config.variant.id] = MultiChoice(
            kind=kind,
            variant_id=config.variant.id,
            variant_name=config.variant.name,
            options=[_selected(o) for o in config.options],
        )

    @property
    def has_required(self) -> bool:
        return any(c.is_required for c in self.configs)

    def selection_for(self, variant_id: str) -> Optional[VariantSelection]:
        return self._selected.get(variant_id)

    def toggle_option(self, variant_id: str, option_id: str) -> None:
        config = self._config(variant_id)
        option = config.option(option_id)
        if option is None:
            raise ValidationFailed(f"Option {option_id} is not available for {config.variant.name}")

        if config.selection_mode == SelectionMode.ALL:
            raise ValidationFailed(f"{config.variant.name} options are pre-selected")

        if config.selection_mode == SelectionMode.SINGLE:
            self._selected[variant_id] = SingleChoice(
                variant_id=variant_id,
                variant_name=config.variant.name,
                option=_selected(option),
            )
            return

        current = self._selected.get(variant_id)
        options = list(current.options) if isinstance(current, MultiChoice) else []
        if any(o.option_id == option_id for o in options):
            options = [o for o in options if o.option_id != option_id]
        else:
            options.append(_selected(option))

        if not options:
            self._selected.pop(variant_id, None)
        else:
            self._selected[variant_id] = MultiChoice(
                kind="multiple",
                variant_id=variant_id,
                variant_name=config.variant.name,
                options=options,
            )

    def select(self, variant_id: str, option_ids: Iterable[str]) -> None:
        """Toggle each option in turn (a later single-mode pick replaces an earlier one)."""
        for option_id in option_ids:
            self.toggle_option(variant_id, option_id)

    def auto_attach(self) -> None:
        """
        Attach administrator-configured options without user input:
        a lone single-mode option, every all-mode option, every option of a restricted multiple-mode variant.
        Only applies when nothing is required; required variants always go through the buyer.
        """
        if self.has_required:
            return
        for config in self.configs:
            if config.variant.id in self._selected:
                continue
            if config.selection_mode == SelectionMode.SINGLE and len(config.options) == 1:
                self.toggle_option(config.variant.id, config.options[0].id)
            elif config.selection_mode == SelectionMode.ALL:
                self._select_all(config)
            elif config.selection_mode == SelectionMode.MULTIPLE and config.is_restricted:
                self._select_all(config, kind="multiple")

    def missing_required(self) -> list[str]:
        return [
            c.variant.name
            for c in self.configs
            if c.is_required and c.variant.id not in self._selected
        ]

    def is_complete(self) -> bool:
        try:
            self.validate()
        except ValidationFailed:
            return False
        return True

    def validate(self) -> None:
        """Raise ValidationFailed naming what is still missing."""
        missing = self.missing_required()
        if missing:
            raise ValidationFailed.for_missing(missing)

        for config in self.configs:
            selection = self._selected.get(config.variant.id)
            if selection is None:
                continue
            name = config.variant.name
            if config.selection_mode == SelectionMode.SINGLE and not isinstance(selection, SingleChoice):
                raise ValidationFailed(f"Select one option for {name}", [name])
            if config.selection_mode == SelectionMode.MULTIPLE and not selection.option_ids:
                raise ValidationFailed(f"Select at least one option for {name}", [name])
            if config.selection_mode == SelectionMode.ALL and config.is_required and not selection.option_ids:
                raise ValidationFailed(f"At least one option required for {name}", [name])

    def selections(self) -> list[VariantSelection]:
        """Current choices in binding order."""
        return [self._selected[c.variant.id] for c in self.configs if c.variant.id in self._selected]

    @property
    def price_modifier_total(self) -> Decimal:
        return sum((s.price_modifier_total for s in self.selections()), Decimal("0"))


class ItemSelection:
    """Selection for a single menu item line (new, or an existing line being edited)."""

    def __init__(
        self,
        menu_item: MenuItem,
        configs: Iterable[VariantConfig],
        existing: Optional[Iterable[VariantSelection]] = None,
    ) -> None:
        self.menu_item = menu_item
        self.state = SelectionState(configs, existing)

    @property
    def needs_prompt(self) -> bool:
        return self.state.has_required

    def validate(self) -> None:
        self.state.validate()


class DealSelection:
    """
    Deal-level selection plus one independent state per physical unit of each member with variants.
    Units are keyed by deal member link id.
    """

    def __init__(self, resolved: ResolvedDeal) -> None:
        self.deal: Deal = resolved.deal
        self.members: list[ResolvedDealMember] = list(resolved.members)
        self.state = SelectionState(resolved.variants)
        self.unit_states: dict[str, list[SelectionState]] = {
            m.link.id: [SelectionState(m.variants) for _ in range(m.link.quantity)]
            for m in self.members
            if m.has_variants
        }

    @property
    def needs_prompt(self) -> bool:
        return bool(self.state.configs) or bool(self.unit_states)

    def unit(self, link_id: str, index: int) -> SelectionState:
        units = self.unit_states.get(link_id)
        if units is None:
            raise ValidationFailed(f"Deal member {link_id} has no variants to select")
        if index < 0 or index >= len(units):
            raise ValidationFailed(f"Deal member {link_id} has no unit {index + 1}")
        return units[index]

    def auto_attach(self) -> None:
        self.state.auto_attach()
        for units in self.unit_states.values():
            for unit in units:
                unit.auto_attach()

    def validate(self) -> None:
        self.state.validate()
        for member in self.members:
            for index, unit in enumerate(self.unit_states.get(member.link.id, [])):
                try:
                    unit.validate()
                except ValidationFailed as e:
                    label = f"{member.menu_item.name} (item {index + 1})"
                    raise ValidationFailed(
                        f"{label}: {e.message}", [f"{label}: {name}" for name in e.missing]
                    ) from e

    def unit_selections(self) -> dict[str, list[list[VariantSelection]]]:
        return {
            link_id: [unit.selections() for unit in units]
            for link_id, units in self.unit_states.items()
        }
