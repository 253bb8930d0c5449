"""
Trait advancement.

Grants proficiencies, languages, resistances and similar traits, either
outright or as choices from pools. Keys are prefixed with their trait type
(``skills:athletics``, ``languages:elvish``); ``skills:*`` stands for every
skill. In ``expertise`` and ``upgrade`` modes a trait already held is raised a
tier instead of being granted.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from ..changes import Change, ChangeMode
from ..utils import get_property, slugify
from .base import Advancement, AdvancementData
from .levels import AdvancementLevels

logger = logging.getLogger("advancement-engine.advancement")

TRAIT_MODES = ("default", "expertise", "upgrade")


class TraitChoice(BaseModel):
    count: int = Field(default=1, ge=1)
    pool: list[str] = Field(default_factory=list)


class TraitConfiguration(BaseModel):
    mode: Literal["default", "expertise", "upgrade"] = "default"
    grants: list[str] = Field(default_factory=list, description="Keys granted without a choice")
    choices: list[TraitChoice] = Field(default_factory=list)


class TraitValue(BaseModel):
    selected: list[str] = Field(default_factory=list)
    tiers: dict[str, float] = Field(
        default_factory=dict, description="Proficiency tier reached by each selected key"
    )


class TraitAdvancement(Advancement):
    type: ClassVar[str] = "trait"
    order: ClassVar[int] = 30
    default_title: ClassVar[str] = "Trait"
    valid_item_types: ClassVar[frozenset[str]] = frozenset(
        {"background", "class", "subclass", "heritage", "lineage", "talent"}
    )
    configuration_model = TraitConfiguration
    value_model = TraitValue

    def __init__(self, data: AdvancementData, item) -> None:
        super().__init__(data, item)
        trait = self.best_guess_trait()
        if not data.title and trait:
            self.title = trait.replace("-", " ").title()
            if not data.identifier:
                self.identifier = slugify(self.title)

    def best_guess_trait(self) -> str | None:
        """Trait type shared by every key in the configuration, if there is one."""
        trait = None
        keys = [*self.configuration.grants, *(k for c in self.configuration.choices for k in c.pool)]
        for key in keys:
            prefix = key.split(":", 1)[0]
            if trait is None:
                trait = prefix
            elif trait != prefix:
                return None
        return trait

    # ------------------------------------------------------------------
    # Character state
    # ------------------------------------------------------------------

    def _is_set_field(self, key_path: str) -> bool:
        field = self.ruleset.schema.get_field(key_path)
        return field is not None and field.type_name == "set"

    def character_value(self, key: str) -> float:
        """Current tier of ``key`` on the prepared character (1 or 0 for set traits)."""
        character = self.character
        key_path = self.ruleset.rules.trait_key_path(key)
        if character is None or key_path is None:
            return 0
        current = get_property(character.data, key_path)
        if self._is_set_field(key_path):
            return 1 if key.split(":")[-1] in (current or []) else 0
        return current or 0

    def character_selected(self) -> tuple[set[str], set[str]]:
        """Keys the character already holds for this mode, and keys still open to it."""
        rules = self.ruleset.rules
        mode = self.configuration.mode
        selected, available = set(), set()
        for trait, definition in rules.traits.items():
            if mode != "default" and not definition.expertise:
                continue
            for key in rules.trait_choices(f"{trait}:*"):
                value = self.character_value(key)
                if mode == "default":
                    (selected if value >= 1 else available).add(key)
                else:
                    if value == 2:
                        selected.add(key)
                    elif mode == "upgrade" or value == 1:
                        available.add(key)
        return selected, available

    def unfulfilled_choices(self) -> list[set[str]]:
        """Open slots, each the set of keys that could still fill it."""
        rules = self.ruleset.rules
        selected = set(self.value.selected)
        slots = [set(rules.trait_choices(g)) for g in self.configuration.grants]
        for choice in self.configuration.choices:
            pool = {k for key in choice.pool for k in rules.trait_choices(key)}
            slots.extend(set(pool) for _ in range(choice.count))
        if len(slots) <= len(selected):
            return []

        slots.sort(key=len)
        for key in selected:
            index = next((i for i, slot in enumerate(slots) if key in slot), None)
            if index is not None:
                slots.pop(index)

        held, available = self.character_selected()
        available -= held | selected
        return [slot & available for slot in slots]

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        return not any(self.unfulfilled_choices())

    def warning_key(self, levels: AdvancementLevels) -> str:
        return f"{self.relative_id}.{self.relevant_level(levels)}.select-{slugify(self.title)}"

    def warning_message(self, levels: AdvancementLevels) -> str:
        remaining = sum(1 for slot in self.unfulfilled_choices() if slot)
        return f"Choose {remaining} more {self.title.lower()}"

    def sorting_value_for_level(self, levels: AdvancementLevels) -> str:
        traits = list(self.ruleset.rules.traits)
        trait = self.best_guess_trait()
        trait_order = traits.index(trait) if trait in traits else 0
        order = trait_order + TRAIT_MODES.index(self.configuration.mode) * 100
        return f"{self.order:04d} {order:04d} {self.title_for_level(levels)}"

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        parts = list(self.configuration.grants)
        for choice in self.configuration.choices:
            parts.append(f"choose {choice.count} of {', '.join(choice.pool)}")
        return "; ".join(parts)

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        value = self.value
        if not value.selected:
            return None
        changes = []
        for key in value.selected:
            key_path = self.ruleset.rules.trait_key_path(key)
            if key_path is None:
                logger.warning(f"{self.relative_id}: unknown trait key '{key}'")
                continue
            if self._is_set_field(key_path):
                changes.append(Change(key=key_path, mode=ChangeMode.ADD, value=key.split(":")[-1]))
            else:
                tier = 1 if self.configuration.mode == "default" else value.tiers.get(key, 1)
                changes.append(Change(key=key_path, mode=ChangeMode.UPGRADE, value=tier))
        return changes

    def _tier_for(self, key: str) -> float:
        mode = self.configuration.mode
        if mode == "expertise":
            return 2
        if mode == "upgrade":
            return 1 if self.character_value(key) == 0 else 2
        return 1

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Add trait keys to the selection.

        Args:
            data: Iterable of prefixed trait keys. With ``initial`` set, every
                slot that has exactly one option is filled automatically.
        """
        slots = self.unfulfilled_choices()
        if initial:
            data = [next(iter(slot)) for slot in slots if len(slot) == 1]
        if not data:
            return
        if isinstance(data, str):
            data = [data]

        value = self.value
        selected = list(value.selected)
        tiers = dict(value.tiers)
        for key in data:
            slot = next((s for s in slots if key in s), None)
            if slot is None:
                self._fail(f"'{key}' is not an available choice for {self.title}", self.strict)
                continue
            slots.remove(slot)
            selected.append(key)
            if self.configuration.mode != "default":
                tiers[key] = self._tier_for(key)

        if len(selected) == len(value.selected):
            return
        await self.update_value({"": {"selected": sorted(selected), "tiers": tiers}})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        """Remove selected trait keys.

        Args:
            data: A key or iterable of keys to remove. When omitted, the whole
                selection is removed.
        """
        value = self.value
        if not value.selected:
            return
        if data is None:
            await self.clear_value()
            return
        keys = {data} if isinstance(data, str) else set(data)
        selected = [key for key in value.selected if key not in keys]
        if len(selected) == len(value.selected):
            return
        tiers = {key: tier for key, tier in value.tiers.items() if key not in keys}
        await self.update_value({"": {"selected": selected, "tiers": tiers}})
