"""
Improvement advancements.

An improvement raises ability scores and grants a talent from the class's
talent lists. Subclasses can widen those lists with an expanded talent list.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator

from ..changes import Change, ChangeMode
from .base import Advancement, GrantedItem
from .levels import AdvancementLevels

logger = logging.getLogger("advancement-engine.advancement")


class ImprovementConfiguration(BaseModel):
    talent_list: list[str] = Field(default_factory=list, description="Talent categories to choose from")

    @field_validator("talent_list", mode="before")
    @classmethod
    def _single_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class ImprovedAbilities(BaseModel):
    one: str | None = None
    two: str | None = None


class ImprovementValue(BaseModel):
    ability: ImprovedAbilities = Field(default_factory=ImprovedAbilities)
    talent: GrantedItem | None = None

    @field_validator("ability", mode="before")
    @classmethod
    def _single_ability(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"one": value}
        return value


class ImprovementAdvancement(Advancement):
    """Raises up to two ability scores by one and grants a talent."""

    type: ClassVar[str] = "improvement"
    order: ClassVar[int] = 45
    default_title: ClassVar[str] = "Improvement"
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"class"})
    configuration_model = ImprovementConfiguration
    value_model = ImprovementValue

    def talent_lists(self) -> set[str]:
        """Categories allowed for the talent, including subclass expansions."""
        lists = set(self.configuration.talent_list)
        character = self.character
        if character is None:
            return lists
        for subclass in character.subclasses.get(self.item.identifier, []):
            for advancement in subclass.advancements.by_type("expandedTalentList"):
                lists.update(advancement.configuration.talent_list)
        return lists

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        value = self.value
        return bool(value.ability.one) and value.talent is not None

    def warning_key(self, levels: AdvancementLevels) -> str:
        return f"{self.relative_id}.{levels.class_}.no-improvement"

    def warning_message(self, levels: AdvancementLevels) -> str:
        return "Ability improvement and talent have not been selected"

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        value = self.value
        parts = [a for a in (value.ability.one, value.ability.two) if a]
        if value.talent is not None:
            parts.append(value.talent.uuid)
        return ", ".join(parts)

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        ability = self.value.ability
        chosen = [a for a in (ability.one, ability.two) if a]
        if not chosen:
            return None
        return [Change(key=f"system.abilities.{a}.value", mode=ChangeMode.ADD, value=1) for a in chosen]

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Record improved abilities and create the chosen talent.

        Args:
            data: ``{"ability": {"one": ..., "two": ...}, "talent": <reference>}``;
                ``ability`` may also be a single ability key or a list of
                up to two keys, and ``data`` itself a bare ability key.
        """
        if initial or not data:
            return
        if isinstance(data, str):
            data = {"ability": data}
        elif not isinstance(data, dict):
            self._fail(f"Invalid improvement choice {data!r}", self.strict)
            return
        updates: dict[str, Any] = {}

        ability = data.get("ability")
        if isinstance(ability, str):
            ability = {"one": ability}
        elif isinstance(ability, (list, tuple)):
            ability = dict(zip(("one", "two"), ability))
        elif ability is not None and not isinstance(ability, dict):
            self._fail(f"Invalid ability choice {ability!r}", self.strict)
            ability = None
        for slot, key in (ability or {}).items():
            if slot not in ("one", "two") or not key:
                continue
            if key not in self.ruleset.rules.abilities:
                self._fail(f"'{key}' is not an ability", self.strict)
                continue
            updates[f"ability.{slot}"] = key

        talent = data.get("talent")
        if talent:
            if self.value.talent is not None:
                self._fail(f"A talent has already been chosen for {self.title}", self.strict)
            else:
                content = await self.ruleset.content.resolve_by_reference(talent)
                if content is not None and self._validate_talent(content):
                    added = await self.create_items([talent])
                    if added:
                        updates["talent"] = added[0]

        if updates:
            await self.update_value(updates)

    def _validate_talent(self, content) -> bool:
        if content.type != "talent":
            return self._fail(f"'{content.name}' is not a talent", self.strict)
        lists = self.talent_lists()
        category = content.system.get("category")
        if lists and category not in lists:
            return self._fail(f"'{content.name}' is not on the {', '.join(sorted(lists))} talent lists", self.strict)
        return True

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        value = self.value
        if value.talent is None and not value.ability.one and not value.ability.two:
            return
        if value.talent is not None:
            await self.delete_items([value.talent.document])
        await self.clear_value()


class ExpandedTalentListAdvancement(Advancement):
    """Gives access to another talent list when taking an improvement."""

    type: ClassVar[str] = "expandedTalentList"
    order: ClassVar[int] = 45
    default_title: ClassVar[str] = "Expanded Talent List"
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"subclass"})
    configuration_model = ImprovementConfiguration

    def levels(self) -> list[int]:
        return [self.ruleset.config.subclass_level]

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        return ", ".join(self.configuration.talent_list)
