"""
Spellcasting advancement.

Describes how a class casts spells: leveled casting at full, half or third
progression, or pact casting. The highest spell circle derived from it is
published on the character during preparation. Classes that learn their whole
spell list gain every spell of a new circle when it becomes available.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from ..utils import DELETE
from .base import Advancement
from .features import ReplacedFeature
from .levels import AdvancementLevels
from .spells import spell_circle, spell_tags

logger = logging.getLogger("advancement-engine.advancement")

SpellKind = Literal["normal", "cantrip", "ritual", "special", "free"]


class SpellcastingConfiguration(BaseModel):
    type: Literal["leveled", "pact"] = "leveled"
    progression: Literal["full", "half", "third"] = "full"
    source: str = Field(default="", description="Spell source searched for learned spells, e.g. 'arcane'")
    preparation: bool = True
    learn_all: bool = Field(default=False, description="Learn every spell of each new circle")


class LearnedSpell(BaseModel):
    document: str
    uuid: str
    kind: SpellKind = "normal"


class SpellcastingValue(BaseModel):
    spells: dict[int, list[LearnedSpell]] = Field(default_factory=dict)
    replaced: dict[int, ReplacedFeature] = Field(default_factory=dict)


class SpellcastingAdvancement(Advancement):
    type: ClassVar[str] = "spellcasting"
    order: ClassVar[int] = 35
    default_title: ClassVar[str] = "Spellcasting"
    multi_level: ClassVar[bool] = True
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"class", "subclass"})
    configuration_model = SpellcastingConfiguration
    value_model = SpellcastingValue

    def max_circle_for_level(self, level: int | None) -> int:
        if not level:
            return 0
        return self.ruleset.rules.max_spell_circle(
            level, self.configuration.progression, kind=self.configuration.type
        )

    def levels(self) -> list[int]:
        """Class levels at which the highest circle rises."""
        levels, previous = [], 0
        for level in range(1, self.ruleset.config.max_level + 1):
            circle = self.max_circle_for_level(level)
            if circle > previous:
                levels.append(level)
                previous = circle
        return levels

    def title_for_level(self, levels: AdvancementLevels) -> str:
        circle = self.max_circle_for_level(self.relevant_level(levels))
        if not circle:
            return self.title
        return f"{self.title}: circle {circle}"

    def _kind(self, content) -> SpellKind:
        if spell_circle(content) == 0:
            return "cantrip"
        if "ritual" in spell_tags(content) and not self.configuration.preparation:
            return "ritual"
        return "normal"

    def _spell_changes(self) -> dict[str, Any]:
        return {
            "flags.relationship.mode": "standard",
            "flags.relationship.origin.identifier": self.item.identifier,
        }

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Learn spells at a level where a new circle becomes available.

        Args:
            data: Optional ``{"spells": [{"uuid", "kind"}], "replaces": id}``
                for extra spells (e.g. "special" or "free" spells) and a swap
                of a spell learned at an earlier level.
        """
        level = self.relevant_level(levels)
        if not level or level in self.value.spells:
            return

        replaces = data.get("replaces") if isinstance(data, dict) else None
        target = self._find_replaced(level, replaces) if replaces else None

        entries: list[tuple[str, SpellKind]] = []
        circle = self.max_circle_for_level(level)
        if self.configuration.learn_all and circle > self.max_circle_for_level(level - 1):
            filters: dict[str, Any] = {"circle": lambda c: (c.get("base") if isinstance(c, dict) else c) == circle}
            if self.configuration.source:
                filters["source"] = self.configuration.source
            for content in await self.ruleset.content.search("spell", filters):
                entries.append((content.uuid, self._kind(content)))

        for extra in (data or {}).get("spells", []) if isinstance(data, dict) else []:
            if isinstance(extra, str):
                extra = {"uuid": extra}
            entries.append((extra["uuid"], extra.get("kind", "special")))

        known = {spell.uuid for spells in self.value.spells.values() for spell in spells}
        entries = [(uuid, kind) for uuid, kind in entries if uuid not in known]
        if not entries:
            return

        added = await self.create_items([uuid for uuid, _ in entries], changes=self._spell_changes())
        kinds = dict(entries)
        learned = [{**entry, "kind": kinds[entry["uuid"]]} for entry in added]
        updates: dict[str, Any] = {f"spells.{level}": learned}

        if target is not None and learned:
            original_level, spell = target
            await self.delete_items([spell.document])
            updates[f"replaced.{level}"] = ReplacedFeature(
                level=original_level, original=spell.document, uuid=spell.uuid, replacement=learned[0]["document"]
            ).model_dump()

        logger.info(f"{self.relative_id}: learned {len(learned)} spells at level {level}")
        await self.update_value(updates)

    def _find_replaced(self, level: int, original_id: str) -> tuple[int, LearnedSpell] | None:
        for original_level, spells in sorted(self.value.spells.items(), reverse=True):
            if original_level >= level:
                continue
            spell = next((s for s in spells if s.document == original_id), None)
            if spell is not None:
                return original_level, spell
        self._fail(f"Spell '{original_id}' was not learned before level {level}", self.strict)
        return None

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        level = self.relevant_level(levels)
        if not level:
            return
        value = self.value
        spells = value.spells.get(level)
        replaced = value.replaced.get(level)
        if spells is None and replaced is None:
            return

        await self.delete_items(spell.document for spell in spells or [])
        updates: dict[str, Any] = {f"spells.{level}": DELETE}
        if replaced is not None:
            if replaced.original not in self.character.items:
                await self.create_items(
                    [replaced.uuid], changes=self._spell_changes(), item_ids={replaced.uuid: replaced.original}
                )
            updates[f"replaced.{level}"] = DELETE
        await self.update_value(updates)
