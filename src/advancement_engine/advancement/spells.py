"""
Spell granting advancements.

Spells are features with a relationship to their granting class: a
preparation mode, an optional fixed spellcasting ability and an origin.
A spell the character already owns from the same source and mode is updated
in place instead of being duplicated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Literal

from pydantic import BaseModel, Field, field_validator

from ..utils import DELETE, get_property
from .base import GrantedItem
from .features import (
    ChoiceLevelConfiguration,
    ChooseFeaturesAdvancement,
    FeatureSelection,
    GrantFeaturesAdvancement,
    PoolEntry,
    ReplacedFeature,
    _coerce_pool,
)
from .levels import AdvancementLevels

if TYPE_CHECKING:
    from ..content import ItemContent
    from ..models import Item

logger = logging.getLogger("advancement-engine.advancement")

SPELL_ITEM_TYPES = frozenset({"class", "subclass", "lineage", "heritage", "background", "talent"})


def spell_circle(item: "ItemContent | Item") -> int:
    """Base circle of a spell item (0 for cantrips)."""
    circle = item.system.get("circle", 0)
    if isinstance(circle, dict):
        circle = circle.get("base", 0)
    return int(circle or 0)


def spell_tags(item: "ItemContent | Item") -> set[str]:
    return set(item.system.get("tags") or [])


# ---------------------------------------------------------------------------
# Spell configuration
# ---------------------------------------------------------------------------


class SpellConfiguration(BaseModel):
    """How granted spells relate to the character."""

    ability: list[str] = Field(default_factory=list, description="Abilities usable for the granted spells")
    always_prepared: bool = False
    mode: str = Field(default="standard", description="Preparation mode set on granted spells")
    origin: str = Field(default="", description="Class or subclass identifier the spells belong to")
    source: str = Field(default="", description="Spell source the spells count as")

    def apply_changes(self, ability: str | None = None) -> dict[str, Any]:
        """Flat patch applied to a spell when it is granted."""
        updates: dict[str, Any] = {
            "flags.relationship.mode": self.mode,
            "flags.relationship.always_prepared": self.always_prepared,
        }
        if self.ability:
            updates["flags.relationship.origin.ability"] = ability if ability in self.ability else self.ability[0]
        if self.origin:
            updates["flags.relationship.origin.identifier"] = self.origin
        if self.source:
            updates["flags.relationship.origin.source"] = self.source
        return updates

    def reverse_changes(self) -> dict[str, Any]:
        """Flat patch undoing :meth:`apply_changes` on a pre-existing spell."""
        updates: dict[str, Any] = {}
        if self.always_prepared:
            updates["flags.relationship.always_prepared"] = False
        if self.ability:
            updates["flags.relationship.origin.ability"] = DELETE
        if self.origin:
            updates["flags.relationship.origin.identifier"] = DELETE
        if self.source:
            updates["flags.relationship.origin.source"] = DELETE
        return updates


class _SpellGranting:
    """Creation and removal of spells shared by both spell advancements."""

    configuration: Any

    def _item_changes(self, data: Any = None) -> dict[str, Any] | None:
        ability = getattr(data, "ability", None) if data is not None else None
        return self.configuration.spell.apply_changes(ability)

    def _matching_spell(self, uuid: str) -> "Item | None":
        """Owned spell cloned from ``uuid`` with the same preparation mode."""
        mode = self.configuration.spell.mode
        for item in self.character.sourced_items.get(uuid, []):
            if get_property(item.flags, "relationship.mode") == mode:
                return item
        return None

    async def _grant(self, uuids: Iterable[str], data: Any = None) -> list[dict[str, Any]]:
        create, update = [], []
        for uuid in uuids:
            existing = self._matching_spell(uuid)
            if existing is not None:
                update.append((existing.id, uuid))
            else:
                create.append(uuid)
        added = await self.create_items(create, changes=self._item_changes(data))
        added.extend(await self._update_items(update, data))
        return added

    async def _update_items(self, targets: list[tuple[str, str]], data: Any = None) -> list[dict[str, Any]]:
        if not targets:
            return []
        changes = self._item_changes(data)
        await self.character.update_embedded_items([{"id": item_id, **changes} for item_id, _ in targets])
        return [{"document": item_id, "uuid": uuid, "modified": True} for item_id, uuid in targets]

    async def _remove_granted(self, entries: Iterable[GrantedItem], data: Any = None) -> None:
        entries = list(entries)
        modified = [e.document for e in entries if e.modified and e.document in self.character.items]
        if modified:
            reverse = self.configuration.spell.reverse_changes()
            await self.character.update_embedded_items([{"id": item_id, **reverse} for item_id in modified])
        await self.delete_items(e.document for e in entries if not e.modified)


# ---------------------------------------------------------------------------
# Grant spells
# ---------------------------------------------------------------------------


class GrantSpellsConfiguration(BaseModel):
    pool: list[PoolEntry] = Field(default_factory=list)
    spell: SpellConfiguration = Field(default_factory=SpellConfiguration)

    @field_validator("pool", mode="before")
    @classmethod
    def _pool_shorthand(cls, value: Any) -> Any:
        return _coerce_pool(value)


class GrantSpellsValue(BaseModel):
    ability: str | None = None
    added: list[GrantedItem] = Field(default_factory=list)


class GrantSpellsAdvancement(_SpellGranting, GrantFeaturesAdvancement):
    """Grants every spell of its pool."""

    type: ClassVar[str] = "grantSpells"
    order: ClassVar[int] = 45
    default_title: ClassVar[str] = "Spells"
    valid_item_types: ClassVar[frozenset[str]] = SPELL_ITEM_TYPES
    configuration_model = GrantSpellsConfiguration
    value_model = GrantSpellsValue

    VALID_TYPES: ClassVar[frozenset[str]] = frozenset({"spell"})

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        if self.value.added:
            return
        uuids = [entry.uuid for entry in self.configuration.pool]
        if not uuids:
            return
        selection = FeatureSelection.from_data(data) if isinstance(data, dict) else None
        added = await self._grant(uuids, selection)
        updates: dict[str, Any] = {"added": added}
        if selection is not None and selection.ability:
            updates["ability"] = selection.ability
        await self.update_value(updates)

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        value = self.value
        if not value.added:
            return
        await self._remove_granted(value.added)
        await self.clear_value()


# ---------------------------------------------------------------------------
# Choose spells
# ---------------------------------------------------------------------------


class SpellRestriction(BaseModel):
    allow_cantrips: bool = Field(default=False, description="Allow cantrips when any circle is allowed")
    allow_rituals: Literal["", "allow", "only"] = ""
    circle: int = Field(default=-1, ge=-1, description="-1 for any circle the character can cast")
    exact_circle: bool = True
    source: str = ""

    @field_validator("allow_rituals", mode="before")
    @classmethod
    def _ritual_flag(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return "allow" if value else ""
        return value


class ChooseSpellsConfiguration(BaseModel):
    choices: dict[int, ChoiceLevelConfiguration] = Field(default_factory=dict)
    allow_drops: bool = True
    type: Literal["spell"] = "spell"
    pool: list[PoolEntry] = Field(default_factory=list)
    restriction: SpellRestriction = Field(default_factory=SpellRestriction)
    spell: SpellConfiguration = Field(default_factory=SpellConfiguration)

    @field_validator("pool", mode="before")
    @classmethod
    def _pool_shorthand(cls, value: Any) -> Any:
        return _coerce_pool(value)

    @field_validator("choices", mode="before")
    @classmethod
    def _count_shorthand(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: {"count": v} if isinstance(v, int) else v for k, v in value.items()}
        return value


class ChooseSpellsValue(BaseModel):
    ability: str | None = None
    added: dict[int, list[GrantedItem]] = Field(default_factory=dict)
    replaced: dict[int, ReplacedFeature] = Field(default_factory=dict)


class ChooseSpellsAdvancement(_SpellGranting, ChooseFeaturesAdvancement):
    """Lets the player choose spells within circle, ritual and source limits."""

    type: ClassVar[str] = "chooseSpells"
    order: ClassVar[int] = 55
    default_title: ClassVar[str] = "Choose Spells"
    valid_item_types: ClassVar[frozenset[str]] = SPELL_ITEM_TYPES
    configuration_model = ChooseSpellsConfiguration
    value_model = ChooseSpellsValue

    VALID_TYPES: ClassVar[frozenset[str]] = frozenset({"spell"})

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        needs_ability = len(self.configuration.spell.ability) > 1 and not self.value.ability
        return not needs_ability and super().configured_for_level(levels)

    def max_circle(self) -> int:
        """Highest circle the owning class can cast, falling back to the character's."""
        character = self.character
        if character is None:
            return 1
        circle = get_property(character.data, f"system.spellcasting.origins.{self.class_identifier}.max_circle")
        if circle is None:
            circle = get_property(character.data, "system.spellcasting.max_circle")
        return circle or 1

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_item_type(self, item, *, type=None, restriction=None, strict=True) -> bool:
        if not GrantFeaturesAdvancement._validate_item_type(self, item, strict=strict):
            return False
        restriction = restriction or self.configuration.restriction
        circle = spell_circle(item)

        if restriction.circle == -1:
            maximum = self.max_circle()
            if circle > maximum:
                return self._fail(f"'{item.name}' is above the maximum circle {maximum}", strict)
        elif restriction.exact_circle or restriction.circle == 0:
            if circle != restriction.circle:
                if restriction.circle == 0:
                    return self._fail(f"'{item.name}' is not a cantrip", strict)
                return self._fail(f"'{item.name}' is not a circle {restriction.circle} spell", strict)
        elif circle > restriction.circle:
            return self._fail(f"'{item.name}' is above the maximum circle {restriction.circle}", strict)

        if restriction.circle != 0:
            is_ritual = "ritual" in spell_tags(item)
            if restriction.allow_rituals == "only" and not is_ritual:
                return self._fail(f"'{item.name}' is not a ritual", strict)
            if not restriction.allow_rituals and is_ritual:
                return self._fail(f"'{item.name}' is a ritual", strict)
            if not restriction.allow_cantrips and circle == 0:
                return self._fail(f"'{item.name}' is a cantrip", strict)

        if restriction.source and restriction.source not in (item.system.get("source") or []):
            return self._fail(f"'{item.name}' is not a {restriction.source} spell", strict)
        return True

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        abilities = self.configuration.spell.ability
        if initial or not data:
            return

        selection = FeatureSelection.from_data(data)
        ability = selection.ability or self.value.ability
        if not ability and abilities:
            if len(abilities) > 1:
                self._fail(f"{self.title} requires a spellcasting ability to be selected", self.strict)
                return
            ability = abilities[0]
        if ability and abilities and ability not in abilities:
            self._fail(f"'{ability}' is not a valid spellcasting ability for {self.title}", self.strict)
            return

        level = self.relevant_level(levels)
        if not level:
            return
        selection = selection.model_copy(update={"ability": ability})
        # A single configured ability is implied and never stored by a choice
        chosen = len(abilities) > 1 and ability != self.value.ability
        await self._apply_selection(level, selection, {"ability": ability} if chosen else {})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        await super().reverse(levels, data)
        value = self.value
        if len(self.configuration.spell.ability) > 1 and value.ability and not value.added and not value.replaced:
            await self.clear_value("ability")

    @property
    def spell_ability(self) -> str | None:
        """Chosen spellcasting ability, or the only configured one."""
        abilities = self.configuration.spell.ability
        return self.value.ability or (abilities[0] if len(abilities) == 1 else None)

    def _restore_data(self) -> Any:
        return FeatureSelection(ability=self.spell_ability)
