"""
Character and item documents.

A :class:`Character` holds its persisted ``system`` data, its embedded items
and its active effects. Everything derived (the advancement overlay, effect
changes, ability modifiers, hit points, warnings) is recomputed from scratch
by :meth:`Character.prepare_data` after every persisted update.

Persisted edits never happen here directly: a character forwards them to its
:class:`~advancement_engine.interfaces.CharacterStore`, which applies them and
recomputes the character.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, PrivateAttr, field_validator, model_validator
from shortuuid import random

from .advancement.base import Advancement, AdvancementData
from .advancement.collection import AdvancementCollection
from .advancement.levels import AdvancementLevels
from .effects import ActiveEffect, EffectsEngine
from .notifications import NotificationCollection
from .overlay import ChangeOverlayEngine
from .utils import apply_patch, get_property, merge_objects, slugify

if TYPE_CHECKING:
    from .interfaces import CharacterStore
    from .ruleset import Ruleset

logger = logging.getLogger("advancement-engine.models")


class CharacterError(Exception):
    """Raised when a character or item is used before it is bound."""


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class Item(BaseModel):
    """An item embedded on a character, or a standalone item being designed."""

    id: str = Field(default_factory=lambda: random(length=8))
    name: str
    type: str = Field(description="Item type, e.g. 'class', 'subclass', 'feature', 'spell'")
    identifier: str = ""
    class_identifier: str | None = Field(default=None, description="Parent class identifier for subclasses")
    system: dict[str, Any] = Field(default_factory=dict)
    advancement: dict[str, AdvancementData] = Field(default_factory=dict)
    flags: dict[str, Any] = Field(default_factory=dict)

    _character: "Character | None" = PrivateAttr(default=None)
    _ruleset: "Ruleset | None" = PrivateAttr(default=None)
    _advancements: AdvancementCollection | None = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _default_identifier(self) -> "Item":
        if not self.identifier:
            self.identifier = slugify(self.name)
        return self

    def bind(self, ruleset: "Ruleset", character: "Character | None" = None) -> "Item":
        self._ruleset = ruleset
        self._character = character
        self._advancements = None
        return self

    @property
    def character(self) -> "Character | None":
        return self._character

    @property
    def ruleset(self) -> "Ruleset":
        if self._ruleset is None:
            raise CharacterError(f"Item '{self.name}' is not bound to a ruleset")
        return self._ruleset

    @property
    def source_id(self) -> str | None:
        """Content reference this item was cloned from."""
        return self.flags.get("source_id")

    @property
    def advancement_origin(self) -> str | None:
        """Relative ID of the advancement that granted this item, if any."""
        return self.flags.get("advancement_origin")

    @property
    def advancements(self) -> AdvancementCollection:
        if self._advancements is None:
            self._advancements = AdvancementCollection(self)
        return self._advancements

    def reset_advancement(self) -> None:
        """Drop the cached collection after the advancement data changed."""
        self._advancements = None

    def advancement_for_level(self, levels: AdvancementLevels | int) -> list[Advancement]:
        """Advancements active at one level step, in display order.

        Args:
            levels: A level step, or a plain level used for both the
                character and class level.
        """
        if isinstance(levels, int):
            levels = AdvancementLevels(character=levels, class_=levels)
        active = []
        for advancement in self.advancements:
            level = advancement.relevant_level(levels)
            if level is not None and level in advancement.levels():
                active.append(advancement)
        return sorted(active, key=lambda a: a.sorting_value_for_level(levels))

    def to_record(self) -> dict[str, Any]:
        return self.model_dump()


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------


class Character(BaseModel):
    """A player character.

    ``system.progression.levels`` records one ``{character, class, identifier}``
    entry per level gained; ``system.progression.advancement`` holds the
    player's choices per item and advancement.
    """

    id: str = Field(default_factory=lambda: random(length=8))
    name: str
    system: dict[str, Any] = Field(default_factory=dict)
    items: dict[str, Item] = Field(default_factory=dict)
    effects: list[ActiveEffect] = Field(default_factory=list)

    _ruleset: "Ruleset | None" = PrivateAttr(default=None)
    _store: "CharacterStore | None" = PrivateAttr(default=None)
    _data: dict[str, Any] | None = PrivateAttr(default=None)
    _overrides: dict[str, Any] = PrivateAttr(default_factory=dict)
    _notifications: NotificationCollection = PrivateAttr(default_factory=NotificationCollection)

    @field_validator("items", mode="before")
    @classmethod
    def _items_from_list(cls, value: Any) -> Any:
        """Accept a list of item records as well as a mapping keyed by ID."""
        if isinstance(value, list):
            items = {}
            for entry in value:
                item = entry if isinstance(entry, Item) else Item.model_validate(entry)
                items[item.id] = item
            return items
        return value

    def bind(self, ruleset: "Ruleset", store: "CharacterStore | None" = None) -> "Character":
        """Attach the ruleset and store, then prepare derived data."""
        self._ruleset = ruleset
        self._store = store
        for item in self.items.values():
            item.bind(ruleset, self)
        self.prepare_data()
        return self

    @property
    def ruleset(self) -> "Ruleset":
        if self._ruleset is None:
            raise CharacterError(f"Character '{self.name}' is not bound to a ruleset")
        return self._ruleset

    @property
    def store(self) -> "CharacterStore":
        if self._store is None:
            raise CharacterError(f"Character '{self.name}' has no store to persist updates")
        return self._store

    # ------------------------------------------------------------------
    # Prepared data
    # ------------------------------------------------------------------

    @property
    def data(self) -> dict[str, Any]:
        """Prepared record ``{"system": ...}`` including every derived layer."""
        if self._data is None:
            self.prepare_data()
        return self._data

    @property
    def advancement_overrides(self) -> dict[str, Any]:
        """Nested tree of the values set by advancement changes. Never persisted."""
        return self._overrides

    @property
    def notifications(self) -> NotificationCollection:
        return self._notifications

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    def progression_levels(self) -> list[AdvancementLevels]:
        """Recorded level steps in character-level order."""
        records = get_property(self.system, "progression.levels") or {}
        return [
            AdvancementLevels.model_validate(records[key])
            for key in sorted(records, key=int)
        ]

    def level_steps(self) -> list[AdvancementLevels]:
        """The baseline step followed by every recorded level step."""
        return [AdvancementLevels.baseline(), *self.progression_levels()]

    @property
    def level(self) -> int:
        records = get_property(self.system, "progression.levels") or {}
        return max((int(key) for key in records), default=0)

    def class_level(self, identifier: str | None) -> int:
        return max(
            (levels.class_ for levels in self.progression_levels() if levels.identifier == identifier),
            default=0,
        )

    @property
    def original_class(self) -> str | None:
        """Identifier of the class taken at character level 1."""
        first = get_property(self.system, "progression.levels.1")
        return first.get("identifier") if first else None

    @property
    def classes(self) -> dict[str, Item]:
        return {item.identifier: item for item in self.items.values() if item.type == "class"}

    @property
    def subclasses(self) -> dict[str, list[Item]]:
        subclasses: dict[str, list[Item]] = {}
        for item in self.items.values():
            if item.type == "subclass":
                subclasses.setdefault(item.class_identifier, []).append(item)
        return subclasses

    @property
    def sourced_items(self) -> dict[str, list[Item]]:
        """Owned items keyed by the content reference they were cloned from."""
        sourced: dict[str, list[Item]] = {}
        for item in self.items.values():
            if item.source_id:
                sourced.setdefault(item.source_id, []).append(item)
        return sourced

    def advancement_for_level(self, levels: AdvancementLevels | int) -> list[Advancement]:
        """Advancements of every item active at one level step."""
        return [a for item in self.items.values() for a in item.advancement_for_level(levels)]

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def prepare_data(self) -> dict[str, Any]:
        """Rebuild every derived layer from the persisted data.

        Order: schema defaults merged with stored values, the advancement
        overlay, active effects, derived statistics, progression warnings.
        """
        ruleset = self.ruleset
        self._notifications.clear()
        data = merge_objects(ruleset.schema.defaults(), {"system": self.system})
        self._data = data

        patch, self._overrides = ChangeOverlayEngine(ruleset).prepare(self, data)
        apply_patch(data, patch)
        apply_patch(data, EffectsEngine.prepare(ruleset, self, data))

        self._prepare_derived(data)
        self._prepare_warnings()
        return data

    def _prepare_derived(self, data: dict[str, Any]) -> None:
        system = data["system"]
        level = self.level

        abilities = system.setdefault("abilities", {})
        for ability in abilities.values():
            ability["mod"] = (int(ability.get("value") or 10) - 10) // 2

        attributes = system.setdefault("attributes", {})
        attributes["prof"] = 2 + (max(level, 1) - 1) // 4

        # Spellcasting circles
        spellcasting = system.setdefault("spellcasting", {})
        origins = spellcasting.setdefault("origins", {})
        for item in self.items.values():
            if item.type not in ("class", "subclass"):
                continue
            class_identifier = item.identifier if item.type == "class" else item.class_identifier
            class_level = self.class_level(class_identifier)
            for advancement in item.advancements.by_type("spellcasting"):
                origin = origins.setdefault(class_identifier, {})
                circle = advancement.max_circle_for_level(class_level)
                origin["max_circle"] = max(origin.get("max_circle") or 0, circle)
        spellcasting["max_circle"] = max(
            [spellcasting.get("max_circle") or 0, *((o.get("max_circle") or 0) for o in origins.values())]
        )

        # Hit points
        ability = self.ruleset.config.hit_points_ability
        mod = abilities.get(ability, {}).get("mod", 0)
        total, denominations = 0, []
        for item in self.classes.values():
            for advancement in item.advancements.by_type("hitPoints"):
                total += advancement.adjusted_total(mod)
                denominations.append(advancement.denomination)
        hp = attributes.setdefault("hp", {})
        level_bonus = get_property(hp, "bonuses.level") or 0
        hp["max"] = total + (hp.get("max") or 0) + level_bonus * level
        if get_property(self.system, "attributes.hp.value") is None:
            hp["value"] = hp["max"]
        hd = attributes.setdefault("hd", {})
        if hd.get("denomination") is None and denominations:
            hd["denomination"] = max(denominations)

    def _prepare_warnings(self) -> None:
        for levels in self.level_steps():
            for advancement in self.advancement_for_level(levels):
                advancement.prepare_warnings(levels, self._notifications)

    # ------------------------------------------------------------------
    # Persisted updates (through the store)
    # ------------------------------------------------------------------

    async def update(self, patch: dict[str, Any]) -> None:
        await self.store.update_character(self.id, patch)

    async def create_embedded_items(self, data: list[dict[str, Any]]) -> list[Item]:
        return await self.store.create_embedded_items(self.id, data)

    async def update_embedded_items(self, updates: list[dict[str, Any]]) -> list[Item]:
        return await self.store.update_embedded_items(self.id, updates)

    async def delete_embedded_items(self, ids: list[str]) -> None:
        await self.store.delete_embedded_items(self.id, list(ids))

    # ------------------------------------------------------------------
    # Document edits, called by stores
    # ------------------------------------------------------------------

    def apply_update(self, patch: dict[str, Any]) -> None:
        """Apply a flat patch rooted at the character document.

        An ``effects`` key replaces the whole active effect list.
        """
        patch = dict(patch)
        if "effects" in patch:
            self.effects = [ActiveEffect.model_validate(e) for e in patch.pop("effects") or []]
        document = {"name": self.name, "system": self.system}
        for key in patch:
            if key.split(".", 1)[0] not in document:
                logger.warning(f"Ignoring update of unknown character key '{key}'")
        apply_patch(document, {k: v for k, v in patch.items() if k.split(".", 1)[0] in document})
        self.name = document["name"]
        self.system = document.get("system") or {}

    def add_items(self, data: list[dict[str, Any] | Item]) -> list[Item]:
        created = []
        for entry in data:
            item = entry if isinstance(entry, Item) else Item.model_validate(entry)
            if item.id in self.items:
                raise CharacterError(f"Character '{self.name}' already has an item with ID '{item.id}'")
            if self._ruleset is not None:
                item.bind(self._ruleset, self)
            self.items[item.id] = item
            created.append(item)
        return created

    def update_items(self, updates: list[dict[str, Any]]) -> list[Item]:
        """Apply ``[{"id": ..., <flat patch>}]`` updates to embedded items."""
        updated = []
        for update in updates:
            update = dict(update)
            item_id = update.pop("id", None)
            current = self.items.get(item_id)
            if current is None:
                logger.warning(f"Cannot update missing item '{item_id}' on '{self.name}'")
                continue
            record = apply_patch(current.to_record(), update)
            item = Item.model_validate(record)
            if self._ruleset is not None:
                item.bind(self._ruleset, self)
            self.items[item_id] = item
            updated.append(item)
        return updated

    def remove_items(self, ids: list[str]) -> list[Item]:
        return [self.items.pop(i) for i in ids if i in self.items]
