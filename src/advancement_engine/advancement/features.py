"""
Feature granting advancements.

``grantFeatures`` gives every item of its pool once. ``chooseFeatures`` lets
the player pick a configured number of items at each level, optionally
replacing a feature chosen at an earlier level.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, Iterable

from pydantic import BaseModel, Field, field_validator

from ..utils import DELETE, get_property
from .base import Advancement, GrantedItem
from .levels import AdvancementLevels

if TYPE_CHECKING:
    from ..content import ItemContent
    from ..models import Item

logger = logging.getLogger("advancement-engine.advancement")

FEATURE_ITEM_TYPES = frozenset({"background", "class", "subclass", "heritage", "lineage", "talent"})


class PoolEntry(BaseModel):
    uuid: str


def _coerce_pool(value: Any) -> Any:
    if isinstance(value, list):
        return [{"uuid": v} if isinstance(v, str) else v for v in value]
    return value


# ---------------------------------------------------------------------------
# Grant features
# ---------------------------------------------------------------------------


class GrantFeaturesConfiguration(BaseModel):
    pool: list[PoolEntry] = Field(default_factory=list, description="Items granted")

    @field_validator("pool", mode="before")
    @classmethod
    def _pool_shorthand(cls, value: Any) -> Any:
        return _coerce_pool(value)


class GrantFeaturesValue(BaseModel):
    added: list[GrantedItem] = Field(default_factory=list)


class GrantFeaturesAdvancement(Advancement):
    """Grants every item of its pool."""

    type: ClassVar[str] = "grantFeatures"
    order: ClassVar[int] = 40
    default_title: ClassVar[str] = "Features"
    valid_item_types: ClassVar[frozenset[str]] = FEATURE_ITEM_TYPES
    configuration_model = GrantFeaturesConfiguration
    value_model = GrantFeaturesValue

    # Item types that can be granted
    VALID_TYPES: ClassVar[frozenset[str]] = frozenset({"feature"})

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        return bool(self.value.added) or not self.configuration.pool

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        return ", ".join(entry.uuid for entry in self.configuration.pool)

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def _item_changes(self, data: Any = None) -> dict[str, Any] | None:
        """Flat patch applied to every item created by this advancement."""
        return None

    async def _grant(self, uuids: Iterable[str], data: Any = None) -> list[dict[str, Any]]:
        return await self.create_items(uuids, changes=self._item_changes(data))

    async def _remove_granted(self, entries: Iterable[GrantedItem], data: Any = None) -> None:
        await self.delete_items(entry.document for entry in entries)

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        if self.value.added:
            return
        uuids = [entry.uuid for entry in self.configuration.pool]
        if not uuids:
            return
        added = await self._grant(uuids, data)
        await self.update_value({"added": added})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        added = self.value.added
        if not added:
            return
        await self._remove_granted(added, data)
        await self.clear_value("added")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_item_type(
        self,
        item: "ItemContent | Item",
        *,
        type: str | None = None,
        restriction: Any = None,
        strict: bool = True,
    ) -> bool:
        """Can ``item`` be granted by this advancement?

        Raises:
            AdvancementError: If the item is invalid and ``strict`` is set.
        """
        if item.type in self.VALID_TYPES:
            return True
        return self._fail(f"'{item.name}' of type '{item.type}' cannot be granted by {self.title}", strict)

    def _validate_prerequisites(self, item: "ItemContent | Item", *, strict: bool = True) -> bool:
        """Check ``system.prerequisite`` of an item against the character."""
        prerequisite = get_property(item.system, "prerequisite") or {}
        character = self.character
        if not prerequisite or character is None:
            return True

        level = prerequisite.get("level")
        if level and character.level < level:
            return self._fail(f"'{item.name}' requires character level {level}", strict)

        owned = {i.identifier for i in character.items.values()}
        for identifier in prerequisite.get("items") or []:
            if identifier not in owned:
                return self._fail(f"'{item.name}' requires '{identifier}'", strict)

        for ability, minimum in (prerequisite.get("abilities") or {}).items():
            score = get_property(character.data, f"system.abilities.{ability}.value", 0)
            if score < minimum:
                return self._fail(f"'{item.name}' requires {ability} {minimum}", strict)
        return True


# ---------------------------------------------------------------------------
# Choose features
# ---------------------------------------------------------------------------


class ChoiceLevelConfiguration(BaseModel):
    count: int = Field(default=1, ge=1)
    replacement: bool = Field(default=False, description="May a previous choice be replaced at this level?")


class FeatureRestriction(BaseModel):
    category: str | None = None
    type: str | None = None


class ChooseFeaturesConfiguration(BaseModel):
    choices: dict[int, ChoiceLevelConfiguration] = Field(default_factory=dict)
    allow_drops: bool = Field(default=True, description="Allow items outside the pool to be chosen")
    type: str = "feature"
    pool: list[PoolEntry] = Field(default_factory=list)
    restriction: FeatureRestriction = Field(default_factory=FeatureRestriction)

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


class ReplacedFeature(BaseModel):
    level: int = Field(ge=0, description="Level at which the original was chosen")
    original: str = Field(description="Item ID of the replaced item")
    uuid: str = Field(default="", description="Content reference of the replaced item")
    replacement: str = Field(description="Item ID of the replacing item")


class ChooseFeaturesValue(BaseModel):
    added: dict[int, list[GrantedItem]] = Field(default_factory=dict)
    replaced: dict[int, ReplacedFeature] = Field(default_factory=dict)


class FeatureSelection(BaseModel):
    """Choice data passed to :meth:`ChooseFeaturesAdvancement.apply`."""

    choices: list[str] = Field(default_factory=list)
    replaces: str | None = Field(default=None, description="ID of a previously chosen item to replace")
    ability: str | None = None

    @classmethod
    def from_data(cls, data: Any) -> "FeatureSelection":
        if isinstance(data, FeatureSelection):
            return data
        if isinstance(data, str):
            return cls(choices=[data])
        if isinstance(data, (list, tuple)):
            return cls(choices=list(data))
        return cls.model_validate(data or {})


class ChooseFeaturesAdvancement(GrantFeaturesAdvancement):
    """Lets the player choose items at configured levels."""

    type: ClassVar[str] = "chooseFeatures"
    order: ClassVar[int] = 50
    default_title: ClassVar[str] = "Choose Features"
    multi_level: ClassVar[bool] = True
    configuration_model = ChooseFeaturesConfiguration
    value_model = ChooseFeaturesValue

    VALID_TYPES: ClassVar[frozenset[str]] = frozenset({"feature", "talent"})

    def levels(self) -> list[int]:
        return sorted(self.configuration.choices)

    def choice_count(self, level: int | None) -> int:
        config = self.configuration.choices.get(level) if level is not None else None
        return config.count if config else 0

    def choices_needed(self, levels: AdvancementLevels) -> int:
        level = self.relevant_level(levels)
        if not level:
            return 0
        return max(self.choice_count(level) - len(self.value.added.get(level, [])), 0)

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        return self.choices_needed(levels) == 0

    def warning_key(self, levels: AdvancementLevels) -> str:
        return f"{self.relative_id}.{levels.class_}.choice-required"

    def warning_message(self, levels: AdvancementLevels) -> str:
        needed = self.choices_needed(levels)
        return f"{self.title}: {needed} choice{'s' if needed != 1 else ''} remaining"

    def title_for_level(self, levels: AdvancementLevels) -> str:
        count = self.choice_count(self.relevant_level(levels))
        if not count:
            return self.title
        return f"{self.title} (choose {count})"

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        level = self.relevant_level(levels)
        return ", ".join(entry.uuid for entry in self.value.added.get(level, []))

    def item_chosen(self, uuid: str) -> bool:
        """Has the item with this reference been chosen at any level?"""
        return any(entry.uuid == uuid for entries in self.value.added.values() for entry in entries)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_item_type(self, item, *, type=None, restriction=None, strict=True) -> bool:
        if not super()._validate_item_type(item, strict=strict):
            return False
        type = type or self.configuration.type
        restriction = restriction or self.configuration.restriction

        if type and type != item.type:
            return self._fail(f"'{item.name}' is not a {type}", strict)

        if type == "feature" and restriction.category:
            if restriction.category != get_property(item.system, "type.category"):
                return self._fail(f"'{item.name}' is not a {restriction.category} feature", strict)
            if restriction.type and restriction.type != get_property(item.system, "type.value"):
                return self._fail(f"'{item.name}' is not a {restriction.type} feature", strict)

        if type == "talent" and restriction.category:
            if restriction.category != get_property(item.system, "category"):
                return self._fail(f"'{item.name}' is not a {restriction.category} talent", strict)
        return True

    def _validate_choice(self, item: "ItemContent", *, strict: bool) -> bool:
        pool = {entry.uuid for entry in self.configuration.pool}
        if item.uuid not in pool and not self.configuration.allow_drops:
            return self._fail(f"'{item.name}' is not one of the available choices", strict)
        if not self._validate_item_type(item, strict=strict):
            return False
        if self.item_chosen(item.uuid):
            return self._fail(f"'{item.name}' has already been chosen", strict)
        return self._validate_prerequisites(item, strict=strict)

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Create the chosen items for the level being gained.

        Args:
            data: A list of content references, or a :class:`FeatureSelection`
                shaped mapping with ``choices`` and an optional ``replaces``
                item ID.
        """
        if initial or not data:
            return
        level = self.relevant_level(levels)
        if not level:
            return
        await self._apply_selection(level, FeatureSelection.from_data(data), {})

    async def _apply_selection(self, level: int, selection: FeatureSelection, updates: dict[str, Any]) -> None:
        value = self.value
        existing = list(value.added.get(level, []))
        config = self.configuration.choices.get(level)

        replaces = selection.replaces
        if replaces and not (config and config.replacement):
            self._fail(f"{self.title} does not allow replacing a choice at level {level}", self.strict)
            replaces = None
        if replaces and level in value.replaced:
            self._fail(f"A choice has already been replaced at level {level}", self.strict)
            replaces = None
        target = self._find_replaced(level, replaces) if replaces else None

        allowed = self.choice_count(level) + (1 if target else 0)
        choices = list(selection.choices)
        if len(existing) + len(choices) > allowed:
            self._fail(
                f"{self.title} allows {allowed} choice{'s' if allowed != 1 else ''} at level {level}, "
                f"{len(existing) + len(choices)} were made",
                self.strict,
            )
            choices = choices[: max(allowed - len(existing), 0)]

        valid = []
        for uuid in choices:
            if uuid in valid:
                self._fail(f"'{uuid}' was chosen more than once", self.strict)
                continue
            content = await self.ruleset.content.resolve_by_reference(uuid)
            if content is None:
                continue
            if self._validate_choice(content, strict=self.strict):
                valid.append(uuid)
        if not valid and not updates:
            return

        added = await self._grant(valid, selection)
        updates[f"added.{level}"] = [*[e.model_dump() for e in existing], *added]

        if target is not None and added:
            original_level, entry = target
            await self._remove_granted([entry], selection)
            logger.info(f"{self.relative_id}: replaced '{entry.uuid}' from level {original_level}")
            updates[f"replaced.{level}"] = ReplacedFeature(
                level=original_level, original=entry.document, uuid=entry.uuid, replacement=added[0]["document"]
            ).model_dump()

        await self.update_value(updates)

    def _find_replaced(self, level: int, original_id: str) -> tuple[int, GrantedItem] | None:
        """Locate an item chosen before ``level`` that a new choice may replace."""
        for original_level in sorted(self.value.added, reverse=True):
            if original_level >= level:
                continue
            entry = next((e for e in self.value.added[original_level] if e.document == original_id), None)
            if entry is not None:
                return original_level, entry
        self._fail(f"Item '{original_id}' was not chosen by {self.title} before level {level}", self.strict)
        return None

    async def _restore_replaced(self, record: ReplacedFeature) -> None:
        character = self._require_character()
        if record.original in character.items or not record.uuid:
            return
        await self.create_items(
            [record.uuid], changes=self._item_changes(self._restore_data()), item_ids={record.uuid: record.original}
        )

    def _restore_data(self) -> Any:
        return None

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        """Undo choices at one level.

        Args:
            data: ID of a single chosen item to remove. When omitted, every
                choice made at the level is removed.
        """
        level = self.relevant_level(levels)
        if not level:
            return
        value = self.value
        entries = value.added.get(level, [])
        replaced = value.replaced.get(level)
        updates: dict[str, Any] = {}

        if data is None:
            if level not in value.added and replaced is None:
                return
            await self._remove_granted(entries)
            updates[f"added.{level}"] = DELETE
            if replaced is not None:
                await self._restore_replaced(replaced)
                updates[f"replaced.{level}"] = DELETE
        else:
            item_id = data if isinstance(data, str) else data.get("id")
            entry = next((e for e in entries if e.document == item_id), None)
            if entry is None:
                return
            await self._remove_granted([entry])
            remaining = [e.model_dump() for e in entries if e.document != item_id]
            updates[f"added.{level}"] = remaining or DELETE
            if replaced is not None and replaced.replacement == item_id:
                await self._restore_replaced(replaced)
                updates[f"replaced.{level}"] = DELETE

        await self.update_value(updates)
