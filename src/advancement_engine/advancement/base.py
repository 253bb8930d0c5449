"""
Abstract advancement.

An advancement is a typed progression rule stored on an item. Its
``configuration`` is authored with the item; its ``value`` holds the player's
choices and lives on the character at
``system.progression.advancement.<itemId>.<advancementId>``, so two characters
holding clones of the same content keep independent choices.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, Iterable

from pydantic import BaseModel, ConfigDict, Field
from shortuuid import random

from ..changes import Change
from ..notifications import Notification
from ..utils import DELETE, apply_patch, get_property, slugify
from .levels import AdvancementLevels, ClassRestriction, resolve_relevant_level

if TYPE_CHECKING:
    from ..models import Character, Item
    from ..notifications import NotificationCollection
    from ..ruleset import Ruleset

logger = logging.getLogger("advancement-engine.advancement")


class AdvancementError(Exception):
    """Raised when a choice or dropped item fails validation."""


class AdvancementConfigurationError(Exception):
    """Raised when an advancement cannot be added to an item."""


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class AdvancementLevel(BaseModel):
    """Level binding of an advancement."""

    value: int | None = Field(default=None, description="None for multi-level advancements")
    class_identifier: str | None = Field(
        default=None, description="Bind a non-class item's advancement to one class's levels"
    )
    class_restriction: ClassRestriction | None = None


class AdvancementData(BaseModel):
    """An advancement definition as stored on its item."""

    id: str = Field(default_factory=lambda: random(length=8))
    type: str
    title: str = ""
    identifier: str = ""
    hint: str = ""
    level: AdvancementLevel = Field(default_factory=AdvancementLevel)
    configuration: dict[str, Any] = Field(default_factory=dict)


class AdvancementConfiguration(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GrantedItem(BaseModel):
    """Reference to an item created on the character by an advancement."""

    document: str
    uuid: str
    modified: bool = False


# ---------------------------------------------------------------------------
# Advancement
# ---------------------------------------------------------------------------


class Advancement:
    """Base class for every advancement type.

    Subclasses set the class attributes below and override the operations
    that apply to them. Instances are cheap views over an item's
    :class:`AdvancementData`; they are rebuilt whenever the item's
    advancement set changes.
    """

    type: ClassVar[str] = ""
    order: ClassVar[int] = 100
    default_title: ClassVar[str] = "Advancement"
    multi_level: ClassVar[bool] = False
    singleton: ClassVar[bool] = False
    valid_item_types: ClassVar[frozenset[str]] = frozenset()
    configuration_model: ClassVar[type[BaseModel]] = AdvancementConfiguration
    value_model: ClassVar[type[BaseModel] | None] = None

    def __init__(self, data: AdvancementData, item: "Item") -> None:
        self.data = data
        self.item = item
        self.configuration = self.configuration_model.model_validate(data.configuration)
        self.title = data.title or self.default_title
        self.identifier = data.identifier or slugify(self.title)
        self.level = data.level
        if not self.multi_level and self.level.value is None:
            self.level = self.level.model_copy(update={"value": self.minimum_level})

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.relative_id} '{self.title}'>"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.data.id

    @property
    def relative_id(self) -> str:
        """Unique ID of this advancement on a character: ``itemId.advancementId``."""
        return f"{self.item.id}.{self.id}"

    @property
    def character(self) -> "Character | None":
        return self.item.character

    @property
    def ruleset(self) -> "Ruleset":
        return self.item.ruleset

    @property
    def strict(self) -> bool:
        return self.ruleset.config.strict_validation

    @property
    def value_key_path(self) -> str:
        return f"system.progression.advancement.{self.relative_id}"

    @property
    def value(self) -> Any:
        """Player choices stored on the character, parsed into ``value_model``."""
        raw = {}
        if self.character is not None:
            raw = get_property({"system": self.character.system}, self.value_key_path) or {}
        if self.value_model is None:
            return raw
        return self.value_model.model_validate(raw)

    @property
    def minimum_level(self) -> int:
        if self.item.type == "class":
            return 1
        if self.item.type == "subclass":
            return self.ruleset.config.subclass_level
        return 1 if self.level.class_identifier else 0

    @property
    def class_identifier(self) -> str | None:
        """Identifier of the class whose levels drive this advancement, if any."""
        if self.item.type == "class":
            return self.item.identifier
        if self.item.type == "subclass":
            return self.item.class_identifier
        return self.level.class_identifier

    def levels(self) -> list[int]:
        """Levels at which this advancement has content."""
        return [self.level.value] if self.level.value is not None else []

    def relevant_level(self, levels: AdvancementLevels) -> int | None:
        character = self.character
        return resolve_relevant_level(
            levels,
            item_type=self.item.type,
            item_identifier=self.item.identifier,
            parent_class_identifier=self.item.class_identifier,
            class_identifier=self.level.class_identifier,
            class_restriction=self.level.class_restriction,
            original_class=character.original_class if character is not None else None,
        )

    # ------------------------------------------------------------------
    # Warnings & display
    # ------------------------------------------------------------------

    def warning_key(self, levels: AdvancementLevels) -> str:
        return f"{self.relative_id}.{self.relevant_level(levels)}.warning"

    def warning_message(self, levels: AdvancementLevels) -> str:
        return f"{self.title} requires a choice"

    def prepare_warnings(self, levels: AdvancementLevels, notifications: "NotificationCollection") -> None:
        """Record a warning when choices are still missing at these levels."""
        if self.configured_for_level(levels):
            return
        notifications.set(
            self.warning_key(levels),
            Notification(
                category=f"level-{levels.character}",
                section="progression",
                level="warn",
                message=self.warning_message(levels),
            ),
        )

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        """Has the player made every required choice at these levels?"""
        return True

    def sorting_value_for_level(self, levels: AdvancementLevels) -> str:
        return f"{self.order:04d} {self.title_for_level(levels)}"

    def title_for_level(self, levels: AdvancementLevels) -> str:
        return self.title

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        return ""

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    @classmethod
    def available_for_item(cls, item: "Item") -> bool:
        """Can another advancement of this type be added to ``item``?"""
        if cls.singleton:
            return not item.advancements.by_type(cls.type)
        return True

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        """Changes contributed to the overlay at these levels. Must be pure."""
        return None

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Persist choices for these levels and create granted items.

        Args:
            levels: The level step being applied.
            data: Choice data; its shape depends on the advancement type.
            initial: Automated backfill; use defaults instead of requiring input.
        """
        return None

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        """Undo :meth:`apply` for these levels. A no-op on unapplied state."""
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, message: str, strict: bool) -> bool:
        """Raise in strict mode, otherwise log and report the failure."""
        if strict:
            raise AdvancementError(message)
        logger.warning(f"{self.relative_id}: {message}")
        return False

    def _require_character(self) -> "Character":
        if self.character is None:
            raise AdvancementError(f"{self.title} is not on a character")
        return self.character

    async def update_value(self, updates: dict[str, Any]) -> None:
        """Update this advancement's value data on the character.

        Args:
            updates: Flat patch relative to the value record; use
                :data:`~advancement_engine.utils.DELETE` to remove a key.
        """
        character = self._require_character()
        patch = {
            (f"{self.value_key_path}.{key}" if key else self.value_key_path): value
            for key, value in updates.items()
        }
        await character.update(patch)

    async def create_items(
        self,
        uuids: Iterable[str],
        *,
        changes: dict[str, Any] | None = None,
        item_ids: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Clone content onto the character with origin flags.

        Missing references are logged and skipped.

        Args:
            uuids: Content references to clone.
            changes: Flat patch applied to every created item's data.
            item_ids: Explicit item IDs keyed by reference (used to restore
                previously deleted items with their original ID).

        Returns:
            ``[{document, uuid}]`` entries for the created items.
        """
        character = self._require_character()
        items, added = [], []
        for uuid in uuids:
            content = await self.ruleset.content.resolve_by_reference(uuid)
            if content is None:
                logger.warning(f"{self.relative_id}: skipping unresolved content '{uuid}'")
                continue
            item_id = (item_ids or {}).get(uuid) or random(length=8)
            item_data = content.to_item_data(item_id, flags={"advancement_origin": self.relative_id})
            if changes:
                apply_patch(item_data, changes)
            items.append(item_data)
            added.append({"document": item_id, "uuid": uuid})
        if items:
            await character.create_embedded_items(items)
        return added

    async def delete_items(self, ids: Iterable[str]) -> None:
        character = self._require_character()
        ids = [i for i in ids if i in character.items]
        if ids:
            await character.delete_embedded_items(ids)

    async def clear_value(self, *keys: str) -> None:
        """Remove keys of the value record, or the whole record when none are given."""
        if keys:
            await self.update_value({key: DELETE for key in keys})
        else:
            await self.update_value({"": DELETE})
