"""
Equipment advancement: a character's starting equipment.

The pool is a flat list of entries forming a tree through their ``group``
references. ``AND`` entries grant all of their children, ``OR`` entries one of
them. Leaf entries are either a specific linked item or a category of armor,
tools or weapons from which the player selects an item. Items whose content
lists ``system.contents`` are created together with everything they contain.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field
from shortuuid import random

from ..utils import get_property
from .base import Advancement
from .levels import AdvancementLevels

logger = logging.getLogger("advancement-engine.advancement")

GROUPING_TYPES = ("AND", "OR")

# Entry type -> content item type and proficiency path
CATEGORY_TYPES = {
    "armor": ("armor", "system.proficiencies.armor.value"),
    "tool": ("tool", None),
    "weapon": ("weapon", "system.proficiencies.weapons.value"),
}


class EquipmentEntry(BaseModel):
    id: str = Field(default_factory=lambda: random(length=8))
    group: str | None = Field(default=None, description="ID of the parent grouping entry")
    sort: int = 0
    type: Literal["AND", "OR", "armor", "tool", "weapon", "linked"] = "OR"
    count: int | None = Field(default=None, ge=1)
    key: str | None = Field(default=None, description="Category key, or a content reference for linked entries")
    requires_proficiency: bool = False


class EquipmentConfiguration(BaseModel):
    pool: list[EquipmentEntry] = Field(default_factory=list)

    def children(self, entry: EquipmentEntry) -> list[EquipmentEntry]:
        if entry.type not in GROUPING_TYPES:
            return []
        return sorted((e for e in self.pool if e.group == entry.id), key=lambda e: e.sort)

    @property
    def roots(self) -> list[EquipmentEntry]:
        return sorted((e for e in self.pool if e.group is None), key=lambda e: e.sort)


class GrantedEquipment(BaseModel):
    document: str
    uuid: str
    part: str = Field(description="ID of the entry the item was granted for")
    count: int = 1


class EquipmentValue(BaseModel):
    added: list[GrantedEquipment] = Field(default_factory=list)
    contained: list[str] = Field(default_factory=list, description="IDs of items created inside containers")
    wealth: int | None = None


class EquipmentSelection(BaseModel):
    """Choice data passed to :meth:`EquipmentAdvancement.apply`."""

    choices: dict[str, str] = Field(default_factory=dict, description="OR entry ID -> chosen child ID")
    selections: dict[str, str] = Field(default_factory=dict, description="Category entry ID -> content reference")
    wealth: int | None = Field(default=None, description="Take wealth instead of equipment")


class EquipmentAdvancement(Advancement):
    type: ClassVar[str] = "equipment"
    order: ClassVar[int] = 32
    default_title: ClassVar[str] = "Equipment"
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"class", "background"})
    configuration_model = EquipmentConfiguration
    value_model = EquipmentValue

    def levels(self) -> list[int]:
        return [1]

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        value = self.value
        return bool(value.added) or value.wealth is not None or not self.configuration.pool

    def warning_message(self, levels: AdvancementLevels) -> str:
        return "Starting equipment has not been selected"

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def label(self, entry: EquipmentEntry) -> str:
        """Human readable description of an entry and its children."""
        if entry.type in GROUPING_TYPES:
            labels = [self.label(child) for child in self.configuration.children(entry)]
            labels = [label for label in labels if label]
            if entry.type == "OR":
                labels = [f"({chr(97 + i)}) {label}" for i, label in enumerate(labels)]
            return f" {entry.type.lower()} ".join(labels)
        if entry.type == "linked":
            label = entry.key or ""
            if entry.requires_proficiency:
                label += " (if proficient)"
        else:
            category = (entry.key or "").replace(".", " ")
            label = f"{category} {entry.type}".strip()
            label = f"any {label}" if (entry.count or 1) == 1 else label
        if (entry.count or 1) > 1:
            label = f"{entry.count} {label}"
        return label

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        return "; ".join(label for label in map(self.label, self.configuration.roots) if label)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def requires_choice(self, entry: EquipmentEntry) -> bool:
        if entry.type in CATEGORY_TYPES:
            return True
        children = self.configuration.children(entry)
        if entry.type == "OR" and len(children) > 1:
            return True
        return any(self.requires_choice(child) for child in children)

    async def _resolve(self, entry: EquipmentEntry, selection: EquipmentSelection) -> list[tuple[str, str, int]]:
        """Flatten an entry into ``(reference, part, count)`` grants."""
        count = entry.count or 1
        if entry.type == "AND":
            grants = []
            for child in self.configuration.children(entry):
                grants.extend(await self._resolve(child, selection))
            return grants

        if entry.type == "OR":
            children = self.configuration.children(entry)
            if len(children) == 1:
                return await self._resolve(children[0], selection)
            chosen_id = selection.choices.get(entry.id)
            chosen = next((c for c in children if c.id == chosen_id), None)
            if chosen is None:
                self._fail(f"No option chosen for '{self.label(entry)}'", self.strict)
                return []
            return await self._resolve(chosen, selection)

        if entry.type == "linked":
            if not entry.key:
                return []
            content = await self.ruleset.content.resolve_by_reference(entry.key)
            if content is None:
                return []
            if entry.requires_proficiency and not self._proficient(entry, content):
                logger.info(f"{self.relative_id}: skipping '{content.name}', character is not proficient")
                return []
            return [(entry.key, entry.id, count)]

        reference = selection.selections.get(entry.id)
        if not reference:
            self._fail(f"No item selected for '{self.label(entry)}'", self.strict)
            return []
        content = await self.ruleset.content.resolve_by_reference(reference)
        if content is None or not self._validate_category(entry, content):
            return []
        return [(reference, entry.id, count)]

    def _validate_category(self, entry: EquipmentEntry, content) -> bool:
        item_type, _ = CATEGORY_TYPES[entry.type]
        if content.type != item_type:
            return self._fail(f"'{content.name}' is not a {item_type}", self.strict)
        if entry.key:
            category, _, subtype = entry.key.partition(".")
            if content.system.get("category") != category:
                return self._fail(f"'{content.name}' is not a {category} {item_type}", self.strict)
            if subtype and content.system.get("type") != subtype:
                return self._fail(f"'{content.name}' is not a {subtype} {item_type}", self.strict)
        if entry.requires_proficiency and not self._proficient(entry, content):
            return self._fail(f"Character is not proficient with '{content.name}'", self.strict)
        return True

    def _proficient(self, entry: EquipmentEntry, content) -> bool:
        item_type = entry.type if entry.type in CATEGORY_TYPES else content.type
        _, path = CATEGORY_TYPES.get(item_type, (None, None))
        character = self.character
        if path is None or character is None:
            return True
        proficiencies = get_property(character.data, path) or []
        return content.system.get("category") in proficiencies

    async def _build_items(
        self, reference: str, count: int, items: list[dict], contained: list[str], container: str | None = None
    ) -> str | None:
        """Item data for ``reference`` and everything it contains, appended to ``items``."""
        content = await self.ruleset.content.resolve_by_reference(reference)
        if content is None:
            return None
        item_id = random(length=8)
        data = content.to_item_data(item_id, flags={"advancement_origin": self.relative_id})
        if count > 1:
            data["system"]["quantity"] = count
        if container is not None:
            data["system"]["container"] = container
            contained.append(item_id)
        data["system"].pop("contents", None)
        items.append(data)
        for child in content.system.get("contents") or []:
            if isinstance(child, str):
                child = {"uuid": child}
            await self._build_items(child["uuid"], child.get("count", 1), items, contained, container=item_id)
        return item_id

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Grant the selected starting equipment, or record wealth taken instead."""
        value = self.value
        if value.added or value.wealth is not None:
            return
        if initial and data is None and any(self.requires_choice(e) for e in self.configuration.roots):
            return
        selection = data if isinstance(data, EquipmentSelection) else EquipmentSelection.model_validate(data or {})

        if selection.wealth is not None:
            await self.update_value({"wealth": selection.wealth})
            return

        grants = []
        for root in self.configuration.roots:
            grants.extend(await self._resolve(root, selection))
        if not grants:
            return

        items: list[dict] = []
        added, contained = [], []
        for reference, part, count in grants:
            item_id = await self._build_items(reference, count, items, contained)
            if item_id is not None:
                added.append({"document": item_id, "uuid": reference, "part": part, "count": count})
        if items:
            await self._require_character().create_embedded_items(items)
        await self.update_value({"added": added, "contained": contained})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        value = self.value
        if not value.added and value.wealth is None:
            return
        await self.delete_items([*value.contained, *(entry.document for entry in value.added)])
        await self.clear_value()
