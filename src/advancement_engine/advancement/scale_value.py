"""
Scale value advancements.

A scale value is a sparse table keyed by level (e.g. a sneak attack die that
grows at levels 1, 5 and 11). The value at any level is the entry at the
highest key not above it; structured entries inherit missing parts from lower
entries. The current value is exposed on the character under
``system.scale.<item identifier>.<advancement identifier>``.
"""

from __future__ import annotations

import re
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from ..changes import Change, ChangeMode
from .base import Advancement
from .levels import AdvancementLevels

ScaleType = Literal["string", "number", "dice", "distance"]

_DICE_PATTERN = re.compile(r"^\s*(\d*)\s*d\s*(\d+)\s*$", re.IGNORECASE)

# Parts of a structured entry per scale type
SCALE_TYPE_KEYS: dict[str, tuple[str, ...]] = {
    "string": ("value",),
    "number": ("value",),
    "dice": ("number", "denomination"),
    "distance": ("value", "units"),
}


class ScaleValueConfiguration(BaseModel):
    type: ScaleType = "string"
    scale: dict[int, Any] = Field(default_factory=dict, description="Sparse values keyed by level")
    distance_units: str = "foot"


def _normalize_entry(scale_type: str, entry: Any) -> dict[str, Any]:
    """Convert a stored entry (scalar or dict) into its structured parts."""
    if isinstance(entry, dict):
        return {k: v for k, v in entry.items() if v is not None}
    if entry is None:
        return {}
    if scale_type == "dice" and isinstance(entry, str):
        match = _DICE_PATTERN.match(entry)
        if match is None:
            return {}
        number, denomination = match.groups()
        parts = {"denomination": int(denomination)}
        if number:
            parts["number"] = int(number)
        return parts
    return {"value": entry}


class ScaleValueAdvancement(Advancement):
    """A value that changes as the class level rises."""

    type: ClassVar[str] = "scaleValue"
    order: ClassVar[int] = 60
    default_title: ClassVar[str] = "Scale Value"
    multi_level: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset(
        {"class", "subclass", "lineage", "heritage", "background", "talent"}
    )
    configuration_model = ScaleValueConfiguration

    @property
    def scale_type(self) -> str:
        return self.configuration.type

    def levels(self) -> list[int]:
        return sorted(self.configuration.scale)

    def value_for_level(self, level: int | None) -> Any:
        """Scale value at ``level`` or None when no entry applies."""
        if level is None:
            return None
        valid_keys = SCALE_TYPE_KEYS[self.scale_type]
        data: dict[str, Any] = {}
        for key in sorted(self.configuration.scale, reverse=True):
            if key > level:
                continue
            entry = _normalize_entry(self.scale_type, self.configuration.scale[key])
            for part in valid_keys:
                if part not in data and part in entry:
                    data[part] = entry[part]
        if not data:
            return None
        return self._format(data)

    def _format(self, data: dict[str, Any]) -> Any:
        if self.scale_type == "dice":
            if not data.get("denomination"):
                return None
            return f"{data.get('number', '')}d{data['denomination']}"
        if self.scale_type == "distance":
            if data.get("value") is None:
                return None
            return {"value": data["value"], "units": data.get("units", self.configuration.distance_units)}
        if self.scale_type == "number":
            value = data.get("value")
            if isinstance(value, str):
                try:
                    value = float(value) if "." in value else int(value)
                except ValueError:
                    return None
            return value
        return data.get("value")

    def title_for_level(self, levels: AdvancementLevels) -> str:
        value = self.value_for_level(self.relevant_level(levels))
        if value is None:
            return self.title
        if isinstance(value, dict):
            value = f"{value['value']} {value['units']}"
        return f"{self.title}: {value}"

    @property
    def target_key(self) -> str:
        return f"system.scale.{self.item.identifier}.{self.identifier}"

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        value = self.value_for_level(self.relevant_level(levels))
        if value is None:
            return None
        return [Change(key=self.target_key, mode=ChangeMode.OVERRIDE, value=value)]


class SpellcastingValueConfiguration(ScaleValueConfiguration):
    type: ScaleType = "number"


class SpellcastingValueAdvancement(ScaleValueAdvancement):
    """Number of spells, rituals or cantrips known per class level."""

    type: ClassVar[str] = "spellcastingValue"
    order: ClassVar[int] = 37
    default_title: ClassVar[str] = "Spells Known"
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"class", "subclass"})
    configuration_model = SpellcastingValueConfiguration

    @property
    def scale_type(self) -> str:
        return "number"

    @property
    def target_key(self) -> str:
        return f"system.spellcasting.origins.{self.class_identifier or self.item.identifier}.{self.identifier}"
