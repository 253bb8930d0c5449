"""Property advancement: raw changes authored on the item."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, Field

from ..changes import Change
from .base import Advancement
from .levels import AdvancementLevels


class PropertyConfiguration(BaseModel):
    changes: list[Change] = Field(default_factory=list)


class PropertyAdvancement(Advancement):
    type: ClassVar[str] = "property"
    order: ClassVar[int] = 2
    default_title: ClassVar[str] = "Property"
    valid_item_types: ClassVar[frozenset[str]] = frozenset(
        {"background", "class", "subclass", "heritage", "lineage", "talent"}
    )
    configuration_model = PropertyConfiguration

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        return list(self.configuration.changes) or None
