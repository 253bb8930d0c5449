"""Size advancement: the size chosen for a lineage."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from ..changes import Change, ChangeMode
from .base import Advancement, AdvancementError
from .levels import AdvancementLevels

logger = logging.getLogger("advancement-engine.advancement")


class SizeConfiguration(BaseModel):
    options: list[str] = Field(default_factory=list)


class SizeValue(BaseModel):
    selected: str | None = None


class SizeAdvancement(Advancement):
    type: ClassVar[str] = "size"
    order: ClassVar[int] = 10
    default_title: ClassVar[str] = "Size"
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"lineage"})
    configuration_model = SizeConfiguration
    value_model = SizeValue

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        return bool(self.value.selected)

    def warning_key(self, levels: AdvancementLevels) -> str:
        return f"{self.relative_id}.{self.relevant_level(levels)}.select-size"

    def warning_message(self, levels: AdvancementLevels) -> str:
        return "Size has not been selected"

    def title_for_level(self, levels: AdvancementLevels) -> str:
        sizes = [self.value.selected] if self.value.selected else self.configuration.options
        if not sizes:
            return self.title
        return f"{self.title}: {' or '.join(s.title() for s in sizes)}"

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        if not self.value.selected:
            return None
        return [Change(key="system.traits.size", mode=ChangeMode.OVERRIDE, value=self.value.selected)]

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        if isinstance(data, dict):
            data = data.get("selected")
        if initial and data is None:
            if len(self.configuration.options) != 1:
                return
            data = self.configuration.options[0]
        if not data:
            return
        valid = self.configuration.options or self.ruleset.rules.sizes
        if data not in valid:
            if self.strict:
                raise AdvancementError(f"'{data}' is not a valid size for {self.item.name}")
            logger.warning(f"{self.relative_id}: ignoring invalid size '{data}'")
            return
        await self.update_value({"selected": data})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        if self.value.selected is None:
            return
        await self.clear_value("selected")
