"""Key ability advancement: a class's primary and secondary abilities."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from ..changes import Change, ChangeMode
from .base import Advancement, AdvancementError
from .levels import AdvancementLevels

logger = logging.getLogger("advancement-engine.advancement")


class KeyAbilityConfiguration(BaseModel):
    options: list[str] = Field(default_factory=list, description="Abilities the key ability is chosen from")
    secondary: str | None = None


class KeyAbilityValue(BaseModel):
    selected: str | None = None


class KeyAbilityAdvancement(Advancement):
    """Selects the key ability and grants saving throw proficiencies.

    Saves are only granted when the class is the character's original class.
    """

    type: ClassVar[str] = "keyAbility"
    order: ClassVar[int] = 15
    default_title: ClassVar[str] = "Key Ability"
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"class"})
    configuration_model = KeyAbilityConfiguration
    value_model = KeyAbilityValue

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        return bool(self.value.selected)

    def warning_key(self, levels: AdvancementLevels) -> str:
        return f"{self.relative_id}.{levels.class_}.no-key-ability"

    def warning_message(self, levels: AdvancementLevels) -> str:
        return "Key ability has not been selected"

    def title_for_level(self, levels: AdvancementLevels) -> str:
        options = [self.value.selected] if self.value.selected else self.configuration.options
        abilities = [a.upper()[:3] for a in [*options, self.configuration.secondary] if a]
        if not abilities:
            return self.title
        return f"{self.title}: {', '.join(abilities)}"

    def changes(self, levels: AdvancementLevels) -> list[Change] | None:
        selected = self.value.selected
        if not selected:
            return None
        character = self.character
        if character is not None and character.original_class not in (None, self.item.identifier):
            return None
        changes = [
            Change(
                key=f"system.abilities.{selected}.save.proficiency.multiplier",
                mode=ChangeMode.UPGRADE,
                value=1,
            )
        ]
        if self.configuration.secondary:
            changes.append(
                Change(
                    key=f"system.abilities.{self.configuration.secondary}.save.proficiency.multiplier",
                    mode=ChangeMode.UPGRADE,
                    value=1,
                )
            )
        return changes

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        if isinstance(data, dict):
            data = data.get("selected")
        if initial and data is None:
            if len(self.configuration.options) != 1:
                return
            data = self.configuration.options[0]
        if not data:
            return
        if self.configuration.options and data not in self.configuration.options:
            if self.strict:
                raise AdvancementError(f"'{data}' is not a key ability option for {self.item.name}")
            logger.warning(f"{self.relative_id}: ignoring invalid key ability '{data}'")
            return
        await self.update_value({"selected": data})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        if self.value.selected is None:
            return
        await self.clear_value("selected")
