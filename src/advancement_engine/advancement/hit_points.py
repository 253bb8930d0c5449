"""
Hit points advancement.

Tracks the hit point choice the player made for every level of a class:
the maximum die value, the average, or a rolled number. Only classes carry
one, and each class carries at most one.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from ..utils import DELETE
from .base import Advancement, AdvancementError
from .levels import AdvancementLevels

logger = logging.getLogger("advancement-engine.advancement")


class HitPointsConfiguration(BaseModel):
    denomination: int = Field(default=8, ge=1, description="Face value of the hit die")


class HitPointsValue(BaseModel):
    granted: dict[int, str | int] = Field(
        default_factory=dict, description="Choice per class level: 'max', 'avg' or a rolled number"
    )


class HitPointsAdvancement(Advancement):
    """Hit point choices per class level."""

    type: ClassVar[str] = "hitPoints"
    order: ClassVar[int] = 10
    default_title: ClassVar[str] = "Hit Points"
    multi_level: ClassVar[bool] = True
    singleton: ClassVar[bool] = True
    valid_item_types: ClassVar[frozenset[str]] = frozenset({"class"})
    configuration_model = HitPointsConfiguration
    value_model = HitPointsValue

    @property
    def denomination(self) -> int:
        return self.configuration.denomination

    def levels(self) -> list[int]:
        return list(range(1, self.ruleset.config.max_level + 1))

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    @staticmethod
    def value_from_choice(choice: Any, denomination: int) -> int | None:
        """Hit points represented by one stored choice, or None if nothing is taken."""
        if choice == "max":
            return denomination
        if choice == "avg":
            return denomination // 2 + 1
        if isinstance(choice, bool):
            return None
        if isinstance(choice, int):
            return choice
        if isinstance(choice, str) and choice.strip().isdigit():
            return int(choice)
        return None

    def value_for_level(self, level: int) -> int | None:
        return self.value_from_choice(self.value.granted.get(level), self.denomination)

    def total(self) -> int:
        return sum(self.value_for_level(level) or 0 for level in self.value.granted)

    def adjusted_total(self, mod: int) -> int:
        """Total hit points with ``mod`` added per level, at least 1 per level."""
        total = 0
        for level in self.value.granted:
            value = self.value_for_level(level)
            if value is not None:
                total += max(value + mod, 1)
        return total

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def configured_for_level(self, levels: AdvancementLevels) -> bool:
        level = self.relevant_level(levels)
        if not level:
            return True
        return self.value_for_level(level) is not None

    def warning_message(self, levels: AdvancementLevels) -> str:
        return f"Hit points have not been selected for level {self.relevant_level(levels)}"

    def summary_for_level(self, levels: AdvancementLevels) -> str:
        level = self.relevant_level(levels)
        value = self.value_for_level(level) if level else None
        return f"{value} HP" if value is not None else ""

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def _validate_choice(self, choice: Any, levels: AdvancementLevels) -> bool:
        if choice in ("max", "avg"):
            return choice != "max" or levels.character == 1
        value = self.value_from_choice(choice, self.denomination)
        return value is not None and 1 <= value <= self.denomination

    async def apply(self, levels: AdvancementLevels, data: Any = None, *, initial: bool = False) -> None:
        """Record hit points for the class level being gained.

        The first character level always takes the maximum. Without data, an
        automated apply only repeats "avg" when the previous level took it.
        """
        level = self.relevant_level(levels)
        if not level:
            return

        if levels.character == 1:
            choice = "max"
        elif data is None:
            if not initial:
                return
            if self.value.granted.get(level - 1) != "avg":
                return
            choice = "avg"
        else:
            choice = data
            if not self._validate_choice(choice, levels):
                if self.strict:
                    raise AdvancementError(f"Invalid hit points choice {choice!r} for level {level}")
                logger.warning(f"{self.relative_id}: ignoring invalid hit points choice {choice!r}")
                return

        await self.update_value({f"granted.{level}": choice})

    async def reverse(self, levels: AdvancementLevels, data: Any = None) -> None:
        level = self.relevant_level(levels)
        if not level or level not in self.value.granted:
            return
        await self.update_value({f"granted.{level}": DELETE})
