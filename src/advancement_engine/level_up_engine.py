"""Level-Up Engine: advance a character one level in a class, or take the last level back.

Gaining a level records a ``{character, class, identifier}`` step in the
character's progression and applies every advancement active at that step.
Choices are passed per advancement; anything not chosen is applied with
defaults and shows up as a warning until the player decides.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from .advancement.levels import AdvancementLevels
from .models import Character
from .orchestrator import AdvancementManager
from .utils import DELETE, get_property

logger = logging.getLogger("advancement-engine.level-up")


class LevelUpError(Exception):
    """Raised when level-up cannot proceed."""


class LevelUpResult(BaseModel):
    """Summary of changes applied during a level change."""

    new_level: int
    class_identifier: str
    class_level: int
    hp_gained: int
    advancements_applied: list[str]
    items_granted: list[str]
    subclass_set: str | None = None
    proficiency_bonus_changed: bool
    pending_choices: list[str]
    summary: str


class LevelUpEngine:
    """Handle character level progression through the advancement manager."""

    def __init__(self, manager: AdvancementManager) -> None:
        self.manager = manager

    @property
    def ruleset(self):
        return self.manager.ruleset

    async def level_up(
        self,
        character: Character,
        class_identifier: str,
        *,
        class_content: str | None = None,
        hit_points: str | int | None = None,
        subclass: str | None = None,
        choices: dict[str, Any] | None = None,
    ) -> LevelUpResult:
        """Level up a character by one level in a class.

        Args:
            character: The character to level up.
            class_identifier: Identifier of the class gaining the level.
            class_content: Content reference of the class, required when the
                character does not have the class yet (first level, multiclass).
            hit_points: "max", "avg" or a rolled number for the class's hit
                points advancement.
            subclass: Content reference of a subclass to add, allowed once the
                class reaches the subclass level.
            choices: Choice data keyed by advancement ID or relative ID.

        Returns:
            LevelUpResult with summary of all changes.

        Raises:
            LevelUpError: If level-up cannot proceed.
        """
        return await self.manager.queue.submit(
            character.id,
            lambda: self._level_up(
                character,
                class_identifier,
                class_content=class_content,
                hit_points=hit_points,
                subclass=subclass,
                choices=dict(choices or {}),
            ),
        )

    async def _level_up(
        self,
        character: Character,
        class_identifier: str,
        *,
        class_content: str | None,
        hit_points: str | int | None,
        subclass: str | None,
        choices: dict[str, Any],
    ) -> LevelUpResult:
        current_level = character.level
        new_level = current_level + 1
        max_level = self.ruleset.config.max_level
        if new_level > max_level:
            raise LevelUpError(f"Character is already at maximum level ({max_level}).")

        old_hp = self._hp_max(character)
        old_prof = get_property(character.data, "system.attributes.prof")
        before = set(character.items)
        changes: list[str] = []

        # 1. Make sure the class is on the character
        class_item = character.classes.get(class_identifier)
        if class_item is None:
            if class_content is None:
                raise LevelUpError(
                    f"Character has no '{class_identifier}' class. Pass class_content to add it."
                )
            content = await self.ruleset.content.resolve_by_reference(class_content)
            if content is None or content.type != "class" or content.identifier != class_identifier:
                raise LevelUpError(f"'{class_content}' is not the content of the '{class_identifier}' class")
            class_item = await self.manager.run_add_item(character, content)
            changes.append(f"Class added: {class_item.name}")

        # 2. Subclass at the appropriate level, added before the step is
        # recorded so its advancements for this step apply only once
        class_level = character.class_level(class_identifier) + 1
        subclass_set = None
        if subclass is not None:
            subclass_set = await self._add_subclass(character, class_identifier, class_level, subclass)
            changes.append(f"Subclass: {subclass_set}")

        # 3. Record the level step
        levels = AdvancementLevels(character=new_level, class_=class_level, identifier=class_identifier)
        await character.update({f"system.progression.levels.{new_level}": levels.to_record()})
        changes.append(f"Level: {current_level} -> {new_level} ({class_item.name} {class_level})")

        # 4. Hit points choice goes to the class's hit points advancement
        if hit_points is not None:
            for advancement in class_item.advancements.by_type("hitPoints"):
                choices.setdefault(advancement.id, hit_points)

        # 5. Apply every advancement active at the new step
        applied = await self.manager.run_step(character, levels, choices)
        titles = [advancement.title_for_level(levels) for advancement in applied]
        if titles:
            changes.append(f"Advancements: {', '.join(titles)}")

        granted = [character.items[i].name for i in character.items if i not in before]
        if granted:
            changes.append(f"Granted: {', '.join(granted)}")

        hp_gained = self._hp_max(character) - old_hp
        changes.append(f"HP: +{hp_gained} (max now {self._hp_max(character)})")

        new_prof = get_property(character.data, "system.attributes.prof")
        prof_changed = new_prof != old_prof
        if prof_changed:
            changes.append(f"Proficiency bonus: +{old_prof} -> +{new_prof}")

        pending = [n.message for n in character.notifications.for_category(f"level-{new_level}")]
        for message in pending:
            changes.append(f"NOTE: {message}")

        summary = (
            f"{character.name} advanced to level {new_level} ({class_item.name} {class_level})!\n"
            + "\n".join(f"  - {c}" for c in changes)
        )
        logger.info(f"'{character.name}' reached level {new_level} ({class_identifier} {class_level})")

        return LevelUpResult(
            new_level=new_level,
            class_identifier=class_identifier,
            class_level=class_level,
            hp_gained=hp_gained,
            advancements_applied=titles,
            items_granted=granted,
            subclass_set=subclass_set,
            proficiency_bonus_changed=prof_changed,
            pending_choices=pending,
            summary=summary,
        )

    async def level_down(self, character: Character) -> LevelUpResult:
        """Reverse the character's last level step.

        The class item is removed when its last level is taken back.

        Raises:
            LevelUpError: If the character has no levels.
        """
        return await self.manager.queue.submit(character.id, lambda: self._level_down(character))

    async def _level_down(self, character: Character) -> LevelUpResult:
        steps = character.progression_levels()
        if not steps:
            raise LevelUpError(f"'{character.name}' has no levels to remove.")
        levels = steps[-1]
        old_hp = self._hp_max(character)
        old_prof = get_property(character.data, "system.attributes.prof")
        changes = [f"Level: {levels.character} -> {levels.character - 1}"]

        reversed_ = await self.manager.run_reverse_step(character, levels)
        titles = [advancement.title_for_level(levels) for advancement in reversed_]
        if titles:
            changes.append(f"Reversed: {', '.join(titles)}")
        await character.update({f"system.progression.levels.{levels.character}": DELETE})

        class_item = character.classes.get(levels.identifier)
        if class_item is not None and character.class_level(levels.identifier) == 0:
            for subclass in character.subclasses.get(levels.identifier, []):
                await self.manager.run_remove_item(character, subclass.id)
            await self.manager.run_remove_item(character, class_item.id)
            changes.append(f"Class removed: {class_item.name}")

        hp_gained = self._hp_max(character) - old_hp
        changes.append(f"HP: {hp_gained} (max now {self._hp_max(character)})")
        new_prof = get_property(character.data, "system.attributes.prof")
        summary = f"{character.name} returned to level {levels.character - 1}.\n" + "\n".join(
            f"  - {c}" for c in changes
        )
        logger.info(f"'{character.name}' lost level {levels.character}")

        return LevelUpResult(
            new_level=levels.character - 1,
            class_identifier=levels.identifier or "",
            class_level=levels.class_ - 1,
            hp_gained=hp_gained,
            advancements_applied=titles,
            items_granted=[],
            proficiency_bonus_changed=new_prof != old_prof,
            pending_choices=[],
            summary=summary,
        )

    # ------------------------------------------------------------------
    # Subclass
    # ------------------------------------------------------------------

    async def _add_subclass(
        self, character: Character, class_identifier: str, class_level: int, reference: str
    ) -> str:
        """Add a subclass item, validating it against the class and level."""
        subclass_level = self.ruleset.config.subclass_level
        if class_level < subclass_level:
            raise LevelUpError(
                f"Subclasses are chosen at class level {subclass_level} (reached {class_level})."
            )
        if character.subclasses.get(class_identifier):
            raise LevelUpError(f"Character already has a subclass for '{class_identifier}'.")
        content = await self.ruleset.content.resolve_by_reference(reference)
        if content is None or content.type != "subclass":
            raise LevelUpError(f"'{reference}' is not a subclass")
        if content.class_identifier != class_identifier:
            raise LevelUpError(f"Invalid subclass '{content.name}' for '{class_identifier}'")
        item = await self.manager.run_add_item(character, content)
        return item.name

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _hp_max(character: Character) -> int:
        return get_property(character.data, "system.attributes.hp.max") or 0
