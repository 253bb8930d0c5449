"""
Active effects: the persistent override layer.

Effects are stored on the character and carry the same ``{key, mode, value}``
changes as advancements. They are folded after the advancement overlay with
the same interpreter, so an effect can override a value an advancement set.

The engine is stateless: every method takes a Character and either returns a
computed view or persists a new effect list through the character's store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field
from shortuuid import random

from .changes import Change
from .deltas import DeltaInterpreter
from .overlay import fold_changes

if TYPE_CHECKING:
    from .models import Character
    from .ruleset import Ruleset

logger = logging.getLogger("advancement-engine.effects")


class ActiveEffect(BaseModel):
    """A persistent set of changes on a character (buff, condition, magic item).

    Attributes:
        id: Unique identifier for this effect instance.
        name: Display name of the effect.
        source: What caused this effect (e.g. "Bless spell").
        changes: Changes folded into the character's prepared data.
        disabled: Disabled effects are kept but contribute nothing.
        duration_type: "rounds", "minutes" or "permanent".
        duration_remaining: Remaining rounds/minutes, None when permanent.
        stackable: Whether several effects with the same name can coexist.
    """

    id: str = Field(default_factory=lambda: random(length=8))
    name: str
    source: str = ""
    changes: list[Change] = Field(default_factory=list)
    disabled: bool = False
    duration_type: Literal["rounds", "minutes", "permanent"] = "permanent"
    duration_remaining: int | None = Field(
        default=None, description="Remaining duration in rounds/minutes. None when permanent."
    )
    stackable: bool = False


class EffectsEngine:
    """Stateless helpers for managing and folding a character's active effects.

    Management methods persist the new effect list through the character's
    store, which recomputes the character and saves it.
    """

    # -----------------------------------------------------------------
    # Effect Management
    # -----------------------------------------------------------------

    @staticmethod
    async def _store_effects(character: "Character", effects: list[ActiveEffect]) -> None:
        await character.update({"effects": [e.model_dump(mode="json") for e in effects]})

    @staticmethod
    async def apply_effect(character: "Character", effect: ActiveEffect) -> ActiveEffect:
        """Add a copy of ``effect`` to the character.

        Non-stackable effects are not duplicated; the existing one is returned.
        """
        if not effect.stackable:
            for existing in character.effects:
                if existing.name == effect.name:
                    return existing

        applied = effect.model_copy(update={"id": random(length=8)}, deep=True)
        await EffectsEngine._store_effects(character, [*character.effects, applied])
        logger.info(f"Applied effect '{applied.name}' to '{character.name}'")
        return next(e for e in character.effects if e.id == applied.id)

    @staticmethod
    async def remove_effect(character: "Character", effect_id: str) -> ActiveEffect | None:
        removed = next((e for e in character.effects if e.id == effect_id), None)
        if removed is not None:
            await EffectsEngine._store_effects(character, [e for e in character.effects if e.id != effect_id])
        return removed

    @staticmethod
    async def remove_effects_by_name(character: "Character", name: str) -> list[ActiveEffect]:
        removed = [e for e in character.effects if e.name == name]
        if removed:
            await EffectsEngine._store_effects(character, [e for e in character.effects if e.name != name])
        return removed

    @staticmethod
    async def tick_effects(character: "Character") -> list[ActiveEffect]:
        """Advance timed effects by one round and drop the ones that expired.

        Returns:
            The expired effects.
        """
        expired, remaining = [], []
        ticked = False
        for effect in character.effects:
            if effect.duration_type == "rounds" and effect.duration_remaining is not None:
                ticked = True
                effect = effect.model_copy(update={"duration_remaining": effect.duration_remaining - 1})
                if effect.duration_remaining <= 0:
                    expired.append(effect)
                    continue
            remaining.append(effect)
        if ticked:
            await EffectsEngine._store_effects(character, remaining)
        return expired

    # -----------------------------------------------------------------
    # Folding
    # -----------------------------------------------------------------

    @staticmethod
    def collect(character: "Character") -> list[Change]:
        return [
            change.tagged(f"effect:{effect.id}")
            for effect in character.effects
            if not effect.disabled
            for change in effect.changes
        ]

    @staticmethod
    def prepare(ruleset: "Ruleset", character: "Character", data: dict[str, Any]) -> dict[str, Any]:
        """Flat patch produced by the character's enabled effects over ``data``."""
        interpreter = DeltaInterpreter(ruleset.schema, ruleset.deltas)
        return fold_changes(interpreter, EffectsEngine.collect(character), data)
