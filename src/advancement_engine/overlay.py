"""
Change-overlay engine.

On every recompute the engine walks the character's level steps, collects the
changes contributed by each active advancement, orders them by priority and
folds them through the delta interpreter. The result is a flat patch applied
to the prepared data plus the same values as a nested tree, exposed as
``Character.advancement_overrides``. Nothing here is persisted and nothing
awaits.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from .changes import Change
from .deltas import DeltaInterpreter
from .utils import expand_object, get_property

if TYPE_CHECKING:
    from .models import Character
    from .ruleset import Ruleset

logger = logging.getLogger("advancement-engine.overlay")


def fold_changes(
    interpreter: DeltaInterpreter, changes: Iterable[Change], data: dict[str, Any]
) -> dict[str, Any]:
    """Fold changes in ascending priority into a fresh flat patch.

    The sort is stable, so changes of equal priority keep their collection
    order. Each change sees the value produced by earlier changes to the same
    key, falling back to ``data``.
    """
    patch: dict[str, Any] = {}
    for change in sorted(changes, key=lambda c: c.effective_priority):
        current = patch[change.key] if change.key in patch else get_property(data, change.key)
        interpreter.apply(change, current, patch)
    return patch


class ChangeOverlayEngine:
    """Computes the advancement overlay for a character.

    Args:
        ruleset: Supplies the schema and delta registry used for folding.
    """

    def __init__(self, ruleset: "Ruleset") -> None:
        self.ruleset = ruleset
        self.interpreter = DeltaInterpreter(ruleset.schema, ruleset.deltas)

    def collect(self, character: "Character") -> list[Change]:
        """Changes of every active advancement, tagged with their source."""
        changes: list[Change] = []
        for levels in character.level_steps():
            for advancement in character.advancement_for_level(levels):
                contributed = advancement.changes(levels)
                if not contributed:
                    continue
                changes.extend(change.tagged(advancement.relative_id) for change in contributed)
        return changes

    def prepare(self, character: "Character", data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
        """Build the overlay for ``character``.

        Args:
            character: The character being prepared.
            data: Prepared data so far (defaults merged with stored values);
                read for current values, never modified.

        Returns:
            ``(patch, overrides)``: the flat patch to apply and the same values
            expanded into a nested tree.
        """
        changes = self.collect(character)
        patch = fold_changes(self.interpreter, changes, data)
        logger.debug(f"Overlay for '{character.name}': {len(changes)} changes, {len(patch)} keys")
        return patch, expand_object(patch)
