"""
Level tuples and the level-resolution algorithm.

A character advances one level at a time. Each step is described by an
:class:`AdvancementLevels` tuple: the character's total level, the level
reached in the class that was advanced, and that class's identifier. Every
advancement maps such a tuple onto the single level number relevant to it.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ClassRestriction = Literal["original", "other"]


class AdvancementLevels(BaseModel):
    """``{character, class, identifier}`` tuple for one level step."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    character: int = 0
    class_: int = Field(default=0, alias="class")
    identifier: str | None = None

    @classmethod
    def baseline(cls) -> "AdvancementLevels":
        """The ``{0, 0}`` tuple that activates always-on advancements."""
        return cls(character=0, class_=0)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


def resolve_relevant_level(
    levels: AdvancementLevels,
    *,
    item_type: str,
    item_identifier: str | None = None,
    parent_class_identifier: str | None = None,
    class_identifier: str | None = None,
    class_restriction: ClassRestriction | None = None,
    original_class: str | None = None,
) -> int | None:
    """Select the level relevant to one advancement.

    Args:
        levels: The level step being evaluated.
        item_type: Type of the item owning the advancement.
        item_identifier: Identifier of the owning item.
        parent_class_identifier: Class identifier of a subclass item.
        class_identifier: Explicit class binding declared on the advancement.
        class_restriction: "original" or "other" to gate on whether the bound
            class is the character's original class.
        original_class: Identifier of the class taken at character level 1.

    Returns:
        ``0`` for the baseline step, ``None`` when the advancement does not
        apply to this step, otherwise the character or class level.
    """
    if levels.character == 0 or levels.class_ == 0:
        return 0

    if item_type == "class":
        identifier = item_identifier
    elif item_type == "subclass":
        identifier = parent_class_identifier
    elif class_identifier:
        identifier = class_identifier
    else:
        return levels.character

    if class_restriction and original_class is not None:
        is_original = identifier == original_class
        if (class_restriction == "original") != is_original:
            return None

    if identifier == levels.identifier:
        return levels.class_
    if not levels.identifier:
        return levels.character
    return None
