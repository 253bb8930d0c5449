"""
The change primitive shared by advancements and active effects.

A change is a single instruction ``{key, mode, value, priority}`` describing
how one field of a character is mutated during data preparation.
"""

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ChangeMode(IntEnum):
    """How a change combines with the current value.

    The numeric order doubles as the default priority scheme: a change's
    priority is ``mode * 10`` unless set explicitly, so additions fold before
    overrides, which fold before upgrades and downgrades.
    """

    ADD = 0
    MULTIPLY = 1
    OVERRIDE = 2
    UPGRADE = 3
    DOWNGRADE = 4


class Change(BaseModel):
    """A transient delta instruction, never persisted."""

    key: str = Field(description="Dotted path of the target field, e.g. 'system.abilities.strength.value'")
    mode: ChangeMode = ChangeMode.ADD
    value: Any = None
    priority: int | None = None
    advancement: str | None = Field(
        default=None,
        description="Relative ID ('itemId.advancementId') of the advancement that produced this change",
    )

    @field_validator("mode", mode="before")
    @classmethod
    def _mode_from_name(cls, value: Any) -> Any:
        """Allow modes to be written by name in content files."""
        if isinstance(value, str):
            if value.strip().isdigit():
                return int(value)
            try:
                return ChangeMode[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown change mode: '{value}'") from None
        return value

    @property
    def effective_priority(self) -> int:
        if self.priority is not None:
            return self.priority
        return int(self.mode) * 10

    def tagged(self, source: str) -> "Change":
        """Copy of this change attributed to ``source`` with its priority resolved."""
        return self.model_copy(update={"advancement": source, "priority": self.effective_priority})


def coerce_changes(raw: list[Any] | None) -> list[Change]:
    """Accept ``Change`` instances or plain ``{key, mode, value}`` dicts."""
    if not raw:
        return []
    return [c if isinstance(c, Change) else Change.model_validate(c) for c in raw]
