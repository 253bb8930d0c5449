"""
Contracts for the collaborators the engine depends on.

Persistence, content lookup and warning display live outside the engine.
Anything implementing these protocols can be plugged into a
:class:`~advancement_engine.ruleset.Ruleset` or a character store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import ItemContent
    from .models import Character, Item
    from .notifications import Notification


@runtime_checkable
class CharacterStore(Protocol):
    """Document-update API. Every call is atomic and recomputes the character afterwards."""

    async def update_character(self, character_id: str, patch: dict[str, Any]) -> "Character":
        ...

    async def create_embedded_items(self, parent_id: str, data: list[dict[str, Any]]) -> list["Item"]:
        ...

    async def update_embedded_items(self, parent_id: str, updates: list[dict[str, Any]]) -> list["Item"]:
        ...

    async def delete_embedded_items(self, parent_id: str, ids: list[str]) -> None:
        ...


@runtime_checkable
class ContentResolver(Protocol):
    async def resolve_by_reference(self, reference: str) -> "ItemContent | None":
        ...


@runtime_checkable
class ContentSearch(Protocol):
    async def search(self, content_type: str, filters: dict[str, Any] | None = None) -> list["ItemContent"]:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    def set(self, key: str, notification: "Notification | dict") -> None:
        ...
