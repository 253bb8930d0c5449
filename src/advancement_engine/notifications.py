"""
Keyed warning sink filled during data preparation.

Advancements write non-blocking warnings here (e.g. a choice that still has
to be made at some level). The collection is cleared at the start of each
recompute; consumers only read it.
"""

from __future__ import annotations

from typing import Iterator, Literal

from pydantic import BaseModel


class Notification(BaseModel):
    """A single warning shown for a character."""

    category: str
    section: str = "progression"
    level: Literal["info", "warn", "error"] = "warn"
    message: str


class NotificationCollection:
    """Notifications keyed by a stable string so repeated writes replace each other."""

    def __init__(self) -> None:
        self._entries: dict[str, Notification] = {}

    def set(self, key: str, notification: Notification | dict) -> None:
        if not isinstance(notification, Notification):
            notification = Notification.model_validate(notification)
        self._entries[key] = notification

    def get(self, key: str) -> Notification | None:
        return self._entries.get(key)

    def __getitem__(self, key: str) -> Notification:
        return self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def for_category(self, category: str) -> list[Notification]:
        return [n for n in self._entries.values() if n.category == category]

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[tuple[str, Notification]]:
        return iter(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)
