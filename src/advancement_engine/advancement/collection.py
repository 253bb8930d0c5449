"""Indexed view over an item's advancements."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator

from .base import Advancement
from .levels import AdvancementLevels

if TYPE_CHECKING:
    from ..models import Item

logger = logging.getLogger("advancement-engine.advancement")


class AdvancementCollection:
    """Advancements of one item keyed by ID, with type and level indexes.

    Built from the item's stored advancement data; unknown types are logged
    and left out. Rebuild the collection whenever that data changes.
    """

    def __init__(self, item: "Item") -> None:
        self.item = item
        self._by_id: dict[str, Advancement] = {}
        self._by_type: dict[str, list[Advancement]] = {}
        self._by_level: dict[int, list[Advancement]] = {}

        registry = item.ruleset.advancement_types
        for advancement_id, data in item.advancement.items():
            cls = registry.get(data.type)
            if cls is None:
                logger.warning(f"Item '{item.name}' has unknown advancement type '{data.type}'")
                continue
            if data.id != advancement_id:
                data = data.model_copy(update={"id": advancement_id})
            advancement = cls(data, item)
            self._by_id[advancement_id] = advancement
            self._by_type.setdefault(cls.type, []).append(advancement)
            for level in advancement.levels():
                self._by_level.setdefault(level, []).append(advancement)

        for level, bucket in self._by_level.items():
            levels = AdvancementLevels(character=level, class_=level)
            bucket.sort(key=lambda a: a.sorting_value_for_level(levels))

    def get(self, advancement_id: str) -> Advancement | None:
        return self._by_id.get(advancement_id)

    def by_type(self, type_name: str) -> list[Advancement]:
        return list(self._by_type.get(type_name, []))

    def by_level(self, level: int) -> list[Advancement]:
        return list(self._by_level.get(level, []))

    def __iter__(self) -> Iterator[Advancement]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, advancement_id: str) -> bool:
        return advancement_id in self._by_id
