"""Advancement types keyed by their ``type`` string."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import Advancement, AdvancementConfigurationError, AdvancementData
from .equipment import EquipmentAdvancement
from .features import ChooseFeaturesAdvancement, GrantFeaturesAdvancement
from .hit_points import HitPointsAdvancement
from .improvement import ExpandedTalentListAdvancement, ImprovementAdvancement
from .key_ability import KeyAbilityAdvancement
from .property import PropertyAdvancement
from .scale_value import ScaleValueAdvancement, SpellcastingValueAdvancement
from .size import SizeAdvancement
from .spellcasting import SpellcastingAdvancement
from .spells import ChooseSpellsAdvancement, GrantSpellsAdvancement
from .trait import TraitAdvancement

if TYPE_CHECKING:
    from ..models import Item

logger = logging.getLogger("advancement-engine.advancement")

DEFAULT_TYPES: tuple[type[Advancement], ...] = (
    HitPointsAdvancement,
    ScaleValueAdvancement,
    SpellcastingValueAdvancement,
    KeyAbilityAdvancement,
    ImprovementAdvancement,
    ExpandedTalentListAdvancement,
    GrantFeaturesAdvancement,
    ChooseFeaturesAdvancement,
    GrantSpellsAdvancement,
    ChooseSpellsAdvancement,
    SpellcastingAdvancement,
    EquipmentAdvancement,
    SizeAdvancement,
    TraitAdvancement,
    PropertyAdvancement,
)


class AdvancementTypeRegistry:
    """Maps advancement type strings to their classes.

    Each :class:`~advancement_engine.ruleset.Ruleset` owns one registry, so
    hosts can add or replace types without touching global state.
    """

    def __init__(self) -> None:
        self._types: dict[str, type[Advancement]] = {}

    def register(self, cls: type[Advancement]) -> None:
        if not cls.type:
            raise ValueError(f"{cls.__name__} does not declare an advancement type")
        if cls.type in self._types:
            logger.debug(f"Replacing advancement type '{cls.type}' with {cls.__name__}")
        self._types[cls.type] = cls

    def get(self, type_name: str) -> type[Advancement] | None:
        return self._types.get(type_name)

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._types

    def __iter__(self):
        return iter(self._types.values())

    def types(self) -> list[str]:
        return sorted(self._types)

    def validate_for_item(self, type_name: str, item: "Item") -> type[Advancement]:
        """Check that an advancement of ``type_name`` may be added to ``item``.

        Raises:
            AdvancementConfigurationError: If the type is unknown, not valid for
                the item's type, or a singleton already present on the item.
        """
        cls = self.get(type_name)
        if cls is None:
            raise AdvancementConfigurationError(f"Unknown advancement type '{type_name}'")
        if cls.valid_item_types and item.type not in cls.valid_item_types:
            raise AdvancementConfigurationError(
                f"{cls.default_title} advancements cannot be added to {item.type} items"
            )
        if not cls.available_for_item(item):
            raise AdvancementConfigurationError(
                f"'{item.name}' already has a {cls.default_title} advancement"
            )
        return cls

    def create(self, data: AdvancementData | dict, item: "Item") -> Advancement:
        """Instantiate the advancement described by ``data`` for ``item``."""
        if not isinstance(data, AdvancementData):
            data = AdvancementData.model_validate(data)
        cls = self.get(data.type)
        if cls is None:
            raise AdvancementConfigurationError(f"Unknown advancement type '{data.type}'")
        return cls(data, item)

    @classmethod
    def default(cls) -> "AdvancementTypeRegistry":
        registry = cls()
        for advancement_type in DEFAULT_TYPES:
            registry.register(advancement_type)
        return registry
