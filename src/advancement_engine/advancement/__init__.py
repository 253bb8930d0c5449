"""
Advancement types for advancement-engine.

Provides the abstract advancement, the level-resolution algorithm, the
per-item collection and every built-in advancement variant.
"""

from .base import (
    Advancement,
    AdvancementConfigurationError,
    AdvancementData,
    AdvancementError,
    AdvancementLevel,
    GrantedItem,
)
from .collection import AdvancementCollection
from .equipment import EquipmentAdvancement
from .features import ChooseFeaturesAdvancement, GrantFeaturesAdvancement
from .hit_points import HitPointsAdvancement
from .improvement import ExpandedTalentListAdvancement, ImprovementAdvancement
from .key_ability import KeyAbilityAdvancement
from .levels import AdvancementLevels, resolve_relevant_level
from .property import PropertyAdvancement
from .registry import DEFAULT_TYPES, AdvancementTypeRegistry
from .scale_value import ScaleValueAdvancement, SpellcastingValueAdvancement
from .size import SizeAdvancement
from .spellcasting import SpellcastingAdvancement
from .spells import ChooseSpellsAdvancement, GrantSpellsAdvancement
from .trait import TraitAdvancement

__all__ = [
    "Advancement",
    "AdvancementCollection",
    "AdvancementConfigurationError",
    "AdvancementData",
    "AdvancementError",
    "AdvancementLevel",
    "AdvancementLevels",
    "AdvancementTypeRegistry",
    "ChooseFeaturesAdvancement",
    "ChooseSpellsAdvancement",
    "DEFAULT_TYPES",
    "EquipmentAdvancement",
    "ExpandedTalentListAdvancement",
    "GrantFeaturesAdvancement",
    "GrantSpellsAdvancement",
    "GrantedItem",
    "HitPointsAdvancement",
    "ImprovementAdvancement",
    "KeyAbilityAdvancement",
    "PropertyAdvancement",
    "ScaleValueAdvancement",
    "SizeAdvancement",
    "SpellcastingAdvancement",
    "SpellcastingValueAdvancement",
    "TraitAdvancement",
    "resolve_relevant_level",
]
