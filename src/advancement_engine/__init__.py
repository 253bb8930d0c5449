"""
Advancement Engine - level-based character progression for role-playing character sheets.
"""

from .advancement import (
    Advancement,
    AdvancementCollection,
    AdvancementConfigurationError,
    AdvancementData,
    AdvancementError,
    AdvancementLevels,
    AdvancementTypeRegistry,
)
from .changes import Change, ChangeMode
from .config import EngineConfig, configure_logging
from .content import ContentCatalog, ContentError, ItemContent
from .deltas import DeltaCastError, DeltaError, DeltaInterpreter, DeltaRegistry
from .effects import ActiveEffect, EffectsEngine
from .level_up_engine import LevelUpEngine, LevelUpError, LevelUpResult
from .models import Character, CharacterError, Item
from .notifications import Notification, NotificationCollection
from .orchestrator import AdvancementManager, AdvancementQueue
from .overlay import ChangeOverlayEngine
from .rules import RulesCatalog
from .ruleset import Ruleset
from .storage import InMemoryCharacterStore, StorageError
from .utils import DELETE

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("advancement-engine")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable

__all__ = [
    "ActiveEffect",
    "Advancement",
    "AdvancementCollection",
    "AdvancementConfigurationError",
    "AdvancementData",
    "AdvancementError",
    "AdvancementLevels",
    "AdvancementManager",
    "AdvancementQueue",
    "AdvancementTypeRegistry",
    "Change",
    "ChangeMode",
    "ChangeOverlayEngine",
    "Character",
    "CharacterError",
    "ContentCatalog",
    "ContentError",
    "DELETE",
    "DeltaCastError",
    "DeltaError",
    "DeltaInterpreter",
    "DeltaRegistry",
    "EffectsEngine",
    "EngineConfig",
    "InMemoryCharacterStore",
    "Item",
    "ItemContent",
    "LevelUpEngine",
    "LevelUpError",
    "LevelUpResult",
    "Notification",
    "NotificationCollection",
    "RulesCatalog",
    "Ruleset",
    "StorageError",
    "configure_logging",
]
