"""
Ruleset: the bundle of collaborators passed to every engine component.

There are no process-wide registries. A ruleset carries the configuration,
the advancement type registry, the delta handlers, the character schema, the
rules catalog and the content source; characters and items reach all of them
through it.
"""

import logging

from .advancement.registry import AdvancementTypeRegistry
from .config import EngineConfig
from .content import ContentCatalog
from .deltas import DeltaRegistry
from .fields import CharacterSchema, default_character_schema
from .rules import RulesCatalog

logger = logging.getLogger("advancement-engine")


class Ruleset:
    """Dependency-injection bundle for one game system.

    Args:
        config: Engine configuration; defaults to :class:`EngineConfig`.
        rules: Rules catalog; defaults to the built-in catalog.
        schema: Character schema; built from ``rules`` when omitted.
        deltas: Field-type delta handlers.
        advancement_types: Registered advancement classes.
        content: Anything implementing ``resolve_by_reference`` and ``search``.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        rules: RulesCatalog | None = None,
        schema: CharacterSchema | None = None,
        deltas: DeltaRegistry | None = None,
        advancement_types: AdvancementTypeRegistry | None = None,
        content=None,
    ) -> None:
        self.config = config or EngineConfig()
        self.rules = rules or RulesCatalog()
        self.schema = schema or default_character_schema(
            self.rules.abilities, skills=self.rules.skills, tools=()
        )
        self.deltas = deltas or DeltaRegistry.default()
        self.advancement_types = advancement_types or AdvancementTypeRegistry.default()
        self.content = content if content is not None else ContentCatalog()

    @classmethod
    def default(cls, config: EngineConfig | None = None) -> "Ruleset":
        """Ruleset with the built-in rules, loading content from ``config.content_dir``."""
        config = config or EngineConfig()
        content = ContentCatalog()
        if config.content_dir is not None:
            loaded = content.load_directory(config.content_dir)
            logger.info(f"Ruleset loaded {loaded} content items from {config.content_dir}")
        return cls(config, content=content)
