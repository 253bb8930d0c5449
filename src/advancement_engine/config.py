"""
Engine configuration.

Values come from keyword arguments or from the environment (optionally via a
``.env`` file). The library never configures logging on import; entry points
call :func:`configure_logging`.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger("advancement-engine")


class EngineConfig(BaseModel):
    """Configuration for the advancement engine."""

    max_level: int = Field(
        default=20,
        ge=1,
        le=30,
        description="Highest character level a character can reach",
    )
    subclass_level: int = Field(
        default=3,
        ge=1,
        description="Minimum class level for advancements on subclass items",
    )
    hit_points_ability: str = Field(
        default="constitution",
        description="Ability whose modifier is added to hit points every level",
    )
    strict_validation: bool = Field(
        default=True,
        description="Raise on invalid choices instead of silently skipping them",
    )
    content_dir: Path | None = Field(
        default=None,
        description="Directory of JSON/YAML content files loaded into the catalog",
    )
    log_level: str = Field(default="INFO", description="Root log level for entry points")

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "EngineConfig":
        """Build a config from ``ADVANCEMENT_*`` environment variables.

        Args:
            env_file: Optional explicit ``.env`` path. When omitted the
                standard dotenv search is used.
        """
        if not load_dotenv(env_file):
            logger.debug("No .env file loaded, using process environment only")

        data: dict = {}
        if max_level := os.getenv("ADVANCEMENT_MAX_LEVEL"):
            data["max_level"] = int(max_level)
        if content_dir := os.getenv("ADVANCEMENT_CONTENT_DIR"):
            data["content_dir"] = Path(content_dir).resolve()
        if log_level := os.getenv("ADVANCEMENT_LOG_LEVEL"):
            data["log_level"] = log_level.upper()
        if strict := os.getenv("ADVANCEMENT_STRICT"):
            data["strict_validation"] = strict.strip().lower() not in ("0", "false", "no")
        return cls(**data)


def configure_logging(config: EngineConfig) -> None:
    """Set up root logging for an application using the engine."""
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
    logger.debug(f"Logging configured at {config.log_level}")
