"""
Reference character store.

Implements the document-update API the engine persists through. Every call is
applied as a whole and the character is recomputed before the call returns,
so the next queued job always sees prepared data. Characters can optionally
be autosaved as JSON files.
"""

import json
import logging
from pathlib import Path
from typing import Any

from .models import Character, Item
from .ruleset import Ruleset

logger = logging.getLogger("advancement-engine.storage")


class StorageError(Exception):
    """Raised when a character cannot be found, read or written."""


class InMemoryCharacterStore:
    """Holds characters in memory, optionally mirrored to ``data_dir``.

    Args:
        ruleset: Bound to every character added to the store.
        data_dir: When set, each character is written to
            ``<data_dir>/characters/<id>.json`` after every update.
    """

    def __init__(self, ruleset: Ruleset, data_dir: str | Path | None = None) -> None:
        self.ruleset = ruleset
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self._characters: dict[str, Character] = {}
        if self.data_dir is not None:
            (self.data_dir / "characters").mkdir(parents=True, exist_ok=True)
            logger.debug(f"Character store writing to {self.data_dir.resolve()}")

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def add(self, character: Character | dict[str, Any]) -> Character:
        """Register a character, bind it to this store and prepare it."""
        if not isinstance(character, Character):
            character = Character.model_validate(character)
        self._characters[character.id] = character
        character.bind(self.ruleset, self)
        self._save(character)
        logger.info(f"Added character '{character.name}' ({character.id})")
        return character

    def get(self, character_id: str) -> Character:
        character = self._characters.get(character_id)
        if character is None:
            raise StorageError(f"Character '{character_id}' not found")
        return character

    def remove(self, character_id: str) -> None:
        self.get(character_id)
        del self._characters[character_id]
        if self.data_dir is not None:
            self._character_file(character_id).unlink(missing_ok=True)

    def list_characters(self) -> list[Character]:
        return list(self._characters.values())

    def __contains__(self, character_id: str) -> bool:
        return character_id in self._characters

    # ------------------------------------------------------------------
    # Document-update API
    # ------------------------------------------------------------------

    async def update_character(self, character_id: str, patch: dict[str, Any]) -> Character:
        character = self.get(character_id)
        character.apply_update(patch)
        return self._commit(character)

    async def create_embedded_items(self, parent_id: str, data: list[dict[str, Any]]) -> list[Item]:
        character = self.get(parent_id)
        created = character.add_items(data)
        logger.debug(f"Created {len(created)} items on '{character.name}'")
        self._commit(character)
        return created

    async def update_embedded_items(self, parent_id: str, updates: list[dict[str, Any]]) -> list[Item]:
        character = self.get(parent_id)
        updated = character.update_items(updates)
        self._commit(character)
        return updated

    async def delete_embedded_items(self, parent_id: str, ids: list[str]) -> None:
        character = self.get(parent_id)
        removed = character.remove_items(ids)
        logger.debug(f"Deleted {len(removed)} items from '{character.name}'")
        self._commit(character)

    def _commit(self, character: Character) -> Character:
        character.prepare_data()
        self._save(character)
        return character

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _character_file(self, character_id: str) -> Path:
        return self.data_dir / "characters" / f"{character_id}.json"

    def _save(self, character: Character) -> None:
        if self.data_dir is None:
            return
        path = self._character_file(character.id)
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(character.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def load(self, character_id: str) -> Character:
        """Read a saved character from ``data_dir`` and add it to the store."""
        if self.data_dir is None:
            raise StorageError("Store has no data directory to load from")
        path = self._character_file(character_id)
        if not path.exists():
            raise StorageError(f"No saved character at {path}")
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        return self.add(data)

    def load_all(self) -> list[Character]:
        if self.data_dir is None:
            return []
        return [self.load(path.stem) for path in sorted((self.data_dir / "characters").glob("*.json"))]
