"""
Content catalog for granted item templates.

Advancements grant features, talents, spells and equipment by cloning item
content referenced by a stable string. The catalog resolves those references
and answers simple searches (e.g. every arcane spell of the 2nd circle). It
can be filled programmatically or loaded from local JSON/YAML files:

```yaml
name: My Content
items:
  - uuid: content.spell.magic-missile
    name: Magic Missile
    type: spell
    system:
      circle: 1
      source: [arcane]
```
"""

from __future__ import annotations

import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Callable, Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .utils import get_property, merge_objects, slugify

logger = logging.getLogger("advancement-engine.content")


class ContentError(Exception):
    """Error loading or parsing a content file."""


class ItemContent(BaseModel):
    """An item template that can be cloned onto a character."""

    uuid: str = Field(description="Stable reference used by advancement pools")
    name: str
    type: str = Field(description="Item type, e.g. 'feature', 'talent', 'spell', 'class'")
    identifier: str = ""
    class_identifier: str | None = Field(
        default=None, description="Parent class identifier for subclasses"
    )
    system: dict[str, Any] = Field(default_factory=dict)
    advancement: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _default_identifier(self) -> "ItemContent":
        if not self.identifier:
            self.identifier = slugify(self.name)
        return self

    def matches(self, filters: dict[str, Any]) -> bool:
        """Check this content against search filters.

        Each filter key is a top-level attribute or a dotted path inside
        ``system``. A filter value matches when it equals the target, when
        the target is a list containing it, when the filter is a list
        containing the target, or when it is a callable returning True.
        """
        for key, expected in filters.items():
            if key in ("name", "identifier", "class_identifier", "uuid"):
                actual = getattr(self, key)
            else:
                actual = get_property(self.system, key)
            if not _matches(actual, expected):
                return False
        return True

    def to_item_data(self, item_id: str, flags: dict[str, Any] | None = None) -> dict[str, Any]:
        """Data for a new embedded item cloned from this content."""
        return {
            "id": item_id,
            "name": self.name,
            "type": self.type,
            "identifier": self.identifier,
            "class_identifier": self.class_identifier,
            "system": deepcopy(self.system),
            "advancement": deepcopy(self.advancement),
            "flags": merge_objects({"source_id": self.uuid}, flags or {}),
        }


def _matches(actual: Any, expected: Any) -> bool:
    if callable(expected):
        return bool(expected(actual))
    if isinstance(expected, (list, tuple, set, frozenset)):
        if isinstance(actual, (list, tuple, set)):
            return bool(set(actual) & set(expected))
        return actual in expected
    if isinstance(actual, (list, tuple, set)):
        return expected in actual
    return actual == expected


class ContentCatalog:
    """In-memory content store implementing reference resolution and search."""

    SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}

    def __init__(self, items: Iterable[ItemContent | dict] = ()) -> None:
        self._items: dict[str, ItemContent] = {}
        for item in items:
            self.add(item)

    def add(self, item: ItemContent | dict) -> ItemContent:
        if not isinstance(item, ItemContent):
            item = ItemContent.model_validate(item)
        if item.uuid in self._items:
            logger.debug(f"Replacing content '{item.uuid}'")
        self._items[item.uuid] = item
        return item

    def get(self, reference: str) -> ItemContent | None:
        return self._items.get(reference)

    def __contains__(self, reference: str) -> bool:
        return reference in self._items

    def __len__(self) -> int:
        return len(self._items)

    # ------------------------------------------------------------------
    # Collaborator interface
    # ------------------------------------------------------------------

    async def resolve_by_reference(self, reference: str) -> ItemContent | None:
        item = self._items.get(reference)
        if item is None:
            logger.warning(f"Content reference '{reference}' could not be resolved")
        return item

    async def search(
        self,
        content_type: str,
        filters: dict[str, Any] | Callable[[ItemContent], bool] | None = None,
    ) -> list[ItemContent]:
        """Content of ``content_type`` matching ``filters``, sorted by name then reference."""
        results = []
        for item in self._items.values():
            if item.type != content_type:
                continue
            if callable(filters):
                if not filters(item):
                    continue
            elif filters and not item.matches(filters):
                continue
            results.append(item)
        return sorted(results, key=lambda i: (i.name, i.uuid))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_file(self, path: Path | str) -> int:
        """Load content from a JSON or YAML file.

        The file holds either a list of items or an object with an ``items``
        list. Invalid entries are logged and skipped.

        Returns:
            Number of items loaded.

        Raises:
            ContentError: If the file cannot be read or parsed.
        """
        path = Path(path)
        if not path.exists():
            raise ContentError(f"Content file not found: {path}")

        suffix = path.suffix.lower()
        if suffix not in self.SUPPORTED_EXTENSIONS:
            raise ContentError(
                f"Unsupported file format: {suffix}. "
                f"Supported: {', '.join(sorted(self.SUPPORTED_EXTENSIONS))}"
            )

        try:
            raw_content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ContentError(f"Failed to read file: {e}") from e

        try:
            if suffix == ".json":
                data = json.loads(raw_content)
            else:
                data = yaml.safe_load(raw_content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ContentError(f"Failed to parse {suffix} file: {e}") from e

        if isinstance(data, dict):
            entries = data.get("items", [])
        elif isinstance(data, list):
            entries = data
        else:
            raise ContentError("Content file must hold a list or an object with an 'items' list")

        loaded = 0
        for entry in entries:
            try:
                self.add(entry)
                loaded += 1
            except ValidationError as e:
                logger.warning(f"Invalid content entry in {path}: {e}")

        logger.info(f"Loaded {loaded} content items from {path}")
        return loaded

    def load_directory(self, directory: Path | str) -> int:
        """Load every supported file in ``directory`` (sorted by name)."""
        directory = Path(directory)
        if not directory.is_dir():
            raise ContentError(f"Content directory not found: {directory}")
        total = 0
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() in self.SUPPORTED_EXTENSIONS:
                total += self.load_file(path)
        return total
