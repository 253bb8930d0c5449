"""
Schema field types describing the character's data.

The schema tells the delta interpreter what kind of value lives at a key
path, so that one change value can be cast and combined correctly: a number
is summed, a set is unioned, a proficiency multiplier is ranked by tier.
"""

from __future__ import annotations

from typing import Any, Iterable

from .utils import split_path


class DataField:
    """Base field. ``type_name`` is the key used to look up delta handlers."""

    type_name = "any"

    def __init__(self, initial: Any = None, label: str = "") -> None:
        self._initial = initial
        self.label = label

    @property
    def initial(self) -> Any:
        return self._initial() if callable(self._initial) else self._initial

    def child(self, key: str) -> "DataField | None":
        """Field for a nested key, or None for leaf fields."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(initial={self._initial!r})"


class AnyField(DataField):
    type_name = "any"


class NumberField(DataField):
    type_name = "number"

    def __init__(self, initial: float | int | None = 0, integer: bool = False, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)
        self.integer = integer


class StringField(DataField):
    type_name = "string"

    def __init__(self, initial: str = "", choices: Iterable[str] | None = None, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)
        self.choices = tuple(choices) if choices else None


class BooleanField(DataField):
    type_name = "boolean"

    def __init__(self, initial: bool = False, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)


class SetField(DataField):
    """Unordered collection of unique strings. Stored as a sorted list."""

    type_name = "set"

    def __init__(self, initial: Any = list, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)


class ArrayField(DataField):
    """Ordered collection that may repeat values."""

    type_name = "array"

    def __init__(self, element: DataField | None = None, initial: Any = list, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)
        self.element = element or AnyField()


class ProficiencyField(DataField):
    """Proficiency multiplier ranked by tier rather than raw magnitude."""

    type_name = "proficiency"
    TIERS = (0, 0.5, 1, 2)

    def __init__(self, initial: float = 0, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)


class SchemaField(DataField):
    """Fixed set of named sub-fields."""

    type_name = "object"

    def __init__(self, fields: dict[str, DataField], **kwargs: Any) -> None:
        super().__init__(None, **kwargs)
        self.fields = fields

    @property
    def initial(self) -> dict[str, Any]:
        return {name: field.initial for name, field in self.fields.items()}

    def child(self, key: str) -> DataField | None:
        return self.fields.get(key)


class MappingField(DataField):
    """Arbitrary keys sharing one element field (e.g. abilities, skills)."""

    type_name = "object"

    def __init__(
        self,
        element: DataField,
        initial_keys: Iterable[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(None, **kwargs)
        self.element = element
        self.initial_keys = tuple(initial_keys or ())

    @property
    def initial(self) -> dict[str, Any]:
        return {key: self.element.initial for key in self.initial_keys}

    def child(self, key: str) -> DataField | None:
        return self.element


class CharacterSchema:
    """Resolves dotted key paths on a character to their field definitions."""

    def __init__(self, root: SchemaField) -> None:
        self.root = root

    def get_field(self, path: str) -> DataField | None:
        """Field at ``path`` or None when the path is not part of the schema."""
        field: DataField | None = self.root
        for part in split_path(path):
            if field is None:
                return None
            field = field.child(part)
        return field

    def defaults(self) -> dict[str, Any]:
        """Fresh tree of initial values for every fixed path."""
        return self.root.initial


def proficiency_entry() -> SchemaField:
    return SchemaField({"proficiency": SchemaField({"multiplier": ProficiencyField()})})


def tagged_set() -> SchemaField:
    return SchemaField({"value": SetField(), "custom": ArrayField(StringField())})


def default_character_schema(
    abilities: Iterable[str],
    skills: Iterable[str] = (),
    tools: Iterable[str] = (),
) -> CharacterSchema:
    """Build the schema for a player character's ``system`` data.

    Args:
        abilities: Ability keys always present on a character.
        skills: Skill keys always present (others may still be added).
        tools: Tool keys always present.
    """
    ability = SchemaField({
        "value": NumberField(10, integer=True),
        "save": proficiency_entry(),
    })
    system = SchemaField({
        "abilities": MappingField(ability, initial_keys=abilities),
        "attributes": SchemaField({
            "hp": SchemaField({
                "value": NumberField(0, integer=True),
                "max": NumberField(0, integer=True),
                "temp": NumberField(0, integer=True),
                "bonuses": SchemaField({"level": NumberField(0)}),
            }),
            "hd": SchemaField({"denomination": NumberField(None, integer=True)}),
            "luck": SchemaField({"formula": StringField()}),
        }),
        "proficiencies": SchemaField({
            "armor": SchemaField({"value": SetField()}),
            "weapons": SchemaField({"value": SetField()}),
            "skills": MappingField(proficiency_entry(), initial_keys=skills),
            "tools": MappingField(proficiency_entry(), initial_keys=tools),
            "languages": tagged_set(),
        }),
        "traits": SchemaField({
            "size": StringField("medium"),
            "movement": SchemaField({
                "base": NumberField(30),
                "types": MappingField(NumberField(0)),
                "tags": SetField(),
            }),
            "senses": SchemaField({
                "types": MappingField(NumberField(0)),
                "tags": SetField(),
            }),
            "resistances": tagged_set(),
            "immunities": tagged_set(),
            "vulnerabilities": tagged_set(),
            "condition_immunities": tagged_set(),
        }),
        "scale": MappingField(MappingField(AnyField())),
        "spellcasting": SchemaField({
            "max_circle": NumberField(0, integer=True),
            "origins": MappingField(MappingField(NumberField(0, integer=True))),
        }),
    })
    return CharacterSchema(SchemaField({"system": system}))
