"""
Default rules catalog.

The engine only needs the shape of the game's rules data: which abilities,
skills and tools exist, which sizes are valid, where each trait type lives on
a character, and how spellcasting circles progress with class level. A host
can pass its own :class:`RulesCatalog` to the ruleset.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# Ability abbreviation -> full key
ABILITY_NAMES = {
    "STR": "strength",
    "DEX": "dexterity",
    "CON": "constitution",
    "INT": "intelligence",
    "WIS": "wisdom",
    "CHA": "charisma",
}

DEFAULT_ABILITIES = tuple(ABILITY_NAMES.values())

DEFAULT_SKILLS = {
    "acrobatics": "dexterity",
    "animal-handling": "wisdom",
    "arcana": "intelligence",
    "athletics": "strength",
    "deception": "charisma",
    "history": "intelligence",
    "insight": "wisdom",
    "intimidation": "charisma",
    "investigation": "intelligence",
    "medicine": "wisdom",
    "nature": "intelligence",
    "perception": "wisdom",
    "performance": "charisma",
    "persuasion": "charisma",
    "religion": "intelligence",
    "sleight-of-hand": "dexterity",
    "stealth": "dexterity",
    "survival": "wisdom",
}

DEFAULT_TOOLS = (
    "alchemist", "brewer", "calligrapher", "carpenter", "cartographer", "cobbler",
    "cook", "glassblower", "jeweler", "leatherworker", "mason", "painter", "potter",
    "smith", "tinker", "weaver", "woodcarver", "disguise", "forgery", "herbalism",
    "navigator", "poisoner", "thieves",
)

DEFAULT_SIZES = ("tiny", "small", "medium", "large", "huge", "gargantuan")

DEFAULT_LANGUAGES = (
    "common", "dwarvish", "elvish", "giant", "gnomish", "goblin", "halfling", "orc",
    "abyssal", "celestial", "draconic", "infernal", "primordial", "sylvan", "undercommon",
)

DAMAGE_TYPES = (
    "acid", "bludgeoning", "cold", "fire", "force", "lightning", "necrotic",
    "piercing", "poison", "psychic", "radiant", "slashing", "thunder",
)

CONDITIONS = (
    "blinded", "charmed", "deafened", "exhaustion", "frightened", "grappled",
    "incapacitated", "invisible", "paralyzed", "petrified", "poisoned", "prone",
    "restrained", "stunned", "unconscious",
)

ARMOR_CATEGORIES = ("light", "medium", "heavy", "shield")
WEAPON_CATEGORIES = ("simple", "martial")

TALENT_CATEGORIES = ("martial", "magical", "technical")

MAX_SPELL_CIRCLE = 9

# Highest spell circle available at each spellcasting level (index = level)
SPELL_CIRCLE_TABLE = (0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6, 7, 7, 8, 8, 9, 9, 9, 9)

# Spellcasting level divisor for leveled progressions
SPELLCASTING_PROGRESSIONS = {"full": 1, "half": 2, "third": 3}

PACT_MAX_CIRCLE = 5


class TraitDefinition(BaseModel):
    """Where a trait type is stored on a character and how it is chosen."""

    key_path: str = Field(description="Dotted path with a '{key}' placeholder where relevant")
    choices: tuple[str, ...] = ()
    expertise: bool = Field(default=False, description="Can this trait be raised to expertise?")


class RulesCatalog(BaseModel):
    """Rules data consumed by the engine."""

    abilities: tuple[str, ...] = DEFAULT_ABILITIES
    skills: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SKILLS))
    tools: tuple[str, ...] = DEFAULT_TOOLS
    sizes: tuple[str, ...] = DEFAULT_SIZES
    talent_categories: tuple[str, ...] = TALENT_CATEGORIES
    traits: dict[str, TraitDefinition] = Field(default_factory=dict)

    def model_post_init(self, __context) -> None:
        if not self.traits:
            self.traits = default_traits(self)

    # ------------------------------------------------------------------
    # Traits
    # ------------------------------------------------------------------

    def trait_key_path(self, key: str) -> str | None:
        """Key path changed by a prefixed trait key such as ``skills:athletics``."""
        trait, _, value = key.partition(":")
        definition = self.traits.get(trait)
        if definition is None or not value:
            return None
        return definition.key_path.format(key=value)

    def trait_choices(self, key: str) -> list[str]:
        """Expand a trait key into concrete prefixed keys.

        ``skills:*`` expands into every skill; concrete keys return themselves.
        """
        trait, _, value = key.partition(":")
        definition = self.traits.get(trait)
        if definition is None:
            return []
        if value == "*":
            return [f"{trait}:{choice}" for choice in definition.choices]
        return [key]

    # ------------------------------------------------------------------
    # Spellcasting
    # ------------------------------------------------------------------

    @staticmethod
    def max_spell_circle(class_level: int, progression: str = "full", kind: str = "leveled") -> int:
        """Highest spell circle a class can cast at ``class_level``.

        Args:
            class_level: Levels in the spellcasting class.
            progression: "full", "half" or "third" for leveled casting.
            kind: "leveled" or "pact".
        """
        if class_level <= 0:
            return 0
        if kind == "pact":
            return min(PACT_MAX_CIRCLE, (class_level + 1) // 2)
        divisor = SPELLCASTING_PROGRESSIONS.get(progression, 1)
        spellcasting_level = min(class_level // divisor, len(SPELL_CIRCLE_TABLE) - 1)
        return SPELL_CIRCLE_TABLE[spellcasting_level]


def default_traits(rules: RulesCatalog) -> dict[str, TraitDefinition]:
    proficiency = "{prefix}.{{key}}.proficiency.multiplier"
    return {
        "saves": TraitDefinition(
            key_path="system.abilities.{key}.save.proficiency.multiplier",
            choices=rules.abilities,
        ),
        "skills": TraitDefinition(
            key_path=proficiency.format(prefix="system.proficiencies.skills"),
            choices=tuple(rules.skills),
            expertise=True,
        ),
        "tools": TraitDefinition(
            key_path=proficiency.format(prefix="system.proficiencies.tools"),
            choices=rules.tools,
            expertise=True,
        ),
        "armor": TraitDefinition(key_path="system.proficiencies.armor.value", choices=ARMOR_CATEGORIES),
        "weapons": TraitDefinition(key_path="system.proficiencies.weapons.value", choices=WEAPON_CATEGORIES),
        "languages": TraitDefinition(key_path="system.proficiencies.languages.value", choices=DEFAULT_LANGUAGES),
        "resistances": TraitDefinition(key_path="system.traits.resistances.value", choices=DAMAGE_TYPES),
        "immunities": TraitDefinition(key_path="system.traits.immunities.value", choices=DAMAGE_TYPES),
        "vulnerabilities": TraitDefinition(key_path="system.traits.vulnerabilities.value", choices=DAMAGE_TYPES),
        "condition-immunities": TraitDefinition(
            key_path="system.traits.condition_immunities.value", choices=CONDITIONS,
        ),
    }
