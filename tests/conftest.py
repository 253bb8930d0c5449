"""
Pytest configuration and fixtures for advancement-engine tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path to allow importing advancement_engine
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from advancement_engine.config import EngineConfig  # noqa: E402
from advancement_engine.content import ContentCatalog  # noqa: E402
from advancement_engine.level_up_engine import LevelUpEngine  # noqa: E402
from advancement_engine.orchestrator import AdvancementManager  # noqa: E402
from advancement_engine.ruleset import Ruleset  # noqa: E402
from advancement_engine.storage import InMemoryCharacterStore  # noqa: E402


# Configure anyio to only use asyncio (not trio)
@pytest.fixture
def anyio_backend():
    return "asyncio"


# ─── Content ───────────────────────────────────────────────────────────


FIGHTER = {
    "uuid": "content.class.fighter",
    "name": "Fighter",
    "type": "class",
    "identifier": "fighter",
    "advancement": {
        "hp": {"type": "hitPoints", "configuration": {"denomination": 10}},
        "key": {
            "type": "keyAbility",
            "configuration": {"options": ["strength"], "secondary": "constitution"},
        },
        "features": {
            "type": "grantFeatures",
            "level": {"value": 1},
            "configuration": {"pool": ["content.feature.second-wind"]},
        },
        "maneuvers": {
            "type": "chooseFeatures",
            "title": "Maneuvers",
            "configuration": {
                "choices": {"2": 1, "3": {"count": 1, "replacement": True}},
                "allow_drops": False,
                "pool": ["content.feature.riposte", "content.feature.parry", "content.feature.trip"],
            },
        },
        "die": {
            "type": "scaleValue",
            "title": "Superiority Die",
            "configuration": {"type": "dice", "scale": {"1": "1d6", "5": "2d6", "11": "3d6"}},
        },
        "improvement": {
            "type": "improvement",
            "level": {"value": 4},
            "configuration": {"talent_list": "martial"},
        },
    },
}

CHAMPION = {
    "uuid": "content.subclass.champion",
    "name": "Champion",
    "type": "subclass",
    "identifier": "champion",
    "class_identifier": "fighter",
    "advancement": {
        "critical": {
            "type": "grantFeatures",
            "configuration": {"pool": ["content.feature.improved-critical"]},
        },
    },
}

WIZARD = {
    "uuid": "content.class.wizard",
    "name": "Wizard",
    "type": "class",
    "identifier": "wizard",
    "advancement": {
        "hp": {"type": "hitPoints", "configuration": {"denomination": 6}},
        "key": {"type": "keyAbility", "configuration": {"options": ["intelligence"], "secondary": "wisdom"}},
        "casting": {"type": "spellcasting", "configuration": {"progression": "full", "source": "arcane"}},
        "cantrips": {
            "type": "spellcastingValue",
            "identifier": "cantrips",
            "configuration": {"scale": {"1": 3, "4": 4, "10": 5}},
        },
        "spells": {
            "type": "chooseSpells",
            "title": "Spellbook",
            "configuration": {
                "choices": {"1": 2, "2": 1},
                "spell": {"ability": ["intelligence"], "origin": "wizard", "mode": "standard"},
                "restriction": {"source": "arcane"},
            },
        },
    },
}

ELF = {
    "uuid": "content.lineage.elf",
    "name": "Elf",
    "type": "lineage",
    "identifier": "elf",
    "advancement": {
        "size": {"type": "size", "configuration": {"options": ["medium"]}},
        "senses": {
            "type": "trait",
            "configuration": {
                "grants": ["languages:elvish"],
                "choices": [{"count": 1, "pool": ["skills:perception", "skills:insight"]}],
            },
        },
        "speed": {
            "type": "property",
            "configuration": {"changes": [{"key": "system.traits.movement.base", "mode": "ADD", "value": 5}]},
        },
    },
}

FEATURES = [
    {"uuid": "content.feature.second-wind", "name": "Second Wind", "type": "feature"},
    {"uuid": "content.feature.riposte", "name": "Riposte", "type": "feature"},
    {"uuid": "content.feature.parry", "name": "Parry", "type": "feature"},
    {"uuid": "content.feature.trip", "name": "Trip Attack", "type": "feature"},
    {"uuid": "content.feature.improved-critical", "name": "Improved Critical", "type": "feature"},
    {
        "uuid": "content.talent.tough",
        "name": "Tough",
        "type": "talent",
        "system": {"category": "martial"},
    },
    {
        "uuid": "content.talent.ritualist",
        "name": "Ritualist",
        "type": "talent",
        "system": {"category": "magical"},
    },
]

SPELLS = [
    {"uuid": "content.spell.light", "name": "Light", "type": "spell", "system": {"circle": 0, "source": ["arcane", "divine"]}},
    {"uuid": "content.spell.magic-missile", "name": "Magic Missile", "type": "spell", "system": {"circle": 1, "source": ["arcane"]}},
    {"uuid": "content.spell.shield", "name": "Shield", "type": "spell", "system": {"circle": 1, "source": ["arcane"]}},
    {"uuid": "content.spell.alarm", "name": "Alarm", "type": "spell", "system": {"circle": 1, "source": ["arcane"], "tags": ["ritual"]}},
    {"uuid": "content.spell.bless", "name": "Bless", "type": "spell", "system": {"circle": 1, "source": ["divine"]}},
    {"uuid": "content.spell.cure-wounds", "name": "Cure Wounds", "type": "spell", "system": {"circle": 1, "source": ["divine"]}},
    {"uuid": "content.spell.aid", "name": "Aid", "type": "spell", "system": {"circle": {"base": 2}, "source": ["divine"]}},
    {"uuid": "content.spell.fireball", "name": "Fireball", "type": "spell", "system": {"circle": 3, "source": ["arcane"]}},
]

EQUIPMENT = [
    {"uuid": "content.weapon.longsword", "name": "Longsword", "type": "weapon", "system": {"category": "martial"}},
    {"uuid": "content.weapon.handaxe", "name": "Handaxe", "type": "weapon", "system": {"category": "simple"}},
    {"uuid": "content.armor.shield", "name": "Shield", "type": "armor", "system": {"category": "shield"}},
    {"uuid": "content.item.rope", "name": "Rope", "type": "gear"},
    {"uuid": "content.item.torch", "name": "Torch", "type": "gear"},
    {
        "uuid": "content.item.pack",
        "name": "Explorer's Pack",
        "type": "container",
        "system": {"contents": ["content.item.rope", {"uuid": "content.item.torch", "count": 10}]},
    },
]


@pytest.fixture
def content():
    return ContentCatalog([FIGHTER, CHAMPION, WIZARD, ELF, *FEATURES, *SPELLS, *EQUIPMENT])


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def ruleset(config, content):
    return Ruleset(config, content=content)


@pytest.fixture
def store(ruleset):
    return InMemoryCharacterStore(ruleset)


@pytest.fixture
def manager(ruleset):
    return AdvancementManager(ruleset)


@pytest.fixture
def engine(manager):
    return LevelUpEngine(manager)


@pytest.fixture
def character(store):
    """A level 0 character with Constitution 14."""
    return store.add({
        "name": "Aria",
        "system": {"abilities": {"constitution": {"value": 14}, "strength": {"value": 15}}},
    })
