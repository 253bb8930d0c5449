"""Tests for the spellcasting advancement and spell circle progression."""

import pytest

from advancement_engine.advancement import AdvancementError
from advancement_engine.models import Item
from advancement_engine.rules import RulesCatalog
from advancement_engine.utils import get_property

CLERIC = {
    "uuid": "content.class.cleric",
    "name": "Cleric",
    "type": "class",
    "identifier": "cleric",
    "advancement": {
        "hp": {"type": "hitPoints", "configuration": {"denomination": 8}},
        "casting": {
            "type": "spellcasting",
            "configuration": {"progression": "full", "source": "divine", "learn_all": True},
        },
    },
}


def spell_names(character) -> list[str]:
    return sorted(i.name for i in character.items.values() if i.type == "spell")


async def level_cleric(engine, character, levels: int, choices: dict | None = None):
    choices = choices or {}
    for n in range(character.level + 1, levels + 1):
        await engine.level_up(
            character,
            "cleric",
            class_content="content.class.cleric",
            hit_points="avg" if n > 1 else None,
            choices=choices.get(n),
        )
    return character.classes["cleric"]


class TestSpellCircles:
    @pytest.mark.parametrize(
        "level, progression, kind, expected",
        [
            (0, "full", "leveled", 0),
            (1, "full", "leveled", 1),
            (5, "full", "leveled", 3),
            (20, "full", "leveled", 9),
            (1, "half", "leveled", 0),
            (2, "half", "leveled", 1),
            (5, "third", "leveled", 1),
            (3, "full", "pact", 2),
            (20, "full", "pact", 5),
        ],
    )
    def test_max_spell_circle(self, level, progression, kind, expected):
        assert RulesCatalog.max_spell_circle(level, progression, kind=kind) == expected

    @pytest.mark.parametrize(
        "configuration, expected",
        [
            ({"progression": "full"}, [1, 3, 5, 7, 9, 11, 13, 15, 17]),
            ({"progression": "half"}, [2, 6, 10, 14, 18]),
            ({"type": "pact"}, [1, 3, 5, 7, 9]),
        ],
    )
    def test_levels_where_circle_rises(self, ruleset, configuration, expected):
        item = Item.model_validate({
            "name": "Caster",
            "type": "class",
            "advancement": {"casting": {"type": "spellcasting", "configuration": configuration}},
        }).bind(ruleset)
        assert item.advancements.get("casting").levels() == expected


@pytest.mark.anyio
class TestDerivedCircles:
    async def test_max_circle_published(self, engine, character):
        await engine.level_up(character, "wizard", class_content="content.class.wizard")
        assert get_property(character.data, "system.spellcasting.origins.wizard.max_circle") == 1
        assert get_property(character.data, "system.spellcasting.max_circle") == 1

        for _ in range(2):
            await engine.level_up(character, "wizard", hit_points="avg")
        assert get_property(character.data, "system.spellcasting.origins.wizard.max_circle") == 2
        assert get_property(character.data, "system.spellcasting.max_circle") == 2

    async def test_multiclass_keeps_origins_apart(self, engine, character, content):
        content.add(CLERIC)
        await engine.level_up(character, "wizard", class_content="content.class.wizard")
        await engine.level_up(character, "wizard", hit_points="avg")
        await engine.level_up(character, "wizard", hit_points="avg")
        await engine.level_up(character, "cleric", class_content="content.class.cleric", hit_points="avg")

        assert get_property(character.data, "system.spellcasting.origins.wizard.max_circle") == 2
        assert get_property(character.data, "system.spellcasting.origins.cleric.max_circle") == 1
        assert get_property(character.data, "system.spellcasting.max_circle") == 2

    async def test_title(self, engine, character):
        result = await engine.level_up(character, "wizard", class_content="content.class.wizard")
        casting = character.classes["wizard"].advancements.get("casting")
        levels = character.progression_levels()[0]
        assert result.class_level == 1
        assert casting.title_for_level(levels) == "Spellcasting: circle 1"


@pytest.mark.anyio
class TestLearnAll:
    @pytest.fixture(autouse=True)
    def cleric_content(self, content):
        content.add(CLERIC)

    async def test_learns_every_spell_of_new_circle(self, engine, character):
        cleric = await level_cleric(engine, character, 1)
        assert spell_names(character) == ["Bless", "Cure Wounds"]

        learned = cleric.advancements.get("casting").value.spells[1]
        assert [spell.kind for spell in learned] == ["normal", "normal"]
        bless = character.items[learned[0].document]
        assert get_property(bless.flags, "relationship.origin.identifier") == "cleric"

    async def test_nothing_new_without_a_new_circle(self, engine, character):
        cleric = await level_cleric(engine, character, 2)
        assert spell_names(character) == ["Bless", "Cure Wounds"]
        assert 2 not in cleric.advancements.get("casting").value.spells

    async def test_next_circle(self, engine, character):
        await level_cleric(engine, character, 3)
        assert spell_names(character) == ["Aid", "Bless", "Cure Wounds"]

    async def test_apply_is_idempotent(self, engine, character):
        cleric = await level_cleric(engine, character, 1)
        await cleric.advancements.get("casting").apply(character.progression_levels()[0])
        assert spell_names(character) == ["Bless", "Cure Wounds"]

    async def test_level_down(self, engine, character):
        await level_cleric(engine, character, 3)
        await engine.level_down(character)
        assert spell_names(character) == ["Bless", "Cure Wounds"]

    async def test_replace_earlier_spell(self, engine, character):
        cleric = await level_cleric(engine, character, 2)
        bless = next(i for i in character.items.values() if i.name == "Bless")
        await level_cleric(engine, character, 3, {3: {"casting": {"replaces": bless.id}}})
        assert spell_names(character) == ["Aid", "Cure Wounds"]

        replaced = cleric.advancements.get("casting").value.replaced[3]
        assert replaced.original == bless.id

        await engine.level_down(character)
        assert spell_names(character) == ["Bless", "Cure Wounds"]
        assert bless.id in character.items

    async def test_unknown_replacement_learns_nothing(self, engine, character):
        cleric = await level_cleric(engine, character, 2)
        with pytest.raises(AdvancementError, match="was not learned"):
            await level_cleric(engine, character, 3, {3: {"casting": {"replaces": "bogus"}}})
        assert spell_names(character) == ["Bless", "Cure Wounds"]
        assert 3 not in cleric.advancements.get("casting").value.spells

    async def test_extra_spells(self, engine, character):
        cleric = await level_cleric(engine, character, 1, {1: {"casting": {"spells": ["content.spell.light"]}}})
        assert spell_names(character) == ["Bless", "Cure Wounds", "Light"]
        kinds = {s.uuid: s.kind for s in cleric.advancements.get("casting").value.spells[1]}
        assert kinds["content.spell.light"] == "special"
