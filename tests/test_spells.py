"""Tests for grantSpells and chooseSpells advancements."""

import pytest

from advancement_engine.advancement import AdvancementError, AdvancementLevels
from advancement_engine.utils import get_property

pytestmark = pytest.mark.anyio


async def make_wizard(engine, character, spells: list[str] | None = None):
    await engine.level_up(
        character,
        "wizard",
        class_content="content.class.wizard",
        choices={"spells": spells} if spells else None,
    )
    return character.classes["wizard"]


def spells_named(character, name: str):
    return [i for i in character.items.values() if i.type == "spell" and i.name == name]


def wizard_step() -> AdvancementLevels:
    return AdvancementLevels(character=1, class_=1, identifier="wizard")


class TestChooseSpells:
    async def test_choose(self, engine, character):
        await make_wizard(engine, character, ["content.spell.magic-missile", "content.spell.shield"])
        [missile] = spells_named(character, "Magic Missile")
        assert spells_named(character, "Shield")
        assert get_property(missile.flags, "relationship.mode") == "standard"
        assert get_property(missile.flags, "relationship.origin.identifier") == "wizard"
        assert get_property(missile.flags, "relationship.origin.ability") == "intelligence"

        advancement = character.classes["wizard"].advancements.get("spells")
        assert advancement.spell_ability == "intelligence"
        assert advancement.configured_for_level(wizard_step())

    async def test_single_ability_is_implied(self, engine, character):
        wizard = await make_wizard(engine, character)
        advancement = wizard.advancements.get("spells")
        assert advancement.value.ability is None
        assert advancement.spell_ability == "intelligence"
        messages = [n.message for n in character.notifications.for_category("level-1")]
        assert "Spellbook: 2 choices remaining" in messages

    @pytest.mark.parametrize(
        "uuid, message",
        [
            ("content.spell.fireball", "above the maximum circle 1"),
            ("content.spell.light", "is a cantrip"),
            ("content.spell.alarm", "is a ritual"),
            ("content.spell.bless", "not a arcane spell"),
            ("content.feature.trip", "cannot be granted"),
        ],
    )
    async def test_restrictions(self, engine, manager, character, uuid, message):
        wizard = await make_wizard(engine, character)
        with pytest.raises(AdvancementError, match=message):
            await manager.apply(character, f"{wizard.id}.spells", wizard_step(), [uuid])

    async def test_invalid_ability(self, engine, manager, character):
        wizard = await make_wizard(engine, character)
        with pytest.raises(AdvancementError, match="not a valid spellcasting ability"):
            await manager.apply(
                character,
                f"{wizard.id}.spells",
                wizard_step(),
                {"choices": ["content.spell.shield"], "ability": "charisma"},
            )

    async def test_ability_must_be_selected(self, engine, manager, character):
        await make_wizard(engine, character)
        item = await manager.add_item(character, {
            "name": "Magic Initiate",
            "type": "talent",
            "advancement": {
                "spells": {
                    "type": "chooseSpells",
                    "configuration": {
                        "choices": {"1": 1},
                        "spell": {"ability": ["intelligence", "wisdom"], "mode": "innate"},
                        "restriction": {"circle": 1},
                    },
                }
            },
        })
        relative_id = f"{item.id}.spells"
        assert not item.advancements.get("spells").configured_for_level(wizard_step())
        with pytest.raises(AdvancementError, match="requires a spellcasting ability"):
            await manager.apply(character, relative_id, wizard_step(), ["content.spell.bless"])

        await manager.apply(character, relative_id, wizard_step(), {"choices": ["content.spell.bless"], "ability": "wisdom"})
        [bless] = spells_named(character, "Bless")
        assert get_property(bless.flags, "relationship.origin.ability") == "wisdom"
        assert get_property(bless.flags, "relationship.mode") == "innate"

    async def test_reverse_clears_chosen_ability(self, engine, manager, character):
        await make_wizard(engine, character)
        item = await manager.add_item(character, {
            "name": "Magic Initiate",
            "type": "talent",
            "advancement": {
                "spells": {
                    "type": "chooseSpells",
                    "configuration": {
                        "choices": {"1": 1},
                        "spell": {"ability": ["intelligence", "wisdom"], "mode": "innate"},
                    },
                }
            },
        })
        relative_id = f"{item.id}.spells"
        await manager.apply(
            character, relative_id, wizard_step(), {"choices": ["content.spell.magic-missile"], "ability": "wisdom"}
        )
        advancement = item.advancements.get("spells")
        assert advancement.value.ability == "wisdom"

        await manager.reverse(character, relative_id, wizard_step())
        assert advancement.value.ability is None
        assert get_property(character.system, f"progression.advancement.{item.id}") is None
        assert not advancement.configured_for_level(wizard_step())

    async def test_level_down_removes_spells(self, engine, character):
        await make_wizard(engine, character, ["content.spell.magic-missile", "content.spell.shield"])
        await engine.level_down(character)
        assert not [i for i in character.items.values() if i.type == "spell"]
        assert character.items == {}


class TestGrantSpells:
    def background(self, pool: list[str], **spell) -> dict:
        return {
            "name": "Hermit",
            "type": "background",
            "advancement": {"spells": {"type": "grantSpells", "configuration": {"pool": pool, "spell": spell}}},
        }

    async def test_grant(self, manager, character):
        await manager.add_item(character, self.background(["content.spell.bless"], ability=["wisdom"], mode="innate"))
        [bless] = spells_named(character, "Bless")
        assert get_property(bless.flags, "relationship.mode") == "innate"
        assert get_property(bless.flags, "relationship.origin.ability") == "wisdom"
        assert bless.advancement_origin.endswith(".spells")

    async def test_existing_spell_is_updated_not_duplicated(self, engine, manager, character):
        await make_wizard(engine, character, ["content.spell.magic-missile", "content.spell.shield"])
        hermit = await manager.add_item(
            character,
            self.background(["content.spell.magic-missile"], always_prepared=True, origin="hermit"),
        )
        [missile] = spells_named(character, "Magic Missile")
        assert get_property(missile.flags, "relationship.always_prepared") is True
        assert get_property(missile.flags, "relationship.origin.identifier") == "hermit"
        added = hermit.advancements.get("spells").value.added
        assert [(entry.document, entry.modified) for entry in added] == [(missile.id, True)]

        await manager.remove_item(character, hermit.id)
        [missile] = spells_named(character, "Magic Missile")
        assert get_property(missile.flags, "relationship.always_prepared") is False
        assert get_property(missile.flags, "relationship.origin.identifier") is None

    async def test_different_mode_is_a_new_spell(self, engine, manager, character):
        await make_wizard(engine, character, ["content.spell.magic-missile", "content.spell.shield"])
        await manager.add_item(character, self.background(["content.spell.magic-missile"], mode="innate"))
        assert len(spells_named(character, "Magic Missile")) == 2

    async def test_reverse(self, manager, character):
        hermit = await manager.add_item(character, self.background(["content.spell.bless"]))
        await manager.reverse(character, f"{hermit.id}.spells", AdvancementLevels.baseline())
        assert not spells_named(character, "Bless")
        assert hermit.advancements.get("spells").value.added == []
