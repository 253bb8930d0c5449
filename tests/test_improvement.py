"""Tests for ability score improvements and talents."""

import pytest

from advancement_engine.advancement import AdvancementError, AdvancementLevels
from advancement_engine.utils import get_property

pytestmark = pytest.mark.anyio

FOURTH = AdvancementLevels(character=4, class_=4, identifier="fighter")


async def fighter_four(engine, character):
    await engine.level_up(character, "fighter", class_content="content.class.fighter")
    for _ in range(3):
        await engine.level_up(character, "fighter", hit_points="avg")
    return character.classes["fighter"]


def ability(character, key: str) -> int:
    return get_property(character.data, f"system.abilities.{key}.value")


def talents(character) -> list[str]:
    return sorted(i.name for i in character.items.values() if i.type == "talent")


class TestImprovement:
    async def test_not_active_before_fourth_level(self, engine, character):
        await engine.level_up(character, "fighter", class_content="content.class.fighter")
        improvement = character.classes["fighter"].advancements.get("improvement")
        assert improvement.levels() == [4]
        assert improvement not in character.advancement_for_level(character.progression_levels()[0])

    async def test_warns_until_chosen(self, engine, character):
        fighter = await fighter_four(engine, character)
        warning = character.notifications.get(f"{fighter.id}.improvement.4.no-improvement")
        assert warning is not None
        assert warning.category == "level-4"

    async def test_raise_two_abilities(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.apply(
            character,
            f"{fighter.id}.improvement",
            FOURTH,
            {"ability": {"one": "strength", "two": "constitution"}},
        )
        assert ability(character, "strength") == 16
        assert ability(character, "constitution") == 15
        # Stored scores stay untouched
        assert character.system["abilities"]["strength"]["value"] == 15

    async def test_same_ability_twice(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.apply(
            character,
            f"{fighter.id}.improvement",
            FOURTH,
            {"ability": {"one": "strength", "two": "strength"}},
        )
        assert ability(character, "strength") == 17

    async def test_single_ability_shorthand(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.apply(character, f"{fighter.id}.improvement", FOURTH, {"ability": "strength"})
        assert fighter.advancements.get("improvement").value.ability.one == "strength"
        assert ability(character, "strength") == 16

    async def test_bare_ability_key(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.apply(character, f"{fighter.id}.improvement", FOURTH, "dexterity")
        assert fighter.advancements.get("improvement").value.ability.one == "dexterity"

    async def test_ability_list(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.apply(character, f"{fighter.id}.improvement", FOURTH, {"ability": ["strength", "dexterity"]})
        value = fighter.advancements.get("improvement").value
        assert (value.ability.one, value.ability.two) == ("strength", "dexterity")

    @pytest.mark.parametrize("data", [["strength"], 7, {"ability": 3}])
    async def test_malformed_choice(self, engine, manager, character, data):
        fighter = await fighter_four(engine, character)
        with pytest.raises(AdvancementError, match="Invalid"):
            await manager.apply(character, f"{fighter.id}.improvement", FOURTH, data)

    async def test_unknown_ability(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        with pytest.raises(AdvancementError, match="is not an ability"):
            await manager.apply(character, f"{fighter.id}.improvement", FOURTH, {"ability": "luck"})

    async def test_talent(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        relative_id = f"{fighter.id}.improvement"
        await manager.apply(
            character, relative_id, FOURTH, {"ability": "strength", "talent": "content.talent.tough"}
        )
        assert talents(character) == ["Tough"]
        improvement = fighter.advancements.get("improvement")
        assert improvement.configured_for_level(FOURTH)
        assert improvement.summary_for_level(FOURTH) == "strength, content.talent.tough"
        assert character.notifications.get(f"{relative_id}.4.no-improvement") is None

    async def test_talent_from_another_list(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        with pytest.raises(AdvancementError, match="not on the martial talent lists"):
            await manager.apply(
                character, f"{fighter.id}.improvement", FOURTH, {"talent": "content.talent.ritualist"}
            )
        assert talents(character) == []

    async def test_not_a_talent(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        with pytest.raises(AdvancementError, match="is not a talent"):
            await manager.apply(character, f"{fighter.id}.improvement", FOURTH, {"talent": "content.feature.trip"})

    async def test_one_talent_only(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        relative_id = f"{fighter.id}.improvement"
        await manager.apply(character, relative_id, FOURTH, {"talent": "content.talent.tough"})
        with pytest.raises(AdvancementError, match="already been chosen"):
            await manager.apply(character, relative_id, FOURTH, {"talent": "content.talent.tough"})
        assert talents(character) == ["Tough"]

    async def test_subclass_expands_talent_lists(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.add_item(character, {
            "name": "Eldritch Knight",
            "type": "subclass",
            "identifier": "eldritch-knight",
            "class_identifier": "fighter",
            "advancement": {
                "lists": {"type": "expandedTalentList", "configuration": {"talent_list": "magical"}},
            },
        })
        improvement = fighter.advancements.get("improvement")
        assert improvement.talent_lists() == {"martial", "magical"}

        await manager.apply(
            character, f"{fighter.id}.improvement", FOURTH, {"talent": "content.talent.ritualist"}
        )
        assert talents(character) == ["Ritualist"]

    async def test_reverse(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        relative_id = f"{fighter.id}.improvement"
        await manager.apply(
            character, relative_id, FOURTH, {"ability": "strength", "talent": "content.talent.tough"}
        )
        await manager.reverse(character, relative_id, FOURTH)
        assert ability(character, "strength") == 15
        assert talents(character) == []
        assert fighter.advancements.get("improvement").value.talent is None

    async def test_level_down_reverses(self, engine, manager, character):
        fighter = await fighter_four(engine, character)
        await manager.apply(
            character, f"{fighter.id}.improvement", FOURTH, {"ability": "strength", "talent": "content.talent.tough"}
        )
        await engine.level_down(character)
        assert character.level == 3
        assert ability(character, "strength") == 15
        assert talents(character) == []
