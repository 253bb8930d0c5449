"""Tests for active effects folded over the advancement overlay."""

import pytest

from advancement_engine.effects import ActiveEffect, EffectsEngine
from advancement_engine.storage import InMemoryCharacterStore
from advancement_engine.utils import get_property

pytestmark = pytest.mark.anyio


def strength(character) -> int:
    return get_property(character.data, "system.abilities.strength.value")


def bulls_strength(**kwargs) -> ActiveEffect:
    return ActiveEffect(
        name="Bull's Strength",
        source="Potion",
        changes=[{"key": "system.abilities.strength.value", "mode": "ADD", "value": 2}],
        **kwargs,
    )


class TestEffectManagement:
    async def test_apply_effect(self, character):
        applied = await EffectsEngine.apply_effect(character, bulls_strength())
        assert strength(character) == 17
        assert character.effects == [applied]
        # Persisted scores are not touched
        assert character.system["abilities"]["strength"]["value"] == 15

    async def test_modifier_follows_effect(self, character):
        await EffectsEngine.apply_effect(character, bulls_strength())
        assert get_property(character.data, "system.abilities.strength.mod") == 3

    async def test_non_stackable_not_duplicated(self, character):
        first = await EffectsEngine.apply_effect(character, bulls_strength())
        second = await EffectsEngine.apply_effect(character, bulls_strength())
        assert second.id == first.id
        assert len(character.effects) == 1
        assert strength(character) == 17

    async def test_stackable(self, character):
        await EffectsEngine.apply_effect(character, bulls_strength(stackable=True))
        await EffectsEngine.apply_effect(character, bulls_strength(stackable=True))
        assert len(character.effects) == 2
        assert strength(character) == 19

    async def test_applied_copy_gets_new_id(self, character):
        effect = bulls_strength()
        applied = await EffectsEngine.apply_effect(character, effect)
        assert applied is not effect
        assert applied.id != effect.id

    async def test_remove_effect(self, character):
        applied = await EffectsEngine.apply_effect(character, bulls_strength())
        removed = await EffectsEngine.remove_effect(character, applied.id)
        assert removed.id == applied.id
        assert strength(character) == 15
        assert await EffectsEngine.remove_effect(character, applied.id) is None

    async def test_remove_by_name(self, character):
        await EffectsEngine.apply_effect(character, bulls_strength(stackable=True))
        await EffectsEngine.apply_effect(character, bulls_strength(stackable=True))
        removed = await EffectsEngine.remove_effects_by_name(character, "Bull's Strength")
        assert len(removed) == 2
        assert character.effects == []
        assert await EffectsEngine.remove_effects_by_name(character, "Bull's Strength") == []

    async def test_disabled_effect(self, character):
        await EffectsEngine.apply_effect(character, bulls_strength(disabled=True))
        assert strength(character) == 15
        assert EffectsEngine.collect(character) == []


class TestTickEffects:
    async def test_rounds_expire(self, character):
        await EffectsEngine.apply_effect(character, bulls_strength(duration_type="rounds", duration_remaining=2))
        assert await EffectsEngine.tick_effects(character) == []
        assert character.effects[0].duration_remaining == 1

        expired = await EffectsEngine.tick_effects(character)
        assert [e.name for e in expired] == ["Bull's Strength"]
        assert character.effects == []
        assert strength(character) == 15

    @pytest.mark.parametrize("duration_type", ["permanent", "minutes"])
    async def test_other_durations_untouched(self, character, duration_type):
        await EffectsEngine.apply_effect(
            character, bulls_strength(duration_type=duration_type, duration_remaining=1)
        )
        assert await EffectsEngine.tick_effects(character) == []
        assert character.effects[0].duration_remaining == 1


class TestPersistence:
    async def test_effects_are_autosaved(self, ruleset, tmp_path):
        store = InMemoryCharacterStore(ruleset, data_dir=tmp_path)
        character = store.add({"name": "Brom", "system": {"abilities": {"strength": {"value": 15}}}})
        applied = await EffectsEngine.apply_effect(character, bulls_strength())

        [loaded] = InMemoryCharacterStore(ruleset, data_dir=tmp_path).load_all()
        assert [e.id for e in loaded.effects] == [applied.id]
        assert strength(loaded) == 17

        await EffectsEngine.remove_effect(character, applied.id)
        [loaded] = InMemoryCharacterStore(ruleset, data_dir=tmp_path).load_all()
        assert loaded.effects == []

    async def test_patch_replaces_effect_list(self, store, character):
        await store.update_character(character.id, {"effects": [bulls_strength().model_dump()]})
        assert strength(character) == 17
        await store.update_character(character.id, {"effects": []})
        assert strength(character) == 15


class TestQueuedEffects:
    async def test_manager_effect_jobs(self, manager, character):
        applied = await manager.apply_effect(character, bulls_strength(duration_type="rounds", duration_remaining=1))
        assert strength(character) == 17

        expired = await manager.tick_effects(character)
        assert [e.id for e in expired] == [applied.id]
        assert strength(character) == 15

    async def test_manager_remove(self, manager, character):
        await manager.apply_effect(character, bulls_strength(stackable=True))
        second = await manager.apply_effect(character, bulls_strength(stackable=True))
        assert (await manager.remove_effect(character, second.id)).id == second.id
        assert len(await manager.remove_effects_by_name(character, "Bull's Strength")) == 1
        assert character.effects == []


class TestFolding:
    async def test_collect_tags_source(self, character):
        applied = await EffectsEngine.apply_effect(character, bulls_strength())
        [change] = EffectsEngine.collect(character)
        assert change.advancement == f"effect:{applied.id}"
        assert change.priority == 0

    async def test_effect_overrides_advancement(self, manager, character):
        await manager.add_item(character, "content.lineage.elf")
        assert get_property(character.data, "system.traits.movement.base") == 35

        slowed = await manager.apply_effect(character, ActiveEffect(
            name="Slowed",
            changes=[{"key": "system.traits.movement.base", "mode": "OVERRIDE", "value": 15}],
        ))
        assert get_property(character.data, "system.traits.movement.base") == 15
        # The advancement layer is still tracked separately
        assert character.advancement_overrides["system"]["traits"]["movement"]["base"] == 35

        await manager.remove_effect(character, slowed.id)
        assert get_property(character.data, "system.traits.movement.base") == 35

    async def test_effects_survive_updates(self, engine, character):
        await EffectsEngine.apply_effect(character, bulls_strength())
        await engine.level_up(character, "fighter", class_content="content.class.fighter")
        assert strength(character) == 17
