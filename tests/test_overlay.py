"""Tests for the change-overlay engine and character data preparation."""

import pytest

from advancement_engine.changes import Change, ChangeMode
from advancement_engine.deltas import DeltaInterpreter
from advancement_engine.overlay import ChangeOverlayEngine, fold_changes
from advancement_engine.utils import get_property


def property_advancement(*changes):
    return {"type": "property", "configuration": {"changes": list(changes)}}


ADD_TWO = {"key": "system.traits.movement.base", "mode": "ADD", "value": 2}
OVERRIDE_TEN = {"key": "system.traits.movement.base", "mode": "OVERRIDE", "value": 10}


def lineage(advancement: dict) -> dict:
    return {"name": "Odd Lineage", "type": "lineage", "advancement": advancement}


class TestFoldChanges:
    @pytest.fixture
    def interpreter(self, ruleset):
        return DeltaInterpreter(ruleset.schema, ruleset.deltas)

    def test_priority_beats_declaration_order(self, interpreter):
        data = {"system": {"traits": {"movement": {"base": 30}}}}
        add = Change.model_validate(ADD_TWO)
        override = Change.model_validate(OVERRIDE_TEN)

        assert fold_changes(interpreter, [add, override], data) == {"system.traits.movement.base": 10}
        assert fold_changes(interpreter, [override, add], data) == {"system.traits.movement.base": 10}

    def test_equal_priority_keeps_collection_order(self, interpreter):
        first = Change(key="system.traits.size", mode=ChangeMode.OVERRIDE, value="small")
        second = Change(key="system.traits.size", mode=ChangeMode.OVERRIDE, value="large")
        assert fold_changes(interpreter, [first, second], {})["system.traits.size"] == "large"
        assert fold_changes(interpreter, [second, first], {})["system.traits.size"] == "small"

    def test_changes_build_on_each_other(self, interpreter):
        data = {"system": {"traits": {"movement": {"base": 30}}}}
        changes = [Change.model_validate(ADD_TWO), Change.model_validate(ADD_TWO)]
        assert fold_changes(interpreter, changes, data) == {"system.traits.movement.base": 34}

    def test_explicit_priority(self, interpreter):
        data = {"system": {"traits": {"movement": {"base": 30}}}}
        late_add = Change(key="system.traits.movement.base", mode=ChangeMode.ADD, value=2, priority=50)
        override = Change.model_validate(OVERRIDE_TEN)
        assert fold_changes(interpreter, [late_add, override], data) == {"system.traits.movement.base": 12}

    def test_data_is_not_modified(self, interpreter):
        data = {"system": {"traits": {"movement": {"base": 30}}}}
        fold_changes(interpreter, [Change.model_validate(ADD_TWO)], data)
        assert data["system"]["traits"]["movement"]["base"] == 30


class TestCharacterOverlay:
    @pytest.mark.parametrize(
        "advancement",
        [
            {"a": property_advancement(ADD_TWO), "b": property_advancement(OVERRIDE_TEN)},
            {"a": property_advancement(OVERRIDE_TEN), "b": property_advancement(ADD_TWO)},
        ],
    )
    def test_override_wins_in_either_order(self, store, advancement):
        character = store.add({"name": "Nim", "items": [lineage(advancement)]})
        assert get_property(character.data, "system.traits.movement.base") == 10

    def test_overrides_tree(self, store):
        character = store.add({"name": "Nim", "items": [lineage({"a": property_advancement(ADD_TWO)})]})
        assert character.advancement_overrides == {"system": {"traits": {"movement": {"base": 32}}}}

    def test_stored_data_is_not_changed(self, store):
        character = store.add({"name": "Nim", "items": [lineage({"a": property_advancement(ADD_TWO)})]})
        assert get_property(character.system, "traits.movement.base") is None

    def test_recompute_is_deterministic(self, store):
        character = store.add({
            "name": "Nim",
            "items": [lineage({"a": property_advancement(ADD_TWO), "b": property_advancement(ADD_TWO)})],
        })
        first = character.prepare_data()
        second = character.prepare_data()
        assert first == second
        assert get_property(second, "system.traits.movement.base") == 34

    def test_changes_are_tagged_with_source(self, store, ruleset):
        character = store.add({"name": "Nim", "items": [lineage({"a": property_advancement(ADD_TWO)})]})
        item = next(iter(character.items.values()))
        changes = ChangeOverlayEngine(ruleset).collect(character)
        assert [c.advancement for c in changes] == [f"{item.id}.a"]
        assert changes[0].priority == 0

    def test_invalid_change_is_skipped(self, store):
        bad = {"key": "system.traits.movement.base", "mode": "ADD", "value": "fast"}
        character = store.add({
            "name": "Nim",
            "items": [lineage({"a": property_advancement(bad, ADD_TWO)})],
        })
        assert get_property(character.data, "system.traits.movement.base") == 32


class TestDerivedData:
    def test_ability_modifiers(self, character):
        assert get_property(character.data, "system.abilities.constitution.mod") == 2
        assert get_property(character.data, "system.abilities.strength.mod") == 2
        assert get_property(character.data, "system.abilities.charisma.mod") == 0

    def test_level_zero_defaults(self, character):
        assert character.level == 0
        assert get_property(character.data, "system.attributes.prof") == 2
        assert get_property(character.data, "system.attributes.hp.max") == 0
        assert get_property(character.data, "system.traits.movement.base") == 30

    def test_stored_hit_point_value_is_kept(self, store):
        character = store.add({"name": "Hurt", "system": {"attributes": {"hp": {"value": 3, "max": 7}}}})
        assert get_property(character.data, "system.attributes.hp.max") == 7
        assert get_property(character.data, "system.attributes.hp.value") == 3
