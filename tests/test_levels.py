"""Tests for level tuples and level resolution."""

import pytest

from advancement_engine.advancement.levels import AdvancementLevels, resolve_relevant_level


def fighter_step(character: int, class_: int, identifier: str = "fighter") -> AdvancementLevels:
    return AdvancementLevels(character=character, class_=class_, identifier=identifier)


class TestAdvancementLevels:
    def test_baseline(self):
        levels = AdvancementLevels.baseline()
        assert levels.character == 0
        assert levels.class_ == 0
        assert levels.identifier is None

    def test_record_uses_class_alias(self):
        record = fighter_step(3, 2).to_record()
        assert record == {"character": 3, "class": 2, "identifier": "fighter"}

    def test_validates_from_record(self):
        levels = AdvancementLevels.model_validate({"character": 4, "class": 1, "identifier": "wizard"})
        assert levels.class_ == 1
        assert levels.identifier == "wizard"

    def test_frozen(self):
        levels = fighter_step(1, 1)
        with pytest.raises(Exception):
            levels.character = 2


class TestResolveRelevantLevel:
    def test_baseline_is_zero(self):
        assert resolve_relevant_level(AdvancementLevels.baseline(), item_type="class", item_identifier="fighter") == 0
        assert resolve_relevant_level(AdvancementLevels.baseline(), item_type="lineage") == 0

    def test_class_item_uses_class_level(self):
        level = resolve_relevant_level(fighter_step(5, 5), item_type="class", item_identifier="fighter")
        assert level == 5

    def test_class_item_for_other_class_does_not_apply(self):
        level = resolve_relevant_level(fighter_step(5, 2, "rogue"), item_type="class", item_identifier="fighter")
        assert level is None

    def test_subclass_uses_parent_class(self):
        level = resolve_relevant_level(
            fighter_step(6, 3),
            item_type="subclass",
            item_identifier="champion",
            parent_class_identifier="fighter",
        )
        assert level == 3

    def test_unbound_item_uses_character_level(self):
        assert resolve_relevant_level(fighter_step(5, 3), item_type="lineage") == 5

    def test_item_bound_to_class(self):
        level = resolve_relevant_level(fighter_step(5, 3), item_type="talent", class_identifier="fighter")
        assert level == 3

    def test_item_bound_to_other_class(self):
        level = resolve_relevant_level(fighter_step(5, 3, "wizard"), item_type="talent", class_identifier="fighter")
        assert level is None

    def test_step_without_identifier_uses_character_level(self):
        levels = AdvancementLevels(character=4, class_=2)
        assert resolve_relevant_level(levels, item_type="class", item_identifier="fighter") == 4

    def test_original_restriction(self):
        kwargs = dict(item_type="talent", class_identifier="fighter", class_restriction="original")
        assert resolve_relevant_level(fighter_step(5, 3), original_class="fighter", **kwargs) == 3
        assert resolve_relevant_level(fighter_step(5, 3), original_class="wizard", **kwargs) is None

    def test_other_restriction(self):
        kwargs = dict(item_type="talent", class_identifier="fighter", class_restriction="other")
        assert resolve_relevant_level(fighter_step(5, 3), original_class="fighter", **kwargs) is None
        assert resolve_relevant_level(fighter_step(5, 3), original_class="wizard", **kwargs) == 3

    def test_restriction_ignored_without_original_class(self):
        level = resolve_relevant_level(
            fighter_step(1, 1),
            item_type="talent",
            class_identifier="fighter",
            class_restriction="other",
        )
        assert level == 1
