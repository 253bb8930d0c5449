"""Tests for engine configuration and the ruleset bundle."""

import json

import pytest
from pydantic import ValidationError

from advancement_engine.advancement import Advancement
from advancement_engine.config import EngineConfig
from advancement_engine.ruleset import Ruleset

ENV_KEYS = ("ADVANCEMENT_MAX_LEVEL", "ADVANCEMENT_CONTENT_DIR", "ADVANCEMENT_LOG_LEVEL", "ADVANCEMENT_STRICT")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values loaded from .env files are undone after each test
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.max_level == 20
        assert config.subclass_level == 3
        assert config.hit_points_ability == "constitution"
        assert config.strict_validation is True
        assert config.content_dir is None

    @pytest.mark.parametrize("max_level", [0, 31])
    def test_max_level_bounds(self, max_level):
        with pytest.raises(ValidationError):
            EngineConfig(max_level=max_level)

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ADVANCEMENT_MAX_LEVEL", "10")
        monkeypatch.setenv("ADVANCEMENT_CONTENT_DIR", str(tmp_path))
        monkeypatch.setenv("ADVANCEMENT_LOG_LEVEL", "debug")
        monkeypatch.setenv("ADVANCEMENT_STRICT", "false")

        config = EngineConfig.from_env(tmp_path / "missing.env")
        assert config.max_level == 10
        assert config.content_dir == tmp_path.resolve()
        assert config.log_level == "DEBUG"
        assert config.strict_validation is False

    def test_from_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("ADVANCEMENT_MAX_LEVEL=12\nADVANCEMENT_STRICT=yes\n", encoding="utf-8")

        config = EngineConfig.from_env(env_file)
        assert config.max_level == 12
        assert config.strict_validation is True

    def test_from_env_without_variables(self, tmp_path):
        assert EngineConfig.from_env(tmp_path / "missing.env") == EngineConfig()


class TestRuleset:
    def test_default_loads_content_dir(self, tmp_path):
        (tmp_path / "features.json").write_text(
            json.dumps([{"uuid": "content.feature.rage", "name": "Rage", "type": "feature"}]),
            encoding="utf-8",
        )
        ruleset = Ruleset.default(EngineConfig(content_dir=tmp_path))
        assert "content.feature.rage" in ruleset.content

    def test_default_without_content(self):
        ruleset = Ruleset.default()
        assert len(ruleset.content) == 0
        assert "hitPoints" in ruleset.advancement_types
        assert ruleset.config == EngineConfig()

    def test_rulesets_are_independent(self):
        class Custom(Advancement):
            type = "custom"

        first, second = Ruleset(), Ruleset()
        first.advancement_types.register(Custom)
        assert "custom" in first.advancement_types
        assert "custom" not in second.advancement_types
