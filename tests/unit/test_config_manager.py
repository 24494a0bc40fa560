"""
Unit Tests for ConfigManager
============================

Test Coverage
-------------
- Built-in defaults and YAML merging
- Runtime overrides and validators
- Unknown keys fall back to the caller's default
"""

import pytest

from arise.core.config.manager import ConfigManager, ConfigWriteError


@pytest.fixture
def clean_config():
    ConfigManager.reset()
    yield ConfigManager
    ConfigManager.reset()


@pytest.mark.unit
class TestConfigManager:
    def test_builtin_defaults_without_yaml(self, clean_config, tmp_path):
        clean_config.load(tmp_path / "missing")

        assert clean_config.get("progression.level_curve.base_xp") == 100
        assert clean_config.get("progression.debuff.penalty_percent") == 10

    def test_yaml_overrides_builtin(self, clean_config, tmp_path):
        # Arrange
        (tmp_path / "balance.yaml").write_text(
            "progression:\n  weekend_bonus:\n    percent: 20\n", encoding="utf-8"
        )

        # Act
        clean_config.load(tmp_path)

        # Assert: merged, not replaced
        assert clean_config.get("progression.weekend_bonus.percent") == 20
        assert clean_config.get("progression.weekend_bonus.enabled") is True

    def test_invalid_yaml_skipped(self, clean_config, tmp_path):
        (tmp_path / "broken.yaml").write_text("progression: [unclosed", encoding="utf-8")

        clean_config.load(tmp_path)

        assert clean_config.get("progression.level_curve.exponent") == 1.5

    def test_unknown_key_returns_default(self, clean_config):
        assert clean_config.get("progression.nope", 7) == 7
        assert clean_config.get("progression.level_curve.base_xp.deeper") is None

    def test_override_wins(self, clean_config):
        clean_config.set("progression.debuff.duration_hours", 48)

        assert clean_config.get("progression.debuff.duration_hours") == 48

    def test_validator_normalizes_value(self, clean_config):
        clean_config.register_validator("progression.weekend_bonus.percent", int)

        clean_config.set("progression.weekend_bonus.percent", "15")

        assert clean_config.get("progression.weekend_bonus.percent") == 15

    def test_validator_rejection_raises(self, clean_config):
        def positive(value):
            if value <= 0:
                raise ValueError("must be positive")
            return value

        clean_config.register_validator("progression.level_curve.base_xp", positive)

        with pytest.raises(ConfigWriteError):
            clean_config.set("progression.level_curve.base_xp", 0)
        assert clean_config.get("progression.level_curve.base_xp") == 100

    def test_reset_drops_overrides(self, clean_config):
        clean_config.set("progression.timeline.max_limit", 5)

        clean_config.reset()

        assert clean_config.get("progression.timeline.max_limit") == 200

    def test_top_level_keys(self, clean_config):
        assert {"core", "progression"} <= set(clean_config.get_all_keys())

    @pytest.mark.parametrize(
        "key, value",
        [
            ("progression.debuff.penalty_percent", 150),
            ("progression.debuff.duration_hours", 0),
            ("progression.weekend_bonus.enabled", "yes"),
            ("progression.level_curve.exponent", -1),
            ("progression.quests.default_min_partial_percent", True),
        ],
    )
    def test_balance_keys_reject_unusable_values(self, clean_config, key, value):
        before = clean_config.get(key)

        with pytest.raises(ConfigWriteError):
            clean_config.set(key, value)

        assert clean_config.get(key) == before
