"""
Tests for songsmith/core/settings.py - SettingsManager.

Tests:
- Default settings structure
- Preference and model getters/setters
- Guardrail blocks per workflow (partial overrides keep defaults)
- API key fallback to environment
- Sample backend environment override
- Corrupt config recovery
"""

import json

import pytest

from songsmith.core.settings import (
    SettingsManager,
    SAMPLE_BACKEND_ENV,
    get_settings_manager,
    reset_settings_manager,
)


class TestSettingsManager:
    """Tests for SettingsManager class."""

    def test_default_settings_structure(self, settings_manager):
        """Test that default settings have required structure."""
        settings = settings_manager.load_settings()

        for section in ("api_keys", "models", "preferences", "guardrails", "approval"):
            assert section in settings

        assert set(settings["models"]) == {"generate", "evaluate", "improve"}
        assert set(settings["guardrails"]) == {"lyrics", "melody"}

    def test_defaults_are_not_shared(self, settings_manager):
        """Test that mutating loaded settings does not leak into defaults."""
        settings = settings_manager.load_settings()
        settings["guardrails"]["lyrics"]["max_steps"] = 1

        assert SettingsManager.DEFAULT_SETTINGS["guardrails"]["lyrics"]["max_steps"] == 20
        assert settings_manager.get_guardrails("lyrics")["max_steps"] == 20

    def test_set_preference(self, settings_manager):
        """Test set_preference persists to config.json."""
        assert settings_manager.set_preference("language", "pt-BR") is True
        assert settings_manager.get_preference("language") == "pt-BR"

        on_disk = json.loads(settings_manager.get_config_file_path().read_text())
        assert on_disk["preferences"]["language"] == "pt-BR"

    def test_get_preference_with_default(self, settings_manager):
        """Test get_preference returns default for missing keys."""
        assert settings_manager.get_preference("nonexistent", "fallback") == "fallback"

    def test_set_model(self, settings_manager):
        """Test set_model updates one role only."""
        settings_manager.set_model("evaluate", "claude-sonnet-4-20250514")

        assert settings_manager.get_model("evaluate") == "claude-sonnet-4-20250514"
        assert settings_manager.get_model("generate") == "gpt-4o-mini"

    def test_reset_to_defaults(self, settings_manager):
        """Test reset_to_defaults discards saved changes."""
        settings_manager.set_model("generate", "gpt-4o")
        settings_manager.reset_to_defaults()

        assert settings_manager.get_model("generate") == "gpt-4o-mini"

    def test_corrupt_config_uses_defaults(self, settings_manager):
        """Test that an unparseable config file falls back to defaults."""
        settings_manager.get_config_file_path().write_text("{not json", encoding="utf-8")

        settings = settings_manager.load_settings()
        assert settings["guardrails"]["melody"]["quality_threshold"] == 8.5

    def test_database_path_in_data_dir(self, settings_manager, tmp_path):
        """Test database path lives under the data directory."""
        assert settings_manager.get_database_path() == tmp_path / "data" / "songsmith.db"


class TestGuardrailSettings:
    """Tests for per-workflow guardrail blocks."""

    def test_lyrics_defaults(self, settings_manager):
        """Test lyrics workflow default limits."""
        assert settings_manager.get_guardrails("lyrics") == {
            "max_steps": 20,
            "max_tool_calls": 15,
            "max_iterations": 3,
            "quality_threshold": 7.0,
        }

    def test_melody_defaults(self, settings_manager):
        """Test melody workflow default limits."""
        limits = settings_manager.get_guardrails("melody")
        assert limits["max_steps"] == 30
        assert limits["max_tool_calls"] == 30
        assert limits["quality_threshold"] == 8.5

    def test_partial_override_keeps_other_limits(self, settings_manager):
        """Test overriding one limit keeps the remaining defaults."""
        settings_manager.save_settings({"guardrails": {"lyrics": {"max_tool_calls": 2}}})

        limits = settings_manager.get_guardrails("lyrics")
        assert limits["max_tool_calls"] == 2
        assert limits["max_steps"] == 20

    def test_unknown_workflow(self, settings_manager):
        """Test unknown workflow raises ValueError."""
        with pytest.raises(ValueError, match="Unknown workflow"):
            settings_manager.get_guardrails("drums")

    def test_approval_timeout_default(self, settings_manager):
        """Test approval timeout default is five minutes."""
        assert settings_manager.get_approval_timeout() == 300.0


class TestEnvironmentOverrides:
    """Tests for environment fallbacks."""

    def test_api_key_from_environment(self, settings_manager, monkeypatch):
        """Test API key falls back to the provider environment variable."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert settings_manager.get_api_key("openai") == "sk-env"

    def test_saved_api_key_wins(self, settings_manager, monkeypatch):
        """Test saved API key takes precedence over environment."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        settings_manager.set_api_key("anthropic", "saved-key")
        assert settings_manager.get_api_key("anthropic") == "saved-key"

    def test_missing_api_key(self, settings_manager):
        """Test missing key returns None."""
        assert settings_manager.get_api_key("openai") is None

    def test_sample_backend_preference(self, sample_settings):
        """Test sample backend preference."""
        assert sample_settings.use_sample_backend() is True

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("off", False), ("no", False)])
    def test_sample_backend_env_override(self, settings_manager, monkeypatch, value, expected):
        """Test SONGSMITH_SAMPLE_BACKEND overrides the saved preference."""
        settings_manager.set_preference("use_sample_backend", not expected)
        monkeypatch.setenv(SAMPLE_BACKEND_ENV, value)
        assert settings_manager.use_sample_backend() is expected


class TestSingleton:
    """Tests for the global settings manager."""

    def test_singleton_reset(self, monkeypatch, tmp_path):
        """Test get_settings_manager caches until reset."""
        monkeypatch.setattr(
            "songsmith.core.settings.user_config_dir", lambda *args: str(tmp_path / "cfg")
        )
        monkeypatch.setattr(
            "songsmith.core.settings.user_data_dir", lambda *args: str(tmp_path / "data")
        )
        monkeypatch.setattr("songsmith.core.settings.load_dotenv", lambda: False)

        first = get_settings_manager()
        assert get_settings_manager() is first

        reset_settings_manager()
        assert get_settings_manager() is not first
