r"""
Global Settings Management for Songsmith.

Uses platformdirs to store user settings in OS-standard locations.
Manages API keys, model selections, workflow guardrails and preferences.

Storage Locations (via platformdirs):
- Windows: %APPDATA%\Songsmith\config.json
- Linux: ~/.config/songsmith/config.json
- macOS: ~/Library/Application Support/Songsmith/config.json

Environment overrides (a .env file is honored via python-dotenv):
- OPENAI_API_KEY / ANTHROPIC_API_KEY: used when no key is saved in config.json
- SONGSMITH_SAMPLE_BACKEND=true: force deterministic sample tools (no LLM calls)
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from platformdirs import user_config_dir, user_data_dir

logger = logging.getLogger(__name__)

SAMPLE_BACKEND_ENV = "SONGSMITH_SAMPLE_BACKEND"

_ENV_API_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

WORKFLOWS = ("lyrics", "melody")


class SettingsManager:
    """
    Manages global user settings in OS-standard config directory.

    Settings are stored as JSON and include:
    - API keys (OpenAI, Anthropic)
    - Model selections per tool role (generate, evaluate, improve)
    - Guardrails per workflow (lyrics, melody)
    - Approval gate timeout
    - Preferences (use_sample_backend, language)
    """

    APP_NAME = "Songsmith"
    APP_AUTHOR = "Songsmith"
    CONFIG_FILE_NAME = "config.json"

    DEFAULT_SETTINGS = {
        "api_keys": {
            "openai": "",
            "anthropic": ""
        },
        "models": {
            "generate": "gpt-4o-mini",
            "evaluate": "gpt-4o-mini",
            "improve": "gpt-4o-mini"
        },
        "preferences": {
            "use_sample_backend": False,
            "language": "en"
        },
        "guardrails": {
            "lyrics": {
                "max_steps": 20,
                "max_tool_calls": 15,
                "max_iterations": 3,
                "quality_threshold": 7.0
            },
            "melody": {
                "max_steps": 30,
                "max_tool_calls": 30,
                "max_iterations": 3,
                "quality_threshold": 8.5
            }
        },
        "approval": {
            "timeout_seconds": 300.0
        }
    }

    SECTIONS = ("api_keys", "models", "preferences", "guardrails", "approval")

    def __init__(self, config_dir: Optional[Path] = None, data_dir: Optional[Path] = None):
        """
        Initialize SettingsManager.

        Args:
            config_dir: Override for the config directory (defaults to platformdirs).
            data_dir: Override for the data directory holding the song database.
        """
        self.config_dir = Path(config_dir) if config_dir else Path(user_config_dir(self.APP_NAME, self.APP_AUTHOR))
        self.data_dir = Path(data_dir) if data_dir else Path(user_data_dir(self.APP_NAME, self.APP_AUTHOR))
        self.config_file = self.config_dir / self.CONFIG_FILE_NAME

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Settings config directory: {self.config_dir}")

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from config file.

        Returns:
            Dict with settings (uses defaults if file doesn't exist or is corrupt).
        """
        if not self.config_file.exists():
            logger.debug("Config file not found, using defaults")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                settings = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            logger.warning("Using default settings")
            return copy.deepcopy(self.DEFAULT_SETTINGS)
        except OSError as e:
            logger.error(f"Failed to load settings: {e}")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        return self._merge_with_defaults(settings)

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Save settings to config file.

        Args:
            settings: Settings dict to save.

        Returns:
            True if save succeeded, False otherwise.
        """
        try:
            validated_settings = self._merge_with_defaults(settings)

            # Atomic write: temp file then rename
            temp_file = self.config_file.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(validated_settings, f, indent=2)
            temp_file.replace(self.config_file)

            logger.info("Settings saved successfully")
            return True

        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get_api_key(self, provider: str) -> Optional[str]:
        """
        Get API key for a provider.

        The saved config wins; the provider's environment variable is the fallback.

        Args:
            provider: Provider name ("openai" or "anthropic").

        Returns:
            API key string or None if not configured.
        """
        settings = self.load_settings()
        api_key = settings.get("api_keys", {}).get(provider, "")
        if not api_key and provider in _ENV_API_KEYS:
            api_key = os.environ.get(_ENV_API_KEYS[provider], "")
        return api_key if api_key else None

    def set_api_key(self, provider: str, api_key: str) -> bool:
        """Set API key for a provider."""
        settings = self.load_settings()
        settings["api_keys"][provider] = api_key
        return self.save_settings(settings)

    def get_model(self, role: str) -> str:
        """
        Get configured model for a tool role.

        Args:
            role: "generate", "evaluate" or "improve".

        Returns:
            Model name (defaults from DEFAULT_SETTINGS if not configured).
        """
        settings = self.load_settings()
        return settings.get("models", {}).get(role, self.DEFAULT_SETTINGS["models"][role])

    def set_model(self, role: str, model_name: str) -> bool:
        """Set model for a tool role."""
        settings = self.load_settings()
        settings["models"][role] = model_name
        return self.save_settings(settings)

    def get_preference(self, key: str, default: Any = None) -> Any:
        """Get user preference value."""
        settings = self.load_settings()
        return settings.get("preferences", {}).get(key, default)

    def set_preference(self, key: str, value: Any) -> bool:
        """Set user preference value."""
        settings = self.load_settings()
        settings["preferences"][key] = value
        return self.save_settings(settings)

    def use_sample_backend(self) -> bool:
        """
        Whether tools should run on the deterministic sample backend.

        SONGSMITH_SAMPLE_BACKEND=true in the environment overrides the saved preference.
        """
        env_value = os.environ.get(SAMPLE_BACKEND_ENV)
        if env_value is not None and env_value.strip():
            return env_value.strip().lower() in ("1", "true", "yes", "on")
        return bool(self.get_preference("use_sample_backend", False))

    def get_guardrails(self, workflow: str) -> Dict[str, Any]:
        """
        Get guardrail limits for a workflow.

        Args:
            workflow: "lyrics" or "melody".

        Returns:
            Dict with max_steps, max_tool_calls, max_iterations, quality_threshold.

        Raises:
            ValueError: If workflow is unknown.
        """
        if workflow not in WORKFLOWS:
            raise ValueError(f"Unknown workflow: {workflow}")
        settings = self.load_settings()
        return dict(settings["guardrails"][workflow])

    def get_approval_timeout(self) -> float:
        """Get approval gate timeout in seconds."""
        settings = self.load_settings()
        return float(settings["approval"]["timeout_seconds"])

    def get_database_path(self) -> Path:
        """Get path of the song database file."""
        return self.data_dir / "songsmith.db"

    def _merge_with_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user settings with defaults to handle missing keys.

        Guardrail blocks are merged per workflow so a partial override keeps
        the remaining default limits.
        """
        merged = copy.deepcopy(self.DEFAULT_SETTINGS)

        for section in self.SECTIONS:
            if section not in settings or not isinstance(settings[section], dict):
                continue
            if section == "guardrails":
                for workflow, limits in settings[section].items():
                    if workflow in merged["guardrails"] and isinstance(limits, dict):
                        merged["guardrails"][workflow].update(limits)
            else:
                merged[section].update(settings[section])

        return merged

    def reset_to_defaults(self) -> bool:
        """Reset all settings to defaults."""
        logger.warning("Resetting settings to defaults")
        return self.save_settings(copy.deepcopy(self.DEFAULT_SETTINGS))

    def get_config_file_path(self) -> Path:
        """Get absolute path to config file for debugging."""
        return self.config_file


# Singleton instance for global access
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """
    Get singleton SettingsManager instance.

    Loads a .env file on first use so environment overrides apply.
    """
    global _settings_manager
    if _settings_manager is None:
        load_dotenv()
        _settings_manager = SettingsManager()
    return _settings_manager


def reset_settings_manager() -> None:
    """
    Reset the SettingsManager singleton (for testing).

    WARNING: Only use in tests. Production code should never call this.
    """
    global _settings_manager
    _settings_manager = None


__all__ = [
    "SettingsManager",
    "get_settings_manager",
    "reset_settings_manager",
    "SAMPLE_BACKEND_ENV",
    "WORKFLOWS",
]
