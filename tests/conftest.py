"""
Pytest Configuration and Shared Fixtures for Songsmith.

Provides common fixtures for:
- Isolated settings managers (temp config/data dirs, no real API keys)
- Sample-backend tool registries for both workflows
- Fresh state stores and traces
- Temporary song databases
- Canned artifacts (brief, song, melody, evaluations)
"""

import pytest

from songsmith.agents.brief import create_creative_brief
from songsmith.core.db import SongDB
from songsmith.core.settings import SettingsManager, SAMPLE_BACKEND_ENV, reset_settings_manager
from songsmith.core.state_store import StateStore
from songsmith.core.trace import Trace
from songsmith.tools.base import Backend
from songsmith.tools.lyrics import sample_song_structure
from songsmith.tools.melody import sample_melody
from songsmith.tools.registry import build_lyrics_tools, build_melody_tools


# ============================================================================
# ENVIRONMENT ISOLATION
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep real keys and backend overrides out of every test."""
    for name in (SAMPLE_BACKEND_ENV, "OPENAI_API_KEY", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_settings_manager()


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================

@pytest.fixture
def settings_manager(tmp_path):
    """
    SettingsManager writing into a temporary directory.

    Returns:
        SettingsManager: Defaults, live backend, no API keys.
    """
    return SettingsManager(config_dir=tmp_path / "config", data_dir=tmp_path / "data")


@pytest.fixture
def sample_settings(settings_manager):
    """SettingsManager with the deterministic sample backend enabled."""
    settings_manager.set_preference("use_sample_backend", True)
    return settings_manager


# ============================================================================
# TOOL FIXTURES
# ============================================================================

@pytest.fixture
def lyrics_tools():
    """Sample-backend lyrics tools (quality 6.0 first draft, 7.5 after one revision)."""
    return build_lyrics_tools(Backend.SAMPLE)


@pytest.fixture
def melody_tools():
    """Sample-backend melody tools (quality 8.0 first draft, 9.0 after one revision)."""
    return build_melody_tools(Backend.SAMPLE)


# ============================================================================
# RUN STATE FIXTURES
# ============================================================================

@pytest.fixture
def state():
    return StateStore()


@pytest.fixture
def trace():
    return Trace()


@pytest.fixture
def song_db(tmp_path):
    """Empty SongDB in a temporary directory."""
    return SongDB(tmp_path / "db" / "songsmith.db")


# ============================================================================
# ARTIFACT FIXTURES
# ============================================================================

@pytest.fixture
def lyrics_request():
    return {"lyrics": "text", "emotion": "sad"}


@pytest.fixture
def creative_brief(lyrics_request):
    return create_creative_brief(lyrics_request).to_state()


@pytest.fixture
def song_structure(creative_brief):
    """Seven-section sample song for a sad brief."""
    return sample_song_structure(creative_brief)


@pytest.fixture
def melody_structure(song_structure):
    return sample_melody(song_structure, "sad", "melancholic")


@pytest.fixture
def weak_evaluation():
    return {
        "quality": 6.0,
        "strengths": ["Clear emotional tone"],
        "weaknesses": ["Generic bridge"],
        "suggestions": ["Use one concrete image in the bridge"],
        "needsImprovement": True,
    }


@pytest.fixture
def strong_evaluation():
    return {
        "quality": 8.0,
        "strengths": ["Clear emotional tone"],
        "weaknesses": [],
        "suggestions": [],
        "needsImprovement": False,
    }
