"""
Tests for songsmith/agents/runtime.py - Workflow Runtime.

Tests:
- Settings-driven lyrics and melody runs on the sample backend
- Guardrail overrides from settings
- Result payload shapes
"""

import pytest

from songsmith.agents.runtime import (
    WorkflowResult,
    build_lyrics_orchestrator,
    run_lyrics_workflow,
    run_melody_workflow,
)


class TestRunLyricsWorkflow:
    """Tests for run_lyrics_workflow."""

    @pytest.mark.asyncio
    async def test_sample_run(self, sample_settings):
        """Test the sample backend produces a revised song."""
        result = await run_lyrics_workflow({"lyrics": "text", "emotion": "sad"}, settings=sample_settings)

        assert isinstance(result, WorkflowResult)
        assert result.success is True
        assert result.iteration_count == 1
        assert result.creative_brief["mood"] == "melancholic"
        assert result.song_structure["title"] == "Sad Song (Revised)"
        assert result.melody_structure is None

    @pytest.mark.asyncio
    async def test_settings_guardrails_apply(self, sample_settings):
        """Test guardrail overrides in settings reach the loop."""
        sample_settings.save_settings({
            "preferences": {"use_sample_backend": True},
            "guardrails": {"lyrics": {"max_tool_calls": 1}},
        })

        result = await run_lyrics_workflow({"lyrics": "text", "emotion": "sad"}, settings=sample_settings)

        assert result.success is False
        assert result.error == "Max tool calls (1) exceeded"

    @pytest.mark.asyncio
    async def test_lyrics_payload(self, sample_settings):
        """Test the wire payload uses camelCase keys."""
        result = await run_lyrics_workflow({"lyrics": "text", "emotion": "happy"}, settings=sample_settings)

        payload = result.lyrics_payload()
        assert set(payload) == {"success", "creativeBrief", "songStructure", "evaluation", "iterationCount", "trace"}
        assert payload["trace"][0]["type"] == "plan"
        assert "agentId" in payload["trace"][0]

    def test_orchestrator_uses_threshold(self, sample_settings, lyrics_tools):
        """Test the policy threshold comes from settings."""
        sample_settings.save_settings({
            "preferences": {"use_sample_backend": True},
            "guardrails": {"lyrics": {"quality_threshold": 9.0, "max_iterations": 2}},
        })

        orchestrator = build_lyrics_orchestrator(sample_settings, tools=lyrics_tools)

        assert orchestrator.policy.quality_threshold == 9.0
        assert orchestrator.policy.max_iterations == 2
        assert orchestrator.guardrails.max_steps == 20


class TestRunMelodyWorkflow:
    """Tests for run_melody_workflow."""

    @pytest.mark.asyncio
    async def test_sample_run(self, sample_settings, song_structure):
        """Test a melody is composed and improved once."""
        result = await run_melody_workflow(
            song_structure, "sad", "melancholic", tempo=72, settings=sample_settings
        )

        assert result.success is True
        assert result.iteration_count == 1
        assert result.evaluation["quality"] == 9.0
        assert result.melody_structure["tempo"] == 72
        assert result.melody_structure["key"] == "A minor"

    @pytest.mark.asyncio
    async def test_melody_payload(self, sample_settings, song_structure):
        """Test the melody payload shape."""
        result = await run_melody_workflow(song_structure, "happy", "upbeat", settings=sample_settings)

        payload = result.melody_payload()
        assert set(payload) == {"success", "melodyStructure", "evaluation", "iterationCount", "trace"}
        assert payload["melodyStructure"]["key"] == "C major"

    @pytest.mark.asyncio
    async def test_blank_mood_fails(self, sample_settings, song_structure):
        """Test missing context is reported, not raised."""
        result = await run_melody_workflow(song_structure, "sad", "", settings=sample_settings)

        assert result.success is False
        assert result.error == "Emotion and mood are required for melody generation"
