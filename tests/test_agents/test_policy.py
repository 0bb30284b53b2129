"""
Tests for songsmith/agents/policy.py - Decision Policy.

Tests:
- Priority order: generate -> evaluate -> improve -> terminate
- needsImprovement decides branching; the threshold only changes the wording
- Threshold boundaries (inclusive)
- Feedback consumption
- Missing input, missing tools, missing melody context
"""

import pytest

from songsmith.agents.policy import (
    LYRICS_AGENT_ID,
    MELODY_AGENT_ID,
    create_lyrics_policy,
    create_melody_policy,
)
from songsmith.core.guardrails import ConfigurationError
from songsmith.core.state_store import (
    CREATIVE_BRIEF,
    EMOTION,
    EVALUATION,
    INITIAL_INPUT,
    ITERATION_COUNT,
    MELODY_STRUCTURE,
    MOOD,
    SONG_STRUCTURE,
    TEMPO,
    USER_FEEDBACK,
)
from songsmith.tools.base import Backend
from songsmith.tools.registry import ToolRegistry
from songsmith.tools.lyrics import EvaluateLyricsTool, GenerateSongStructureTool


@pytest.fixture
def lyrics_policy(lyrics_tools):
    return create_lyrics_policy(lyrics_tools, max_iterations=3, quality_threshold=7.0)


@pytest.fixture
def melody_policy(melody_tools):
    return create_melody_policy(melody_tools, max_iterations=3, quality_threshold=8.5)


def _evaluation(quality, needs_improvement):
    return {"quality": quality, "needsImprovement": needs_improvement}


class TestLyricsPolicy:
    """Tests for the lyrics decision tree."""

    @pytest.mark.asyncio
    async def test_generate_first(self, lyrics_policy, state):
        """Test an empty state asks for generation and derives the brief once."""
        state.set(INITIAL_INPUT, {"lyrics": "text", "emotion": "sad"})

        step = await lyrics_policy.execute(state)

        assert lyrics_policy.id == LYRICS_AGENT_ID
        assert step.actions[0].tool_id == "generate-song-structure"
        assert step.actions[0].input["mood"] == "melancholic"
        assert step.plan.steps == ["GenerateSongStructure"]
        assert step.plan.reasoning == "Initial song generation needed from creative brief"
        assert state.get(CREATIVE_BRIEF)["emotion"] == "sad"

    def test_existing_brief_reused(self, lyrics_policy, state, creative_brief):
        """Test a pre-seeded brief wins over initial input."""
        state.set(CREATIVE_BRIEF, {**creative_brief, "mood": "custom"})
        state.set(INITIAL_INPUT, {"lyrics": "other", "emotion": "happy"})

        step = lyrics_policy.decide(state)
        assert step.actions[0].input["mood"] == "custom"

    def test_generate_consumes_feedback(self, lyrics_policy, state):
        """Test pending feedback is carried into generation once."""
        state.set(INITIAL_INPUT, {"lyrics": "text", "emotion": "sad"})
        state.set(USER_FEEDBACK, "shorter chorus")

        step = lyrics_policy.decide(state)

        assert step.actions[0].input[USER_FEEDBACK] == "shorter chorus"
        assert state.get(USER_FEEDBACK) is None

    def test_no_input(self, lyrics_policy, state):
        """Test an empty run input is a configuration error."""
        with pytest.raises(ConfigurationError, match="No input to generate a song structure from"):
            lyrics_policy.decide(state)

    def test_evaluate_after_generate(self, lyrics_policy, state, song_structure):
        """Test a draft without evaluation asks for evaluation."""
        state.set(SONG_STRUCTURE, song_structure)

        step = lyrics_policy.decide(state)

        assert step.actions[0].tool_id == "evaluate-lyrics"
        assert step.actions[0].input == {SONG_STRUCTURE: song_structure}

    def test_improve_increments_iteration(self, lyrics_policy, state, song_structure, weak_evaluation):
        """Test improvement bumps the counter before acting."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, weak_evaluation)

        step = lyrics_policy.decide(state)

        assert step.actions[0].tool_id == "improve-lyrics"
        assert state.get(ITERATION_COUNT) == 1
        assert step.plan.reasoning == "Quality 6/10 needs improvement. Attempting improvement (iteration 1/3)"
        assert step.actions[0].input[EVALUATION] == weak_evaluation

    def test_improve_with_feedback(self, lyrics_policy, state, song_structure, weak_evaluation):
        """Test feedback is handed to improve and cleared."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, weak_evaluation)
        state.set(USER_FEEDBACK, "more hope")

        step = lyrics_policy.decide(state)

        assert step.plan.reasoning.endswith("with user feedback")
        assert step.actions[0].input[USER_FEEDBACK] == "more hope"
        assert state.get(USER_FEEDBACK) is None

    def test_terminate_when_acceptable(self, lyrics_policy, state, song_structure, strong_evaluation):
        """Test an accepted evaluation terminates with no actions."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, strong_evaluation)

        step = lyrics_policy.decide(state)

        assert step.is_terminal
        assert step.plan.reasoning == "Quality 8/10 is acceptable"

    def test_terminate_at_max_iterations(self, lyrics_policy, state, song_structure, weak_evaluation):
        """Test the iteration budget stops improvement."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, weak_evaluation)
        state.set(ITERATION_COUNT, 3)

        step = lyrics_policy.decide(state)

        assert step.is_terminal
        assert step.plan.reasoning == "Max iterations (3) reached"
        assert state.get(ITERATION_COUNT) == 3

    def test_zero_iterations_never_improves(self, lyrics_tools, state, song_structure, weak_evaluation):
        """Test max_iterations=0 terminates right after the first evaluation."""
        policy = create_lyrics_policy(lyrics_tools, max_iterations=0, quality_threshold=7.0)
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, weak_evaluation)

        assert policy.decide(state).is_terminal

    def test_negative_iterations_rejected(self, lyrics_tools):
        """Test a negative budget is refused at construction."""
        with pytest.raises(ValueError):
            create_lyrics_policy(lyrics_tools, max_iterations=-1, quality_threshold=7.0)

    def test_missing_improve_tool(self, state, song_structure, weak_evaluation):
        """Test an unbound tool is a configuration error."""
        tools = ToolRegistry([GenerateSongStructureTool(Backend.SAMPLE), EvaluateLyricsTool(Backend.SAMPLE)])
        policy = create_lyrics_policy(tools, max_iterations=3, quality_threshold=7.0)
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, weak_evaluation)

        with pytest.raises(ConfigurationError, match="Tool not found: improve-lyrics"):
            policy.decide(state)
        assert state.get(ITERATION_COUNT) is None


class TestThresholds:
    """needsImprovement drives branching; the threshold is inclusive."""

    @pytest.mark.parametrize("quality,acceptable", [(7.0, True), (6.9, False), (7.1, True)])
    def test_lyrics_boundary(self, lyrics_policy, quality, acceptable):
        """Test the 7.0 lyrics threshold is inclusive."""
        assert lyrics_policy.is_acceptable({"quality": quality}) is acceptable

    @pytest.mark.parametrize("quality,acceptable", [(8.5, True), (8.4, False)])
    def test_melody_boundary(self, melody_policy, quality, acceptable):
        """Test the 8.5 melody threshold is inclusive."""
        assert melody_policy.is_acceptable({"quality": quality}) is acceptable

    def test_evaluator_flag_wins_above_threshold(self, lyrics_policy, state, song_structure):
        """Test needsImprovement=True at 7.0 still improves."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, _evaluation(7.0, True))

        step = lyrics_policy.decide(state)
        assert step.actions[0].tool_id == "improve-lyrics"

    def test_evaluator_flag_wins_below_threshold(self, lyrics_policy, state, song_structure):
        """Test needsImprovement=False at 6.9 terminates with a note."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EVALUATION, _evaluation(6.9, False))

        step = lyrics_policy.decide(state)

        assert step.is_terminal
        assert step.plan.reasoning == "Quality 6.9/10 is acceptable (evaluator accepted below threshold 7)"

    def test_melody_at_threshold(self, melody_policy, state, song_structure, melody_structure):
        """Test 8.5 without improvement request is plainly acceptable."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(MELODY_STRUCTURE, melody_structure)
        state.set(EVALUATION, _evaluation(8.5, False))

        assert melody_policy.decide(state).plan.reasoning == "Quality 8.5/10 is acceptable"


class TestMelodyPolicy:
    """Tests for the melody decision tree."""

    def test_generate_with_context(self, melody_policy, state, song_structure):
        """Test generation input carries the song and its context."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EMOTION, "sad")
        state.set(MOOD, "melancholic")
        state.set(TEMPO, 72)

        step = melody_policy.decide(state)

        assert melody_policy.id == MELODY_AGENT_ID
        assert step.actions[0].tool_id == "generate-melody"
        assert step.actions[0].input == {
            SONG_STRUCTURE: song_structure,
            EMOTION: "sad",
            MOOD: "melancholic",
            TEMPO: 72,
        }

    def test_missing_mood(self, melody_policy, state, song_structure):
        """Test emotion and mood are required."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(EMOTION, "sad")

        with pytest.raises(ConfigurationError, match="Emotion and mood are required"):
            melody_policy.decide(state)

    def test_missing_song(self, melody_policy, state):
        """Test a melody run without a song cannot start."""
        state.set(EMOTION, "sad")
        state.set(MOOD, "melancholic")

        with pytest.raises(ConfigurationError, match="No input to generate a melody structure from"):
            melody_policy.decide(state)

    def test_evaluate_includes_song(self, melody_policy, state, song_structure, melody_structure):
        """Test melody evaluation sees the lyrics too."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(MELODY_STRUCTURE, melody_structure)

        step = melody_policy.decide(state)

        assert step.actions[0].tool_id == "evaluate-melody"
        assert step.actions[0].input[SONG_STRUCTURE] == song_structure

    def test_improve(self, melody_policy, state, song_structure, melody_structure):
        """Test an 8.0 melody is sent for improvement."""
        state.set(SONG_STRUCTURE, song_structure)
        state.set(MELODY_STRUCTURE, melody_structure)
        state.set(EVALUATION, _evaluation(8.0, True))

        step = melody_policy.decide(state)

        assert step.actions[0].tool_id == "improve-melody"
        assert set(step.actions[0].input) == {MELODY_STRUCTURE, EVALUATION, SONG_STRUCTURE}
