"""
Tests for songsmith/tools/base.py - Validated Tool Contract.

Tests:
- Input validation happens before any work
- Output validation of the work result
- ToolKind metadata (roles, state keys, approval eligibility)
- Live backend construction requirements
- Model failures surface as ToolWorkError
"""

from typing import Any, Dict
from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from songsmith.core.llm_client import LLMError
from songsmith.core.state_store import EVALUATION, MELODY_STRUCTURE, SONG_STRUCTURE
from songsmith.tools.base import (
    Backend,
    ToolKind,
    ToolRole,
    ToolValidationError,
    ToolWorkError,
    ValidatedTool,
)
from songsmith.tools.lyrics import EvaluateLyricsTool


class EchoInput(BaseModel):
    value: int


class EchoOutput(BaseModel):
    doubled: int


class EchoTool(ValidatedTool):
    """Doubles its input; returns a configurable result instead when set."""
    kind = ToolKind.EVALUATE_LYRICS
    name = "Echo"
    description = "Test tool"
    input_model = EchoInput
    output_model = EchoOutput

    def __init__(self, result: Any = None):
        super().__init__(Backend.SAMPLE)
        self.result = result
        self.calls = 0

    async def _execute(self, parsed_input: EchoInput) -> Dict[str, Any]:
        self.calls += 1
        if self.result is not None:
            return self.result
        return {"doubled": parsed_input.value * 2}


class TestValidatedTool:
    """Tests for the validate -> work -> validate contract."""

    @pytest.mark.asyncio
    async def test_valid_round(self):
        """Test valid input produces validated output."""
        assert await EchoTool().execute({"value": 4}) == {"doubled": 8}

    @pytest.mark.asyncio
    async def test_invalid_input_skips_work(self):
        """Test work never runs when input fails validation."""
        tool = EchoTool()

        with pytest.raises(ToolValidationError) as exc_info:
            await tool.execute({"value": "four"})

        assert tool.calls == 0
        assert str(exc_info.value).startswith("Tool Echo validation error: invalid input")

    @pytest.mark.asyncio
    async def test_invalid_output(self):
        """Test malformed work results are rejected."""
        tool = EchoTool(result={"tripled": 12})

        with pytest.raises(ToolValidationError, match="invalid output"):
            await tool.execute({"value": 4})
        assert tool.calls == 1

    @pytest.mark.asyncio
    async def test_accepts_model_input(self):
        """Test pydantic model input is dumped before validation."""
        assert await EchoTool().execute(EchoInput(value=1)) == {"doubled": 2}


class TestToolKind:
    """Tests for ToolKind metadata."""

    @pytest.mark.parametrize("kind,role,key", [
        (ToolKind.GENERATE_SONG_STRUCTURE, ToolRole.GENERATE, SONG_STRUCTURE),
        (ToolKind.EVALUATE_LYRICS, ToolRole.EVALUATE, EVALUATION),
        (ToolKind.IMPROVE_LYRICS, ToolRole.IMPROVE, SONG_STRUCTURE),
        (ToolKind.GENERATE_MELODY, ToolRole.GENERATE, MELODY_STRUCTURE),
        (ToolKind.EVALUATE_MELODY, ToolRole.EVALUATE, EVALUATION),
        (ToolKind.IMPROVE_MELODY, ToolRole.IMPROVE, MELODY_STRUCTURE),
    ])
    def test_role_and_state_key(self, kind, role, key):
        """Test each kind's role and committed key."""
        assert kind.role is role
        assert kind.state_key == key

    def test_evaluators_are_not_content_producing(self):
        """Test only generate/improve outputs go to approval."""
        assert ToolKind.GENERATE_MELODY.content_producing is True
        assert ToolKind.IMPROVE_LYRICS.content_producing is True
        assert ToolKind.EVALUATE_LYRICS.content_producing is False

    def test_improve_clears_evaluation(self):
        """Test improvement invalidates the stale evaluation."""
        assert ToolKind.IMPROVE_MELODY.clears_key == EVALUATION
        assert ToolKind.GENERATE_SONG_STRUCTURE.clears_key is None

    def test_parse(self):
        """Test parsing public ids."""
        assert ToolKind.parse("evaluate-melody") is ToolKind.EVALUATE_MELODY
        assert ToolKind.parse("write-poem") is None


class TestModelBackedTool:
    """Tests for the live backend."""

    def test_live_requires_client(self):
        """Test live tools need a client and a model."""
        with pytest.raises(ValueError, match="live backend requires"):
            EvaluateLyricsTool(Backend.LIVE)

    @pytest.mark.asyncio
    async def test_model_failure_is_work_error(self, song_structure):
        """Test LLMError is wrapped in ToolWorkError."""
        client = MagicMock()
        client.generate_json.side_effect = LLMError("Invalid OpenAI API key")
        tool = EvaluateLyricsTool(Backend.LIVE, client, "gpt-4o-mini")

        with pytest.raises(ToolWorkError) as exc_info:
            await tool.execute({"songStructure": song_structure})

        assert str(exc_info.value) == "Tool EvaluateLyrics failed: Invalid OpenAI API key"

    @pytest.mark.asyncio
    async def test_live_output_is_validated(self, song_structure):
        """Test model replies go through output validation."""
        client = MagicMock()
        client.generate_json.return_value = {"quality": 42, "needsImprovement": False}
        tool = EvaluateLyricsTool(Backend.LIVE, client, "gpt-4o-mini")

        with pytest.raises(ToolValidationError, match="quality"):
            await tool.execute({"songStructure": song_structure})

    @pytest.mark.asyncio
    async def test_live_call_uses_configured_model(self, song_structure):
        """Test the configured model and critic prompt are used."""
        client = MagicMock()
        client.generate_json.return_value = {"quality": 8.0, "needsImprovement": False}
        tool = EvaluateLyricsTool(Backend.LIVE, client, "claude-sonnet-4-20250514")

        output = await tool.execute({"songStructure": song_structure})

        assert output["quality"] == 8.0
        args = client.generate_json.call_args.args
        assert args[0] == "claude-sonnet-4-20250514"
        assert "Sad Song" in args[2]
