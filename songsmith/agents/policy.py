"""
Decision Policy for Songsmith.

One generic policy drives both workflows. Each call looks at the current state
and returns an AgentStep with either zero actions (terminate) or exactly one
action (invoke one tool). Priority order, evaluated fresh on every call:

1. No draft yet, input present -> generate
2. Draft present, no evaluation -> evaluate
3. Evaluation says needsImprovement and iterationCount < max_iterations
   -> bump iterationCount, improve (carrying pending userFeedback), clear userFeedback
4. Otherwise -> terminate (quality acceptable, or iteration budget exhausted)

The policy is a function of state only, so a run resumed with a draft and an
evaluation already present goes straight to step 3/4.

The evaluation's needsImprovement flag decides branching. quality_threshold
only picks the reasoning text and backs is_acceptable().
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from songsmith.agents.artifacts import Evaluation
from songsmith.agents.brief import create_creative_brief
from songsmith.agents.state import Action, AgentStep, Plan
from songsmith.core.guardrails import ConfigurationError
from songsmith.core.state_store import (
    StateStore,
    INITIAL_INPUT,
    CREATIVE_BRIEF,
    SONG_STRUCTURE,
    MELODY_STRUCTURE,
    EVALUATION,
    ITERATION_COUNT,
    USER_FEEDBACK,
    EMOTION,
    MOOD,
    TEMPO,
    KEY,
    TIME_SIGNATURE,
)
from songsmith.core.trace import Trace
from songsmith.tools.base import ToolKind
from songsmith.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

LYRICS_AGENT_ID = "lyrics-agent"
MELODY_AGENT_ID = "melody-agent"

# Builders return None when there is nothing to generate from.
GenerateInputBuilder = Callable[[StateStore], Optional[Dict[str, Any]]]
EvaluateInputBuilder = Callable[[StateStore, Dict[str, Any]], Dict[str, Any]]
ImproveInputBuilder = Callable[[StateStore, Dict[str, Any], Dict[str, Any], Optional[str]], Dict[str, Any]]


# ============================================================================
# WORKFLOW DEFINITION
# ============================================================================

@dataclass(frozen=True)
class WorkflowDefinition:
    """
    What varies between the lyrics and melody workflows.

    Attributes:
        agent_id: Id recorded on trace events.
        generate / evaluate / improve: Tool kinds for each role.
        draft_label: Human-readable draft name for reasoning text.
        build_generate_input: state -> generate input (None when no input).
        build_evaluate_input: (state, draft) -> evaluate input.
        build_improve_input: (state, draft, evaluation, feedback) -> improve input.
        generate_reasoning / evaluate_reasoning: Plan reasoning text.
        required_context: State keys that must be set before generating.
    """
    agent_id: str
    generate: ToolKind
    evaluate: ToolKind
    improve: ToolKind
    draft_label: str
    build_generate_input: GenerateInputBuilder
    build_evaluate_input: EvaluateInputBuilder
    build_improve_input: ImproveInputBuilder
    generate_reasoning: str
    evaluate_reasoning: str
    required_context: Tuple[str, ...] = field(default_factory=tuple)
    missing_context_message: str = "Required context is missing"

    @property
    def draft_key(self) -> str:
        return self.generate.state_key

    @property
    def kinds(self) -> Tuple[ToolKind, ToolKind, ToolKind]:
        return (self.generate, self.evaluate, self.improve)


def _format_quality(quality: float) -> str:
    return f"{quality:g}"


# ============================================================================
# DECISION POLICY
# ============================================================================

class DecisionPolicy:
    """
    Generic generate -> evaluate -> improve decision tree.

    The policy never calls a tool. It returns the intended action and leaves
    execution to the orchestrator.

    Example:
        >>> policy = create_lyrics_policy(tools, max_iterations=3, quality_threshold=7.0)
        >>> step = await policy.execute(StateStore({"initialInput": {"lyrics": "x", "emotion": "sad"}}))
        >>> step.actions[0].tool_id
        'generate-song-structure'
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        tools: ToolRegistry,
        *,
        max_iterations: int,
        quality_threshold: float,
    ):
        if max_iterations < 0:
            raise ValueError(f"max_iterations must be >= 0, got {max_iterations}")

        self.definition = definition
        self.tools = tools
        self.max_iterations = max_iterations
        self.quality_threshold = quality_threshold

    @property
    def id(self) -> str:
        return self.definition.agent_id

    @property
    def draft_key(self) -> str:
        return self.definition.draft_key

    def is_acceptable(self, evaluation: Dict[str, Any]) -> bool:
        """Score-only check: quality >= quality_threshold (inclusive)."""
        return float(evaluation.get("quality", 0.0)) >= self.quality_threshold

    def get_tool(self, kind: ToolKind):
        """
        Resolve a tool bound to this policy.

        Raises:
            ConfigurationError: If the tool is not registered.
        """
        tool = self.tools.for_kind(kind)
        if tool is None:
            raise ConfigurationError(f"Tool not found: {kind.value}")
        return tool

    async def execute(self, state: StateStore, trace: Optional[Trace] = None) -> AgentStep:
        """
        Decide the next step from current state.

        Args:
            state: Run state store (may be mutated: brief, iterationCount, userFeedback).
            trace: Run trace (unused by the decision tree; part of the policy contract).

        Raises:
            ConfigurationError: Missing tool, missing input or missing generation context.
        """
        return self.decide(state)

    def decide(self, state: StateStore) -> AgentStep:
        definition = self.definition
        draft = state.get(definition.draft_key)
        evaluation = state.get(EVALUATION)

        # 1. Initial generation
        if draft is None:
            missing = [key for key in definition.required_context if not state.get(key)]
            generate_input = definition.build_generate_input(state)
            if generate_input is not None:
                if missing:
                    raise ConfigurationError(definition.missing_context_message)
                tool = self.get_tool(definition.generate)
                return self._act(tool.name, definition.generate, generate_input, definition.generate_reasoning)
            raise ConfigurationError(f"No input to generate a {definition.draft_label.lower()} from")

        # 2. Evaluation
        if evaluation is None:
            tool = self.get_tool(definition.evaluate)
            return self._act(
                tool.name,
                definition.evaluate,
                definition.build_evaluate_input(state, draft),
                definition.evaluate_reasoning,
            )

        parsed = Evaluation.model_validate(evaluation)
        quality = _format_quality(parsed.quality)
        iteration_count = state.get(ITERATION_COUNT) or 0

        if parsed.needs_improvement and self.is_acceptable(evaluation):
            logger.info(
                f"{self.id}: evaluator asks for improvement at {quality}/10 "
                f"(threshold {self.quality_threshold:g}); following the evaluator"
            )
        elif not parsed.needs_improvement and not self.is_acceptable(evaluation):
            logger.info(
                f"{self.id}: evaluator accepts {quality}/10 below threshold {self.quality_threshold:g}"
            )

        # 3. Improvement
        if parsed.needs_improvement and iteration_count < self.max_iterations:
            tool = self.get_tool(definition.improve)
            iteration_count += 1
            state.set(ITERATION_COUNT, iteration_count)

            feedback = state.get(USER_FEEDBACK)
            reasoning = (
                f"Quality {quality}/10 needs improvement. "
                f"Attempting improvement (iteration {iteration_count}/{self.max_iterations})"
            )
            if feedback:
                reasoning += " with user feedback"

            improve_input = definition.build_improve_input(state, draft, evaluation, feedback)
            state.set(USER_FEEDBACK, None)
            return self._act(tool.name, definition.improve, improve_input, reasoning)

        # 4. Termination
        if not parsed.needs_improvement:
            if self.is_acceptable(evaluation):
                return self._terminate(f"Quality {quality}/10 is acceptable")
            return self._terminate(
                f"Quality {quality}/10 is acceptable (evaluator accepted below threshold {self.quality_threshold:g})"
            )
        return self._terminate(f"Max iterations ({self.max_iterations}) reached")

    def _act(self, tool_name: str, kind: ToolKind, tool_input: Dict[str, Any], reasoning: str) -> AgentStep:
        logger.debug(f"{self.id}: next action {kind.value}")
        return AgentStep(
            plan=Plan(steps=[tool_name], reasoning=reasoning),
            actions=[Action(tool_id=kind.value, input=tool_input)],
        )

    def _terminate(self, reasoning: str) -> AgentStep:
        logger.info(f"{self.id}: done ({reasoning})")
        return AgentStep(plan=Plan(steps=[], reasoning=reasoning), actions=[])


# ============================================================================
# LYRICS WORKFLOW
# ============================================================================

def _lyrics_generate_input(state: StateStore) -> Optional[Dict[str, Any]]:
    brief = state.get(CREATIVE_BRIEF)
    if brief is None:
        raw_input = state.get(INITIAL_INPUT)
        if not raw_input:
            return None
        brief = create_creative_brief(raw_input).to_state()
        state.set(CREATIVE_BRIEF, brief)

    generate_input = dict(brief)
    feedback = state.get(USER_FEEDBACK)
    if feedback:
        generate_input[USER_FEEDBACK] = feedback
        state.set(USER_FEEDBACK, None)
    return generate_input


def _lyrics_evaluate_input(state: StateStore, draft: Dict[str, Any]) -> Dict[str, Any]:
    return {SONG_STRUCTURE: draft}


def _lyrics_improve_input(
    state: StateStore,
    draft: Dict[str, Any],
    evaluation: Dict[str, Any],
    feedback: Optional[str],
) -> Dict[str, Any]:
    improve_input = {SONG_STRUCTURE: draft, EVALUATION: evaluation}
    if feedback:
        improve_input[USER_FEEDBACK] = feedback
    return improve_input


LYRICS_WORKFLOW = WorkflowDefinition(
    agent_id=LYRICS_AGENT_ID,
    generate=ToolKind.GENERATE_SONG_STRUCTURE,
    evaluate=ToolKind.EVALUATE_LYRICS,
    improve=ToolKind.IMPROVE_LYRICS,
    draft_label="Song structure",
    build_generate_input=_lyrics_generate_input,
    build_evaluate_input=_lyrics_evaluate_input,
    build_improve_input=_lyrics_improve_input,
    generate_reasoning="Initial song generation needed from creative brief",
    evaluate_reasoning="Song generated, need to evaluate quality before deciding on improvements",
)


def create_lyrics_policy(tools: ToolRegistry, *, max_iterations: int, quality_threshold: float) -> DecisionPolicy:
    """Policy for creative brief -> song structure -> lyrics evaluation -> improvement."""
    return DecisionPolicy(
        LYRICS_WORKFLOW,
        tools,
        max_iterations=max_iterations,
        quality_threshold=quality_threshold,
    )


# ============================================================================
# MELODY WORKFLOW
# ============================================================================

def _melody_generate_input(state: StateStore) -> Optional[Dict[str, Any]]:
    song = state.get(SONG_STRUCTURE)
    if song is None:
        return None

    generate_input = {SONG_STRUCTURE: song}
    for optional_key in (EMOTION, MOOD, TEMPO, KEY, TIME_SIGNATURE, USER_FEEDBACK):
        value = state.get(optional_key)
        if value is not None:
            generate_input[optional_key] = value
    if state.has(USER_FEEDBACK):
        state.set(USER_FEEDBACK, None)
    return generate_input


def _melody_evaluate_input(state: StateStore, draft: Dict[str, Any]) -> Dict[str, Any]:
    return {MELODY_STRUCTURE: draft, SONG_STRUCTURE: state.get(SONG_STRUCTURE)}


def _melody_improve_input(
    state: StateStore,
    draft: Dict[str, Any],
    evaluation: Dict[str, Any],
    feedback: Optional[str],
) -> Dict[str, Any]:
    improve_input = {
        MELODY_STRUCTURE: draft,
        EVALUATION: evaluation,
        SONG_STRUCTURE: state.get(SONG_STRUCTURE),
    }
    if feedback:
        improve_input[USER_FEEDBACK] = feedback
    return improve_input


MELODY_WORKFLOW = WorkflowDefinition(
    agent_id=MELODY_AGENT_ID,
    generate=ToolKind.GENERATE_MELODY,
    evaluate=ToolKind.EVALUATE_MELODY,
    improve=ToolKind.IMPROVE_MELODY,
    draft_label="Melody structure",
    build_generate_input=_melody_generate_input,
    build_evaluate_input=_melody_evaluate_input,
    build_improve_input=_melody_improve_input,
    generate_reasoning="Initial melody generation needed from song structure",
    evaluate_reasoning="Melody generated, need to evaluate quality before deciding on improvements",
    required_context=(EMOTION, MOOD),
    missing_context_message="Emotion and mood are required for melody generation",
)


def create_melody_policy(tools: ToolRegistry, *, max_iterations: int, quality_threshold: float) -> DecisionPolicy:
    """Policy for song structure -> melody -> melody evaluation -> improvement."""
    return DecisionPolicy(
        MELODY_WORKFLOW,
        tools,
        max_iterations=max_iterations,
        quality_threshold=quality_threshold,
    )


__all__ = [
    "LYRICS_AGENT_ID",
    "MELODY_AGENT_ID",
    "WorkflowDefinition",
    "DecisionPolicy",
    "LYRICS_WORKFLOW",
    "MELODY_WORKFLOW",
    "create_lyrics_policy",
    "create_melody_policy",
]
