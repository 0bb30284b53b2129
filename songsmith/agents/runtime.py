"""
Workflow Runtime for Songsmith.

Entry points that wire a complete run from settings:
- tools (live or sample backend) for the workflow
- the workflow's DecisionPolicy with its iteration budget and quality threshold
- GuardrailConfig from the settings guardrail block
- optional approval gate and progress callback

Usage:
    from songsmith.agents.runtime import run_lyrics_workflow, run_melody_workflow

    result = await run_lyrics_workflow({"lyrics": "...", "emotion": "sad"})
    melody = await run_melody_workflow(result.song_structure, "sad", "melancholic")

The core (Orchestrator, DecisionPolicy) never reads settings; this module is
the only place that turns configuration into explicit limits.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from songsmith.agents.orchestrator import ApprovalHook, Orchestrator, ProgressCallback
from songsmith.agents.policy import create_lyrics_policy, create_melody_policy
from songsmith.agents.state import RunResult
from songsmith.core.guardrails import GuardrailConfig
from songsmith.core.settings import SettingsManager, get_settings_manager
from songsmith.core.state_store import (
    StateStore,
    CREATIVE_BRIEF,
    SONG_STRUCTURE,
    MELODY_STRUCTURE,
    EVALUATION,
    ITERATION_COUNT,
    EMOTION,
    MOOD,
    TEMPO,
    KEY,
    TIME_SIGNATURE,
)
from songsmith.core.trace import TraceEvent
from songsmith.tools.registry import ToolRegistry, build_tools_from_settings

logger = logging.getLogger(__name__)


# ============================================================================
# RESULT
# ============================================================================

class WorkflowResult(BaseModel):
    """
    RunResult plus the artifacts callers care about.

    Attributes:
        success: Whether the run finished without a fatal error.
        error: Failure message.
        creative_brief: Brief derived for a lyrics run.
        song_structure: Final song (lyrics run output, melody run input).
        melody_structure: Final melody (melody run).
        evaluation: Last evaluation, if it survived the final step.
        iteration_count: Improvement cycles performed.
        trace: Full execution trace.
    """
    success: bool
    error: Optional[str] = None
    creative_brief: Optional[Dict[str, Any]] = None
    song_structure: Optional[Dict[str, Any]] = None
    melody_structure: Optional[Dict[str, Any]] = None
    evaluation: Optional[Dict[str, Any]] = None
    iteration_count: int = 0
    trace: List[TraceEvent] = Field(default_factory=list)

    @classmethod
    def from_run(cls, result: RunResult) -> "WorkflowResult":
        state = result.final_state
        return cls(
            success=result.success,
            error=result.error,
            creative_brief=state.get(CREATIVE_BRIEF),
            song_structure=state.get(SONG_STRUCTURE),
            melody_structure=state.get(MELODY_STRUCTURE),
            evaluation=state.get(EVALUATION),
            iteration_count=state.get(ITERATION_COUNT) or 0,
            trace=result.trace,
        )

    def trace_dicts(self) -> List[Dict[str, Any]]:
        return [event.model_dump(by_alias=True, exclude_none=True) for event in self.trace]

    def lyrics_payload(self) -> Dict[str, Any]:
        """Wire shape of a lyrics result."""
        return {
            "success": self.success,
            "creativeBrief": self.creative_brief,
            "songStructure": self.song_structure,
            "evaluation": self.evaluation,
            "iterationCount": self.iteration_count,
            "trace": self.trace_dicts(),
        }

    def melody_payload(self) -> Dict[str, Any]:
        """Wire shape of a melody result."""
        return {
            "success": self.success,
            "melodyStructure": self.melody_structure,
            "evaluation": self.evaluation,
            "iterationCount": self.iteration_count,
            "trace": self.trace_dicts(),
        }


# ============================================================================
# LYRICS
# ============================================================================

def build_lyrics_orchestrator(
    settings: SettingsManager,
    tools: Optional[ToolRegistry] = None,
    approval_gate: Optional[ApprovalHook] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Orchestrator:
    limits = settings.get_guardrails("lyrics")
    guardrails = GuardrailConfig.from_settings(limits)
    tools = tools if tools is not None else build_tools_from_settings("lyrics", settings)

    policy = create_lyrics_policy(
        tools,
        max_iterations=guardrails.max_iterations,
        quality_threshold=limits["quality_threshold"],
    )
    return Orchestrator(policy, guardrails, approval_gate=approval_gate, on_progress=on_progress)


async def run_lyrics_workflow(
    request: Dict[str, Any],
    *,
    settings: Optional[SettingsManager] = None,
    tools: Optional[ToolRegistry] = None,
    approval_gate: Optional[ApprovalHook] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> WorkflowResult:
    """
    Run the lyrics workflow: brief -> song -> evaluation -> improvements.

    Args:
        request: {"lyrics", "emotion", "genre"?, "language"?}.
        settings: Settings manager (defaults to the global one).
        tools: Prebuilt tool registry (defaults to tools built from settings).
        approval_gate: Optional approval hook for generated/improved songs.
        on_progress: Optional progress callback.

    Returns:
        WorkflowResult (never raises for run failures).
    """
    settings = settings or get_settings_manager()
    orchestrator = build_lyrics_orchestrator(settings, tools, approval_gate, on_progress)

    logger.info(f"Starting lyrics workflow (emotion={request.get('emotion')!r})")
    result = await orchestrator.run(request)
    return WorkflowResult.from_run(result)


# ============================================================================
# MELODY
# ============================================================================

def build_melody_orchestrator(
    settings: SettingsManager,
    tools: Optional[ToolRegistry] = None,
    approval_gate: Optional[ApprovalHook] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Orchestrator:
    limits = settings.get_guardrails("melody")
    guardrails = GuardrailConfig.from_settings(limits)
    tools = tools if tools is not None else build_tools_from_settings("melody", settings)

    policy = create_melody_policy(
        tools,
        max_iterations=guardrails.max_iterations,
        quality_threshold=limits["quality_threshold"],
    )
    return Orchestrator(policy, guardrails, approval_gate=approval_gate, on_progress=on_progress)


async def run_melody_workflow(
    song_structure: Dict[str, Any],
    emotion: str,
    mood: str,
    *,
    tempo: Optional[int] = None,
    key: Optional[str] = None,
    time_signature: Optional[str] = None,
    settings: Optional[SettingsManager] = None,
    tools: Optional[ToolRegistry] = None,
    approval_gate: Optional[ApprovalHook] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> WorkflowResult:
    """
    Run the melody workflow over an existing song.

    The state store is pre-seeded with the song and its context; the run's
    initial input is an empty record.

    Example:
        >>> result = await run_melody_workflow(song, "sad", "melancholic", tempo=72)
        >>> result.melody_structure["key"]
        'A minor'
    """
    settings = settings or get_settings_manager()
    orchestrator = build_melody_orchestrator(settings, tools, approval_gate, on_progress)

    state = StateStore({
        SONG_STRUCTURE: song_structure,
        EMOTION: emotion,
        MOOD: mood,
        TEMPO: tempo,
        KEY: key,
        TIME_SIGNATURE: time_signature,
    })

    logger.info(f"Starting melody workflow (emotion={emotion!r}, mood={mood!r})")
    result = await orchestrator.run({}, state=state)
    return WorkflowResult.from_run(result)


__all__ = [
    "WorkflowResult",
    "build_lyrics_orchestrator",
    "build_melody_orchestrator",
    "run_lyrics_workflow",
    "run_melody_workflow",
]
