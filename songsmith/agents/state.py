"""
Run State Schema for Songsmith.

Pydantic models exchanged between the decision policy and the control loop:
- Plan / Action / AgentStep: what the policy decided
- Observation / Reflection: what the loop saw after acting
- ProgressUpdate: observational notifications for the progress hook
- RunResult: what a run returns to its caller (never a bare exception)
"""

from typing import List, Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from songsmith.core.trace import TraceEvent


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# POLICY OUTPUT
# ============================================================================

class Plan(_CamelModel):
    """
    Attributes:
        steps: Short human-readable steps.
        reasoning: Why this step (or why termination).
    """
    steps: List[str] = Field(default_factory=list, description="Planned steps")
    reasoning: str = Field(..., description="Why this step or termination")


class Action(_CamelModel):
    tool_id: str = Field(..., description="Tool to invoke")
    input: Any = Field(None, description="Raw tool input")


class Observation(_CamelModel):
    action_id: str = Field(..., description="Tool id the observation belongs to")
    output: Any = Field(None, description="Committed output")
    success: bool = Field(..., description="Whether a value was committed")
    error: Optional[str] = Field(None, description="Failure message")


class Reflection(_CamelModel):
    """
    Attributes:
        should_continue: Keep looping.
        reasoning: Human-readable explanation.
        next_step: Expected next role (evaluate / improve), when continuing.
        reason: Machine-readable terminal reason (quality_acceptable, max_iterations, ...).
    """
    should_continue: bool = Field(..., description="Keep looping")
    reasoning: str = Field(..., description="Explanation")
    next_step: Optional[str] = Field(None, description="Expected next role")
    reason: Optional[str] = Field(None, description="Machine-readable reason")


class AgentStep(_CamelModel):
    """
    One policy decision.

    Exactly zero actions (terminate) or exactly one action (invoke one tool).
    """
    plan: Plan
    actions: List[Action] = Field(default_factory=list)
    observations: List[Observation] = Field(default_factory=list)
    reflection: Optional[Reflection] = None

    @property
    def is_terminal(self) -> bool:
        return not self.actions


# ============================================================================
# PROGRESS + RESULT
# ============================================================================

ProgressPhase = Literal["planning", "acting", "observing", "reflecting", "tool_call", "complete", "error"]


class ProgressUpdate(_CamelModel):
    phase: ProgressPhase = Field(..., description="Loop phase")
    message: str = Field(..., description="Short human-readable message")
    tool_id: Optional[str] = Field(None, description="Tool involved")
    iteration_count: Optional[int] = Field(None, description="Improvement cycles so far")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RunResult(_CamelModel):
    """
    Outcome of one control-loop run.

    Attributes:
        success: Whether the run reached a terminal policy decision.
        final_state: Snapshot of the state store artifacts.
        trace: Every trace event recorded, in order.
        error: Failure message when success is False.
    """
    success: bool
    final_state: Dict[str, Any] = Field(default_factory=dict)
    trace: List[TraceEvent] = Field(default_factory=list)
    error: Optional[str] = None

    def trace_dicts(self) -> List[Dict[str, Any]]:
        return [event.model_dump(by_alias=True, exclude_none=True) for event in self.trace]


__all__ = [
    "Plan",
    "Action",
    "Observation",
    "Reflection",
    "AgentStep",
    "ProgressPhase",
    "ProgressUpdate",
    "RunResult",
]
