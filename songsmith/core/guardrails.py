"""
Run Guardrails for Songsmith.

Enforces:
- Plan-phase budget (max_steps)
- Tool-invocation budget (max_tool_calls)
- Improvement-cycle budget (max_iterations, consulted by the decision policy)

Also defines the run-fatal error taxonomy. Every error here terminates a run
as success=False; per-tool failures (validation, work) live in songsmith.tools.base
and are absorbed into observations instead.
"""

import logging
from typing import Dict, Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ============================================================================
# ERRORS
# ============================================================================

class OrchestrationError(Exception):
    """Base class for errors that terminate a run."""
    pass


class GuardrailError(OrchestrationError):
    """Raised when a step or tool-call budget is exhausted."""
    pass


class ConfigurationError(OrchestrationError):
    """Raised when a run references a missing tool or lacks required context."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

class GuardrailConfig(BaseModel):
    """
    Hard numeric limits for one run.

    All fields are required: the control loop assumes no defaults.

    Attributes:
        max_steps: Plan-phase budget.
        max_tool_calls: Tool-invocation budget.
        max_iterations: Improvement-cycle budget (used by the policy).
    """
    max_steps: int = Field(..., ge=1, description="Maximum number of plan phases")
    max_tool_calls: int = Field(..., ge=0, description="Maximum number of tool invocations")
    max_iterations: int = Field(..., ge=0, description="Maximum number of improvement cycles")

    @classmethod
    def from_settings(cls, limits: Dict[str, Any]) -> "GuardrailConfig":
        """
        Build from a settings guardrail block (extra keys are ignored).

        Example:
            >>> GuardrailConfig.from_settings(settings.get_guardrails("lyrics"))
            GuardrailConfig(max_steps=20, max_tool_calls=15, max_iterations=3)
        """
        return cls(
            max_steps=limits["max_steps"],
            max_tool_calls=limits["max_tool_calls"],
            max_iterations=limits["max_iterations"],
        )


def check_tool_call_budget(tool_calls_made: int, config: GuardrailConfig) -> None:
    """
    Validate that another tool call fits in the budget.

    Args:
        tool_calls_made: Tool invocations already made in this run.
        config: Guardrail configuration.

    Raises:
        GuardrailError: If the budget is exhausted.
    """
    if tool_calls_made >= config.max_tool_calls:
        logger.warning(f"Tool call budget exhausted ({tool_calls_made}/{config.max_tool_calls})")
        raise GuardrailError(f"Max tool calls ({config.max_tool_calls}) exceeded")


__all__ = [
    "OrchestrationError",
    "GuardrailError",
    "ConfigurationError",
    "GuardrailConfig",
    "check_tool_call_budget",
]
