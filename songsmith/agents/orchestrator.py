"""
Orchestrator (control loop) for Songsmith.

Runs one workflow to completion under guardrails:

    init -> [plan -> act -> observe -> reflect] * N -> result

- plan: ask the DecisionPolicy for the next step (zero or one action)
- act: enforce the tool-call budget and allow-list, execute the tool, route
  content-producing output through the optional approval gate, commit to state
- observe: read committed values back from state
- reflect: decide from state whether another step is worth taking

Per-tool failures (ToolValidationError, ToolWorkError) become failed
observations and the loop carries on. Guardrail breaches, approval
rejections/timeouts, configuration errors and unexpected exceptions end the
run with success=False. run() never raises: the caller always gets a RunResult
carrying the trace accumulated so far.

Per-run counters live in a RunContext created by run(); the orchestrator itself
keeps no mutable run state, so one instance can serve sequential runs.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union

from songsmith.agents.artifacts import Evaluation
from songsmith.agents.policy import DecisionPolicy
from songsmith.agents.state import (
    Action,
    AgentStep,
    Observation,
    ProgressPhase,
    ProgressUpdate,
    Reflection,
    RunResult,
)
from songsmith.core.approval import ApprovalDecision, ApprovalRejectedError
from songsmith.core.guardrails import (
    ConfigurationError,
    GuardrailConfig,
    GuardrailError,
    OrchestrationError,
    check_tool_call_budget,
)
from songsmith.core.state_store import (
    StateStore,
    INITIAL_INPUT,
    EVALUATION,
    ITERATION_COUNT,
    USER_FEEDBACK,
)
from songsmith.core.trace import Trace, create_trace_event
from songsmith.tools.base import ToolError, ToolKind, ValidatedTool

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], Union[None, Awaitable[None]]]
ApprovalHook = Callable[[str, Any], Awaitable[Union[ApprovalDecision, Dict[str, Any]]]]

REJECTED_MESSAGE = "Content generation rejected by approval gate"


@dataclass
class RunContext:
    """Mutable counters for a single run."""
    steps_taken: int = 0
    tool_calls_made: int = 0


class Orchestrator:
    """
    Guardrailed plan/act/observe/reflect loop around one DecisionPolicy.

    Example:
        >>> orchestrator = Orchestrator(
        ...     policy=create_lyrics_policy(tools, max_iterations=3, quality_threshold=7.0),
        ...     guardrails=GuardrailConfig(max_steps=20, max_tool_calls=15, max_iterations=3),
        ... )
        >>> result = await orchestrator.run({"lyrics": "text", "emotion": "sad"})
        >>> result.final_state["iterationCount"]
        1
    """

    def __init__(
        self,
        policy: DecisionPolicy,
        guardrails: GuardrailConfig,
        allowed_tools: Optional[Sequence[str]] = None,
        approval_gate: Optional[ApprovalHook] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            policy: Decision policy already bound to its tools.
            guardrails: Step, tool-call and iteration budgets.
            allowed_tools: Tool ids the loop may call (defaults to the policy's three kinds).
            approval_gate: Async (tool_id, output) -> decision hook for content-producing tools.
            on_progress: Observational callback (sync or async); failures are logged and ignored.
        """
        self.policy = policy
        self.guardrails = guardrails
        if allowed_tools is None:
            allowed_tools = [kind.value for kind in policy.definition.kinds]
        self.allowed_tools = frozenset(allowed_tools)
        self.approval_gate = approval_gate
        self.on_progress = on_progress

    # ========================================================================
    # RUN
    # ========================================================================

    async def run(
        self,
        initial_input: Any,
        state: Optional[StateStore] = None,
        trace: Optional[Trace] = None,
    ) -> RunResult:
        """
        Execute the loop until a terminal decision or a fatal error.

        Args:
            initial_input: Opaque record stored under initialInput.
            state: Optional pre-seeded state store (not cleared).
            trace: Optional trace to append to.

        Returns:
            RunResult with success flag, final state snapshot, trace and error.
        """
        state = state if state is not None else StateStore()
        trace = trace if trace is not None else Trace()
        context = RunContext()

        state.set(INITIAL_INPUT, initial_input)
        logger.info(
            f"Run started: {self.policy.id} "
            f"(max_steps={self.guardrails.max_steps}, max_tool_calls={self.guardrails.max_tool_calls})"
        )
        await self._notify("planning", "Initializing agent...", state=state)

        try:
            while context.steps_taken < self.guardrails.max_steps:
                context.steps_taken += 1
                step_number = context.steps_taken

                # Plan
                await self._notify("planning", f"Step {step_number}: Planning next action...", state=state)
                step = await self.policy.execute(state, trace)
                trace.add(create_trace_event(
                    "plan",
                    agent_id=self.policy.id,
                    output=step.plan.model_dump(by_alias=True),
                    metadata={"step": step_number},
                ))

                if step.is_terminal:
                    reasoning = step.plan.reasoning
                    trace.add(create_trace_event(
                        "agent_step",
                        agent_id=self.policy.id,
                        output={"plan": step.plan.model_dump(by_alias=True)},
                        metadata={"reason": reasoning},
                    ))
                    return await self._succeed(state, trace, reasoning)

                # Act
                await self._notify("acting", f"Executing {len(step.actions)} action(s)...", state=state)
                trace.add(create_trace_event(
                    "act",
                    agent_id=self.policy.id,
                    input=[action.model_dump(by_alias=True) for action in step.actions],
                ))
                observations = []
                for action in step.actions:
                    observations.append(await self._act(action, state, trace, context))

                # Observe
                await self._notify("observing", "Observing results...", state=state)
                for observation in observations:
                    trace.add(create_trace_event(
                        "observe",
                        agent_id=self.policy.id,
                        tool_id=observation.action_id,
                        output=observation.output,
                        error=observation.error,
                        metadata={"success": observation.success},
                    ))
                step.observations = observations

                # Reflect
                await self._notify(
                    "reflecting",
                    f"Evaluating progress... (Iteration {state.get(ITERATION_COUNT) or 0}/{self.policy.max_iterations})",
                    state=state,
                )
                reflection = self._reflect(state)
                step.reflection = reflection
                trace.add(create_trace_event(
                    "reflect",
                    agent_id=self.policy.id,
                    output=reflection.model_dump(by_alias=True, exclude_none=True),
                ))
                trace.add(self._step_event(step))

                if not reflection.should_continue:
                    await self._notify("reflecting", f"Goal achieved: {reflection.reasoning}", state=state)
                    return await self._succeed(state, trace, reflection.reasoning)

                await self._notify("reflecting", f"Continuing: {reflection.reasoning}", state=state)

            raise GuardrailError(f"Max steps ({self.guardrails.max_steps}) exceeded")

        except OrchestrationError as e:
            logger.warning(f"Run failed: {e}")
            return await self._fail(state, trace, str(e))
        except Exception as e:
            logger.error(f"Run crashed: {e}", exc_info=True)
            return await self._fail(state, trace, f"Unexpected error: {e}")

    # ========================================================================
    # ACT
    # ========================================================================

    async def _act(self, action: Action, state: StateStore, trace: Trace, context: RunContext) -> Observation:
        """
        Run one action and commit its output.

        Raises:
            GuardrailError: Tool-call budget exhausted.
            ConfigurationError: Allowed tool id not bound to the policy.
            ApprovalRejectedError / ApprovalTimeoutError: Approval gate veto.
        """
        check_tool_call_budget(context.tool_calls_made, self.guardrails)

        kind = ToolKind.parse(action.tool_id)
        if kind is None or action.tool_id not in self.allowed_tools:
            logger.warning(f"Tool not allowed: {action.tool_id}")
            return Observation(
                action_id=action.tool_id,
                success=False,
                error=f"Tool {action.tool_id} is not allowed",
            )

        tool = self.policy.tools.get(action.tool_id)
        if tool is None:
            raise ConfigurationError(f"Tool not found: {action.tool_id}")

        await self._notify("tool_call", f"Running: {kind.display_name}...", tool_id=kind.value, state=state)

        try:
            output = await self._invoke_tool(tool, action.input, trace, context)
            if self.approval_gate is not None and kind.content_producing:
                output = await self._request_approval(tool, kind, action.input, output, state, trace, context)
        except ToolError as e:
            logger.warning(f"Tool {kind.value} failed: {e}")
            return Observation(action_id=kind.value, success=False, error=str(e))

        await self._notify("tool_call", f"Capturing output from {kind.display_name}...", tool_id=kind.value, state=state)
        state.set(kind.state_key, output)
        if kind.clears_key:
            state.set(kind.clears_key, None)

        await self._notify("tool_call", f"Completed: {kind.display_name}", tool_id=kind.value, state=state)

        committed = state.get(kind.state_key)
        return Observation(action_id=kind.value, output=committed, success=committed is not None)

    async def _invoke_tool(
        self,
        tool: ValidatedTool,
        tool_input: Any,
        trace: Trace,
        context: RunContext,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a tool between a tool_call start event and its completion event."""
        context.tool_calls_made += 1
        trace.add(create_trace_event(
            "tool_call",
            agent_id=self.policy.id,
            tool_id=tool.id,
            input=tool_input,
            metadata={"phase": "start", **(metadata or {})},
        ))

        try:
            output = await tool.execute(tool_input)
        except ToolError as e:
            trace.add(create_trace_event(
                "tool_call",
                agent_id=self.policy.id,
                tool_id=tool.id,
                error=str(e),
                metadata={"phase": "error", **(metadata or {})},
            ))
            raise

        trace.add(create_trace_event(
            "tool_call",
            agent_id=self.policy.id,
            tool_id=tool.id,
            output=output,
            metadata={"phase": "complete", **(metadata or {})},
        ))
        return output

    async def _request_approval(
        self,
        tool: ValidatedTool,
        kind: ToolKind,
        tool_input: Any,
        output: Dict[str, Any],
        state: StateStore,
        trace: Trace,
        context: RunContext,
    ) -> Dict[str, Any]:
        """
        One approval round-trip for content-producing output.

        Returns the output to commit: the original on approve, a fresh one on
        regenerate (no second approval round).
        """
        await self._notify("tool_call", "Waiting for approval of generated content...", tool_id=kind.value, state=state)

        result = await self.approval_gate(kind.value, output)
        decision = result if isinstance(result, ApprovalDecision) else ApprovalDecision.model_validate(result)

        if decision.decision == "reject":
            trace.add(create_trace_event(
                "tool_call",
                agent_id=self.policy.id,
                tool_id=kind.value,
                error=REJECTED_MESSAGE,
                metadata={"humanRejected": True},
            ))
            raise ApprovalRejectedError(REJECTED_MESSAGE)

        if decision.decision == "regenerate":
            message = "Regenerating..."
            if decision.feedback:
                message = f"Regenerating with your feedback: {decision.feedback}"
            await self._notify("tool_call", message, tool_id=kind.value, state=state)

            check_tool_call_budget(context.tool_calls_made, self.guardrails)
            regenerate_input = dict(tool_input or {})
            if decision.feedback:
                regenerate_input[USER_FEEDBACK] = decision.feedback
            return await self._invoke_tool(tool, regenerate_input, trace, context, metadata={"regenerated": True})

        await self._notify("tool_call", f"Content approved: {kind.display_name}", tool_id=kind.value, state=state)
        return output

    # ========================================================================
    # REFLECT
    # ========================================================================

    def _reflect(self, state: StateStore) -> Reflection:
        """Coarse continue/stop decision from state (never picks the next tool)."""
        max_iterations = self.policy.max_iterations
        label = self.policy.definition.draft_label

        if state.get(self.policy.draft_key) is None:
            return Reflection(
                should_continue=True,
                reasoning="Initial generation needed",
                next_step="generate",
            )

        evaluation = state.get(EVALUATION)
        if evaluation is None:
            return Reflection(
                should_continue=True,
                reasoning=f"{label} generated, need to evaluate quality",
                next_step="evaluate",
            )

        parsed = Evaluation.model_validate(evaluation)
        quality = f"{parsed.quality:g}"
        iteration_count = state.get(ITERATION_COUNT) or 0

        if not parsed.needs_improvement:
            return Reflection(
                should_continue=False,
                reasoning=f"Quality {quality}/10 is acceptable",
                reason="quality_acceptable",
            )

        if iteration_count >= max_iterations:
            return Reflection(
                should_continue=False,
                reasoning=f"Max iterations ({max_iterations}) reached",
                reason="max_iterations",
            )

        return Reflection(
            should_continue=True,
            reasoning=f"Quality {quality}/10, attempting improvement (iteration {iteration_count + 1}/{max_iterations})",
            next_step="improve",
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _step_event(self, step: AgentStep):
        return create_trace_event(
            "agent_step",
            agent_id=self.policy.id,
            input={
                "plan": step.plan.model_dump(by_alias=True),
                "actions": [action.model_dump(by_alias=True) for action in step.actions],
            },
            output={
                "observations": [obs.model_dump(by_alias=True) for obs in step.observations],
                "reflection": step.reflection.model_dump(by_alias=True, exclude_none=True) if step.reflection else None,
            },
        )

    async def _succeed(self, state: StateStore, trace: Trace, reasoning: str) -> RunResult:
        logger.info(f"Run completed: {self.policy.id} ({reasoning})")
        await self._notify("complete", f"{self.policy.definition.draft_label} generation completed!", state=state)
        return RunResult(success=True, final_state=state.get_all(), trace=trace.get_all())

    async def _fail(self, state: StateStore, trace: Trace, error: str) -> RunResult:
        trace.add(create_trace_event("agent_step", agent_id=self.policy.id, error=error))
        await self._notify("error", f"Error: {error}", state=state)
        return RunResult(success=False, final_state=state.get_all(), trace=trace.get_all(), error=error)

    async def _notify(
        self,
        phase: ProgressPhase,
        message: str,
        tool_id: Optional[str] = None,
        state: Optional[StateStore] = None,
    ) -> None:
        if self.on_progress is None:
            return

        update = ProgressUpdate(
            phase=phase,
            message=message,
            tool_id=tool_id,
            iteration_count=state.get(ITERATION_COUNT) if state is not None else None,
        )
        try:
            result = self.on_progress(update)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")


__all__ = [
    "RunContext",
    "Orchestrator",
    "ProgressCallback",
    "ApprovalHook",
    "REJECTED_MESSAGE",
]
