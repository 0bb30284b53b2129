"""
Human-in-the-loop Approval for Songsmith.

Components:
- ApprovalRequest / ApprovalDecision: pydantic models for the request and its answer
- ApprovalStore: concurrency-safe table of pending requests shared by all runs
  of one server process; each request is resolved at most once
- ApprovalGate: the async hook the control loop calls after a content-producing
  tool succeeds; suspends until a decision arrives or the timeout fires

The store is injected (the server owns one per app); nothing here is global.

Resolution is delete-then-resolve: the pending entry is removed under the lock
before the waiting future is settled, so a second resolve() for the same id
finds nothing and returns False.
"""

import asyncio
import logging
import threading
import time
import uuid
from typing import Optional, Dict, Any, List, Literal, Callable

from pydantic import BaseModel, Field, field_validator

from songsmith.core.events import (
    EventBus,
    emit_approval_required,
    emit_approval_received,
    emit_approval_error,
)
from songsmith.core.guardrails import OrchestrationError

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_TIMEOUT_SECONDS = 300.0


# ============================================================================
# ERRORS
# ============================================================================

class ApprovalRejectedError(OrchestrationError):
    """Raised when an approver vetoes produced content."""
    pass


class ApprovalTimeoutError(OrchestrationError):
    """Raised when no decision arrives before the approval window closes."""
    pass


# ============================================================================
# MODELS
# ============================================================================

class ApprovalRequest(BaseModel):
    """
    Pending approval request.

    Attributes:
        id: Unique request id.
        tool_id: Tool that produced the content.
        produced_output: The artifact awaiting a decision.
        created_at: Monotonic creation time (seconds).
    """
    id: str = Field(..., description="Unique request id")
    tool_id: str = Field(..., description="Tool that produced the content")
    produced_output: Any = Field(None, description="Produced artifact awaiting a decision")
    created_at: float = Field(..., description="Monotonic creation time")


class ApprovalDecision(BaseModel):
    """
    Approver's answer.

    Attributes:
        decision: approve, reject or regenerate.
        feedback: Optional free text (blank text is dropped).
    """
    decision: Literal["approve", "reject", "regenerate"] = Field(..., description="Approver decision")
    feedback: Optional[str] = Field(None, description="Free-text feedback")

    @field_validator("feedback")
    @classmethod
    def _strip_feedback(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


# ============================================================================
# APPROVAL STORE
# ============================================================================

class ApprovalStore:
    """
    Table of pending approval requests keyed by id.

    Example:
        >>> store = ApprovalStore(timeout_seconds=300)
        >>> request = store.create_request("generate-song-structure", song)
        >>> # elsewhere (HTTP handler):
        >>> store.resolve(request.id, "approve")
        True
        >>> decision = await store.wait_for_decision(request.id)
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_APPROVAL_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, ApprovalRequest] = {}
        self._waiters: Dict[str, asyncio.Future] = {}

    def create_request(self, tool_id: str, output: Any, request_id: Optional[str] = None) -> ApprovalRequest:
        """
        Register a pending request. Must be called from a running event loop.

        Expired requests are swept first.

        Args:
            tool_id: Tool that produced the content.
            output: Produced artifact.
            request_id: Explicit id (generated when omitted).

        Returns:
            The registered ApprovalRequest.
        """
        self.cleanup_expired()

        loop = asyncio.get_running_loop()
        request = ApprovalRequest(
            id=request_id or f"approval_{uuid.uuid4().hex}",
            tool_id=tool_id,
            produced_output=output,
            created_at=self._clock(),
        )

        with self._lock:
            if request.id in self._pending:
                logger.warning(f"Approval request {request.id} already exists, replacing it")
            self._pending[request.id] = request
            self._waiters[request.id] = loop.create_future()
            pending_count = len(self._pending)

        logger.info(f"Approval request {request.id} created for {tool_id} (pending: {pending_count})")
        return request

    def resolve(self, request_id: str, decision: str, feedback: Optional[str] = None) -> bool:
        """
        Deliver a decision for a pending request.

        Args:
            request_id: Pending request id.
            decision: approve, reject or regenerate.
            feedback: Optional free-text feedback.

        Returns:
            True if the request was pending and is now resolved; False if the id
            is unknown, already resolved or expired.

        Raises:
            pydantic.ValidationError: If decision is not a known value.
        """
        answer = ApprovalDecision(decision=decision, feedback=feedback)

        with self._lock:
            request = self._pending.pop(request_id, None)
            future = self._waiters.get(request_id)

        if request is None:
            logger.warning(f"Approval request {request_id} not found (already resolved or never created)")
            return False

        if future is not None:
            _settle_threadsafe(future, answer)

        logger.info(f"Approval request {request_id} resolved: {answer.decision}")
        return True

    async def wait_for_decision(self, request_id: str, timeout: Optional[float] = None) -> ApprovalDecision:
        """
        Suspend until the request is resolved.

        Args:
            request_id: Id returned by create_request.
            timeout: Seconds to wait (defaults to the store timeout).

        Returns:
            The delivered ApprovalDecision.

        Raises:
            ApprovalTimeoutError: If the window closes (or the request expired)
                before a decision was delivered.
            KeyError: If the id was never created.
        """
        with self._lock:
            future = self._waiters.get(request_id)
        if future is None:
            raise KeyError(f"Unknown approval request: {request_id}")

        wait_seconds = self.timeout_seconds if timeout is None else timeout

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=wait_seconds)
        except asyncio.TimeoutError:
            with self._lock:
                expired = self._pending.pop(request_id, None)
            if expired is None and future.done() and not future.cancelled() and future.exception() is None:
                # Resolved in the same instant the window closed
                return future.result()
            logger.warning(f"Approval request {request_id} timed out after {wait_seconds}s")
            raise ApprovalTimeoutError("Approval request timed out")
        except asyncio.CancelledError:
            with self._lock:
                abandoned = self._pending.pop(request_id, None)
            if abandoned is not None:
                logger.info(f"Approval request {request_id} abandoned (run cancelled)")
            raise
        finally:
            with self._lock:
                self._waiters.pop(request_id, None)

    def pending_ids(self) -> List[str]:
        with self._lock:
            return list(self._pending.keys())

    def has_request(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._pending

    def cleanup_expired(self) -> List[str]:
        """
        Expire requests older than the timeout window.

        Their waiters fail with ApprovalTimeoutError.

        Returns:
            Ids that were expired.
        """
        now = self._clock()
        expired: List[str] = []
        futures: List[asyncio.Future] = []

        with self._lock:
            for request_id, request in list(self._pending.items()):
                if now - request.created_at > self.timeout_seconds:
                    del self._pending[request_id]
                    expired.append(request_id)
                    future = self._waiters.get(request_id)
                    if future is not None:
                        futures.append(future)

        for future in futures:
            _settle_threadsafe(future, ApprovalTimeoutError("Approval request expired"))

        if expired:
            logger.info(f"Expired {len(expired)} approval request(s)")
        return expired


def _settle(future: asyncio.Future, outcome: Any) -> None:
    if future.done():
        return
    if isinstance(outcome, BaseException):
        future.set_exception(outcome)
    else:
        future.set_result(outcome)


def _settle_threadsafe(future: asyncio.Future, outcome: Any) -> None:
    """Settle a future from any thread."""
    loop = future.get_loop()
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None

    if running is loop:
        _settle(future, outcome)
    else:
        loop.call_soon_threadsafe(_settle, future, outcome)


# ============================================================================
# APPROVAL GATE
# ============================================================================

class ApprovalGate:
    """
    Async approval hook for the control loop.

    Registers a request in the injected store, announces it on the event bus,
    and waits for the decision.

    Example:
        >>> gate = ApprovalGate(store, event_bus=bus)
        >>> decision = await gate("generate-song-structure", song)
        >>> decision.decision
        'approve'
    """

    def __init__(
        self,
        store: ApprovalStore,
        event_bus: Optional[EventBus] = None,
        timeout_seconds: Optional[float] = None,
        id_prefix: Optional[str] = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.timeout_seconds = timeout_seconds
        self.id_prefix = id_prefix

    def _new_request_id(self) -> Optional[str]:
        if not self.id_prefix:
            return None
        return f"{self.id_prefix}_{uuid.uuid4().hex[:12]}"

    async def __call__(self, tool_id: str, output: Any) -> ApprovalDecision:
        request = self.store.create_request(tool_id, output, request_id=self._new_request_id())

        if self.event_bus is not None:
            await emit_approval_required(self.event_bus, request.id, tool_id, output)

        try:
            decision = await self.store.wait_for_decision(request.id, timeout=self.timeout_seconds)
        except ApprovalTimeoutError as e:
            if self.event_bus is not None:
                await emit_approval_error(self.event_bus, request.id, str(e))
            raise

        if self.event_bus is not None:
            await emit_approval_received(
                self.event_bus, request.id, decision.decision, decision.feedback is not None
            )
        return decision


__all__ = [
    "DEFAULT_APPROVAL_TIMEOUT_SECONDS",
    "ApprovalRejectedError",
    "ApprovalTimeoutError",
    "ApprovalRequest",
    "ApprovalDecision",
    "ApprovalStore",
    "ApprovalGate",
]
