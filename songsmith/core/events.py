"""
Async Event Bus for Songsmith.

Provides minimal async event streaming for:
- Progress updates from the control loop (planning, acting, tool_call, ...)
- Approval lifecycle events (approval_required, approval_received, approval_error)
- Run lifecycle events (run_started, complete, error, saved)

One EventBus is created per streamed run; the HTTP layer subscribes to it and
forwards every event as a Server-Sent Event.
"""

import asyncio
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


# ============================================================================
# EVENT TYPES
# ============================================================================

class EventType(str, Enum):
    """Event types for the event bus."""

    # Run lifecycle
    RUN_STARTED = "run_started"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"

    # Approval lifecycle
    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_RECEIVED = "approval_received"
    APPROVAL_ERROR = "approval_error"

    # Persistence
    SAVED = "saved"
    SAVE_ERROR = "save_error"


# ============================================================================
# EVENT MODEL
# ============================================================================

class Event:
    """
    Generic event container.

    Attributes:
        type: Event type (from EventType enum).
        data: Event payload (dict with event-specific data).
        timestamp: ISO timestamp of event creation.
    """

    def __init__(self, event_type: EventType, data: Optional[Dict[str, Any]] = None):
        self.type = event_type
        self.data = data or {}
        self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to the wire shape: {"type": ..., **data}."""
        return {"type": self.type.value, **self.data}

    def to_sse(self) -> str:
        """Frame as one Server-Sent Event."""
        return f"data: {json.dumps(self.to_dict(), default=str)}\n\n"

    def __repr__(self) -> str:
        return f"Event(type={self.type}, data={self.data}, timestamp={self.timestamp})"


# ============================================================================
# EVENT BUS
# ============================================================================

class EventBus:
    """
    Simple async event bus using asyncio.Queue.

    Supports:
    - Publishing events to all subscribers
    - Multiple concurrent subscribers
    - Clean shutdown (None sentinel)
    """

    def __init__(self):
        self._queues: List[asyncio.Queue] = []
        self._shutdown = False

        logger.debug("EventBus initialized")

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue:
        """
        Subscribe to event stream.

        Returns:
            asyncio.Queue that will receive events.

        Example:
            >>> queue = bus.subscribe()
            >>> async for event in iter_queue(queue):
            ...     print(event.type)
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        logger.debug(f"New subscriber (total: {len(self._queues)})")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Unsubscribe from event stream."""
        if queue in self._queues:
            self._queues.remove(queue)
            logger.debug(f"Subscriber removed (total: {len(self._queues)})")

    async def publish(self, event: Event) -> None:
        """
        Publish event to all subscribers.

        Args:
            event: Event to publish.
        """
        if self._shutdown:
            logger.warning(f"EventBus is shutdown, ignoring event {event.type}")
            return

        for queue in self._queues:
            await queue.put(event)

        logger.debug(f"Published event: {event.type} to {len(self._queues)} subscribers")

    async def shutdown(self) -> None:
        """
        Shutdown event bus.

        Sends None sentinel to all queues to signal end of stream.
        """
        if self._shutdown:
            return
        self._shutdown = True

        for queue in self._queues:
            await queue.put(None)

        self._queues.clear()
        logger.debug("EventBus shutdown complete")


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

async def emit_progress(bus: EventBus, update: Dict[str, Any]) -> None:
    """
    Emit a control-loop progress update.

    Args:
        bus: Target bus.
        update: ProgressUpdate as a dict (phase, message, toolId?, iterationCount?).
    """
    await bus.publish(Event(EventType.PROGRESS, update))


async def emit_approval_required(bus: EventBus, approval_id: str, tool_id: str, output: Any) -> None:
    """
    Emit approval required event carrying the produced content.

    Args:
        bus: Target bus.
        approval_id: Pending request id the client must answer with.
        tool_id: Content-producing tool that produced the output.
        output: The produced artifact awaiting a decision.
    """
    await bus.publish(Event(EventType.APPROVAL_REQUIRED, {
        "approvalId": approval_id,
        "toolId": tool_id,
        "output": output,
    }))


async def emit_approval_received(bus: EventBus, approval_id: str, decision: str, has_feedback: bool) -> None:
    """Emit approval received event."""
    await bus.publish(Event(EventType.APPROVAL_RECEIVED, {
        "approvalId": approval_id,
        "decision": decision,
        "hasFeedback": has_feedback,
    }))


async def emit_approval_error(bus: EventBus, approval_id: str, error: str) -> None:
    """Emit approval error event (timeout or expiry)."""
    await bus.publish(Event(EventType.APPROVAL_ERROR, {
        "approvalId": approval_id,
        "error": error,
    }))


async def emit_run_started(bus: EventBus, run_id: str, workflow: str) -> None:
    """Emit run started event."""
    await bus.publish(Event(EventType.RUN_STARTED, {"runId": run_id, "workflow": workflow}))


async def emit_complete(bus: EventBus, result: Dict[str, Any]) -> None:
    """Emit final successful result."""
    await bus.publish(Event(EventType.COMPLETE, {"success": True, **result}))


async def emit_error(bus: EventBus, error: str, **extra: Any) -> None:
    """Emit run error (failed run, invalid request, quota)."""
    await bus.publish(Event(EventType.ERROR, {"error": error, **extra}))


async def emit_saved(bus: EventBus, **ids: str) -> None:
    """Emit persistence success (e.g. songId=..., melodyId=...)."""
    await bus.publish(Event(EventType.SAVED, dict(ids)))


async def emit_save_error(bus: EventBus, error: str) -> None:
    """Emit persistence failure; the run itself already completed."""
    await bus.publish(Event(EventType.SAVE_ERROR, {"error": error}))


# ============================================================================
# ASYNC QUEUE ITERATOR HELPER
# ============================================================================

async def iter_queue(queue: asyncio.Queue):
    """
    Async iterator for asyncio.Queue.

    Yields items from queue until None sentinel is received.
    """
    while True:
        item = await queue.get()
        if item is None:  # Shutdown sentinel
            break
        yield item


__all__ = [
    "EventType",
    "Event",
    "EventBus",
    "emit_progress",
    "emit_approval_required",
    "emit_approval_received",
    "emit_approval_error",
    "emit_run_started",
    "emit_complete",
    "emit_error",
    "emit_saved",
    "emit_save_error",
    "iter_queue",
]
