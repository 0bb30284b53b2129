"""
Execution Trace for Songsmith.

Append-only, ordered log of structured events recorded during one run:
- plan / act / observe / reflect phases of the control loop
- tool_call start and completion pairs
- agent_step termination records

Ordering is insertion order. Timestamps are informational only.
One Trace instance belongs to exactly one run.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


TraceEventType = Literal["plan", "act", "observe", "reflect", "tool_call", "agent_step"]


class TraceEvent(BaseModel):
    """
    Immutable trace record.

    Attributes:
        id: Unique event id.
        timestamp: ISO-8601 UTC timestamp of creation.
        type: Event type.
        agent_id: Policy that produced the event (optional).
        tool_id: Tool involved in the event (optional).
        input: Event input payload (optional).
        output: Event output payload (optional).
        error: Error message (optional).
        metadata: Free-form extra data (optional).
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Unique event id")
    timestamp: str = Field(..., description="ISO timestamp of event creation")
    type: TraceEventType = Field(..., description="Event type")
    agent_id: Optional[str] = Field(None, description="Policy id")
    tool_id: Optional[str] = Field(None, description="Tool id")
    input: Optional[Any] = Field(None, description="Input payload")
    output: Optional[Any] = Field(None, description="Output payload")
    error: Optional[str] = Field(None, description="Error message")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Extra data")


def create_trace_event(
    event_type: TraceEventType,
    *,
    agent_id: Optional[str] = None,
    tool_id: Optional[str] = None,
    input: Any = None,
    output: Any = None,
    error: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> TraceEvent:
    """
    Create a trace event stamped with a fresh id and the current time.

    Example:
        >>> event = create_trace_event("tool_call", tool_id="evaluate-lyrics", metadata={"status": "start"})
        >>> event.type
        'tool_call'
    """
    return TraceEvent(
        id=f"evt_{uuid.uuid4().hex[:12]}",
        timestamp=datetime.now(timezone.utc).isoformat(),
        type=event_type,
        agent_id=agent_id,
        tool_id=tool_id,
        input=input,
        output=output,
        error=error,
        metadata=metadata,
    )


class Trace:
    """
    Append-only ordered log of TraceEvents.

    Example:
        >>> trace = Trace()
        >>> trace.add(create_trace_event("plan", agent_id="lyrics"))
        >>> len(trace.get_by_type("plan"))
        1
    """

    def __init__(self):
        self._events: List[TraceEvent] = []

    def add(self, event: TraceEvent) -> None:
        """Append an event."""
        self._events.append(event)
        logger.debug(f"Trace event: {event.type} tool={event.tool_id}")

    def get_all(self) -> List[TraceEvent]:
        """Return a copy of all events in insertion order."""
        return list(self._events)

    def get_by_type(self, event_type: str) -> List[TraceEvent]:
        """Return events of one type in insertion order."""
        return [event for event in self._events if event.type == event_type]

    def clear(self) -> None:
        """Remove all events."""
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


__all__ = ["TraceEvent", "TraceEventType", "create_trace_event", "Trace"]
