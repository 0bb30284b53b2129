"""
Server-Sent Event streaming for Songsmith Server.

A streamed run gets its own EventBus. The run executes as a background task
that publishes progress, approval and result events; the HTTP response
subscribes to the bus and writes each event as one `data: {json}\\n\\n` frame.
The stream ends when the job finishes and the bus is shut down. If the client
disconnects first, the job task is cancelled.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from fastapi.responses import StreamingResponse

from songsmith.agents.state import ProgressUpdate
from songsmith.core.events import EventBus, emit_error, emit_progress, iter_queue
from songsmith.server.session import Caller

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def progress_publisher(bus: EventBus) -> Callable[[ProgressUpdate], Awaitable[None]]:
    """Progress callback that forwards updates to the bus as progress events."""

    async def publish(update: ProgressUpdate) -> None:
        await emit_progress(bus, update.to_dict())

    return publish


def stream_job(bus: EventBus, job: Callable[[], Awaitable[None]], caller: Caller) -> StreamingResponse:
    """
    Run a job in the background and stream the bus to the client.

    Args:
        bus: Fresh EventBus for this run.
        job: Coroutine function publishing the run's events to the bus.
        caller: Resolved caller (the guest cookie is attached when new).
    """
    queue = bus.subscribe()

    async def run_job() -> None:
        try:
            await job()
        except Exception as e:
            logger.error(f"Streamed run crashed: {e}", exc_info=True)
            await emit_error(bus, "Internal server error", details=str(e))
        finally:
            await bus.shutdown()

    async def event_stream():
        task = asyncio.create_task(run_job())
        try:
            async for event in iter_queue(queue):
                yield event.to_sse()
        finally:
            bus.unsubscribe(queue)
            if not task.done():
                logger.info("Client disconnected, cancelling streamed run")
                task.cancel()

    response = StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
    return caller.attach_cookie(response)


def error_stream(message: str, caller: Caller) -> StreamingResponse:
    """Single error event stream (request refused before any run started)."""
    bus = EventBus()

    async def job() -> None:
        await emit_error(bus, message)

    return stream_job(bus, job, caller)


__all__ = [
    "SSE_HEADERS",
    "progress_publisher",
    "stream_job",
    "error_stream",
]
