"""
Lyrics Workflow Routes.

Endpoints:
- POST /api/run - Run the lyrics workflow and return the result as JSON
- POST /api/run/stream - Run the lyrics workflow as a Server-Sent Event stream

Both routes check the caller's daily quota first, increment it only after a
successful run, and persist the resulting song. The streamed route can pause
for human approval of each generated or improved song (enableHumanInLoop);
answers arrive through POST /api/approval.
"""

import logging
import sqlite3
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from songsmith.agents.runtime import WorkflowResult, run_lyrics_workflow
from songsmith.core.approval import ApprovalGate
from songsmith.core.db import SongDB
from songsmith.core.events import (
    EventBus,
    emit_complete,
    emit_error,
    emit_run_started,
    emit_saved,
    emit_save_error,
)
from songsmith.server.models import RunRequest
from songsmith.server.session import (
    Caller,
    resolve_caller,
    get_settings,
    get_approval_store,
    get_db,
    get_quota_service,
)
from songsmith.server.streaming import error_stream, progress_publisher, stream_job
from songsmith.services.quota import QuotaExceededError

logger = logging.getLogger(__name__)

router = APIRouter()


def _save_song(db: SongDB, body: RunRequest, result: WorkflowResult, caller: Caller) -> str:
    return db.save_song(
        input_lyrics=body.lyrics,
        input_emotion=body.emotion,
        input_genre=body.genre,
        song_structure=result.song_structure,
        creative_brief=result.creative_brief,
        evaluation=result.evaluation,
        trace=result.trace_dicts(),
        iteration_count=result.iteration_count,
        user_id=caller.user_id,
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/run")
async def run_lyrics(body: RunRequest, request: Request) -> JSONResponse:
    """
    Run the lyrics workflow without approval pauses.

    Returns:
        {success, creativeBrief, songStructure, evaluation, iterationCount, trace, songId}
        429 when the daily quota is used up; 500 (with trace) when the run fails
        or when the finished song cannot be saved.
    """
    caller = resolve_caller(request)
    quota = get_quota_service(request)

    try:
        quota.check_quota(caller.quota_context)
    except QuotaExceededError as e:
        response = JSONResponse(
            status_code=429,
            content={"success": False, "error": str(e), "limit": e.limit, "used": e.used},
        )
        return caller.attach_cookie(response)

    result = await run_lyrics_workflow(body.workflow_input(), settings=get_settings(request))

    if not result.success:
        logger.warning(f"Lyrics run failed: {result.error}")
        response = JSONResponse(
            status_code=500,
            content={"success": False, "error": result.error, "trace": result.trace_dicts()},
        )
        return caller.attach_cookie(response)

    quota.increment_quota(caller.quota_context)
    payload = result.lyrics_payload()

    try:
        song_id = _save_song(get_db(request), body, result, caller)
    except sqlite3.Error as e:
        logger.error(f"Failed to save song: {e}")
        response = JSONResponse(
            status_code=500,
            content={**payload, "success": False, "error": f"Failed to save song: {e}"},
        )
        return caller.attach_cookie(response)

    response = JSONResponse(content={**payload, "songId": song_id})
    return caller.attach_cookie(response)


@router.post("/run/stream")
async def run_lyrics_stream(body: RunRequest, request: Request):
    """
    Run the lyrics workflow as an event stream.

    Events: run_started, progress, approval_required, approval_received, approval_error,
    complete, saved, save_error, error.
    """
    caller = resolve_caller(request)
    quota = get_quota_service(request)
    settings = get_settings(request)
    db = get_db(request)

    try:
        quota.check_quota(caller.quota_context)
    except QuotaExceededError as e:
        return error_stream(f"Quota exceeded: {e}", caller)

    bus = EventBus()
    approval_gate = None
    if body.enable_human_in_loop:
        approval_gate = ApprovalGate(
            get_approval_store(request),
            event_bus=bus,
            timeout_seconds=settings.get_approval_timeout(),
        )

    async def job() -> None:
        await emit_run_started(bus, f"run_{uuid.uuid4().hex}", "lyrics")
        result = await run_lyrics_workflow(
            body.workflow_input(),
            settings=settings,
            approval_gate=approval_gate,
            on_progress=progress_publisher(bus),
        )

        if not result.success:
            await emit_error(bus, result.error or "Run failed", trace=result.trace_dicts())
            return

        quota.increment_quota(caller.quota_context)
        payload = result.lyrics_payload()
        payload.pop("success")
        await emit_complete(bus, payload)

        try:
            song_id = _save_song(db, body, result, caller)
        except sqlite3.Error as e:
            await emit_save_error(bus, str(e))
            return
        await emit_saved(bus, songId=song_id)

    return stream_job(bus, job, caller)


__all__ = ["router"]
