"""
Melody Routes.

Endpoints:
- POST /api/agents/melody/stream - Compose a melody for a stored song (SSE)
- GET /api/melodies - List melodies (optionally ?songId=)
- GET /api/melodies/{id} - Get one melody
"""

import logging
import sqlite3
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from songsmith.agents.brief import NEUTRAL_MOOD
from songsmith.agents.runtime import run_melody_workflow
from songsmith.core.approval import ApprovalGate
from songsmith.core.events import (
    EventBus,
    emit_complete,
    emit_error,
    emit_run_started,
    emit_saved,
    emit_save_error,
)
from songsmith.server.models import MelodyRequest
from songsmith.server.session import (
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


@router.post("/agents/melody/stream")
async def run_melody_stream(body: MelodyRequest, request: Request):
    """
    Compose, evaluate and refine a melody for a stored song.

    Emotion comes from the song's input; mood from its creative brief
    (neutral when the song has none).

    Events: run_started, progress, approval_*, complete, saved, save_error, error.
    """
    caller = resolve_caller(request)
    quota = get_quota_service(request)
    settings = get_settings(request)
    db = get_db(request)

    try:
        quota.check_quota(caller.quota_context)
    except QuotaExceededError as e:
        return error_stream(f"Quota exceeded: {e}", caller)

    song = db.get_song(body.song_id)
    if song is None:
        return error_stream("Song not found", caller)

    song_structure = song["songStructure"]
    emotion = song["inputEmotion"]
    mood = (song.get("creativeBrief") or {}).get("mood") or NEUTRAL_MOOD

    bus = EventBus()
    approval_gate = None
    if body.enable_human_in_loop:
        approval_gate = ApprovalGate(
            get_approval_store(request),
            event_bus=bus,
            timeout_seconds=settings.get_approval_timeout(),
        )

    async def job() -> None:
        await emit_run_started(bus, f"run_{uuid.uuid4().hex}", "melody")
        result = await run_melody_workflow(
            song_structure,
            emotion,
            mood,
            tempo=body.tempo,
            key=body.key,
            time_signature=body.time_signature,
            settings=settings,
            approval_gate=approval_gate,
            on_progress=progress_publisher(bus),
        )

        if not result.success:
            await emit_error(bus, result.error or "Run failed", trace=result.trace_dicts())
            return

        quota.increment_quota(caller.quota_context)
        payload = result.melody_payload()
        payload.pop("success")
        await emit_complete(bus, {**payload, "songStructure": song_structure})

        try:
            melody_id = db.save_melody(
                body.song_id,
                result.melody_structure,
                evaluation=result.evaluation,
                iteration_count=result.iteration_count,
            )
        except sqlite3.Error as e:
            await emit_save_error(bus, str(e))
            return
        await emit_saved(bus, melodyId=melody_id)

    return stream_job(bus, job, caller)


@router.get("/melodies")
async def list_melodies(request: Request, songId: Optional[str] = None, limit: int = 10, offset: int = 0):
    """List melodies, newest first."""
    db = get_db(request)
    melodies = db.list_melodies(song_id=songId, limit=limit, offset=offset)
    return {"success": True, "melodies": melodies, "total": db.count_melodies(songId)}


@router.get("/melodies/{melody_id}")
async def get_melody(melody_id: str, request: Request):
    melody = get_db(request).get_melody(melody_id)
    if melody is None:
        raise HTTPException(status_code=404, detail="Melody not found")
    return {"success": True, "melody": melody}


__all__ = ["router"]
