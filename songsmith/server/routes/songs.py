"""
Songs API Routes.

Provides REST endpoints for stored songs:
- GET /api/songs - List songs (paginated)
- GET /api/songs/{id} - Get song details (owner only)
- DELETE /api/songs/{id} - Delete a song and its melodies (signed-in owner only)
"""

import logging
from typing import Any, Dict, Literal

from fastapi import APIRouter, HTTPException, Request

from songsmith.server.session import get_db, resolve_caller

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/songs", tags=["songs"])


@router.get("")
async def list_songs(
    request: Request,
    limit: int = 50,
    offset: int = 0,
    sortBy: str = "createdAt",
    order: Literal["asc", "desc"] = "desc",
) -> Dict[str, Any]:
    """
    List stored songs.

    Returns:
        {success, songs, pagination: {total, limit, offset, hasMore}}
    """
    db = get_db(request)
    try:
        songs = db.list_songs(limit=limit, offset=offset, sort_by=sortBy, ascending=order == "asc")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    total = db.count_songs()
    return {
        "success": True,
        "songs": songs,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    }


@router.get("/{song_id}")
async def get_song(song_id: str, request: Request) -> Dict[str, Any]:
    """
    Get one song owned by the caller.

    Songs owned by someone else are reported as missing. Guest songs have no
    owner and are visible to guest callers.
    """
    caller = resolve_caller(request)
    song = get_db(request).get_song(song_id)
    if song is None or song["userId"] != caller.user_id:
        raise HTTPException(status_code=404, detail="Song not found")
    return {"success": True, "song": song}


@router.delete("/{song_id}")
async def delete_song(song_id: str, request: Request) -> Dict[str, Any]:
    """
    Delete a song and its melodies.

    Requires a signed-in caller (X-User-Id): 401 for guests, 403 when the
    song belongs to another user.
    """
    caller = resolve_caller(request)
    if not caller.user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    db = get_db(request)
    song = db.get_song(song_id)
    if song is None:
        raise HTTPException(status_code=404, detail="Song not found")
    if song["userId"] != caller.user_id:
        logger.warning(f"User {caller.user_id} tried to delete song {song_id} owned by another user")
        raise HTTPException(status_code=403, detail="Forbidden")

    if not db.delete_song(song_id):
        raise HTTPException(status_code=404, detail="Song not found")
    return {"success": True, "deleted": song_id}


__all__ = ["router"]
