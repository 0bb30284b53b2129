"""
Caller Identity and App Dependencies for Songsmith Server.

Identity resolution order for quota and ownership:
1. X-User-Id header (authenticated user, set by the fronting auth layer)
2. guest_session_id cookie (returning guest)
3. a fresh guest id, returned to the client as the guest_session_id cookie

Also exposes the per-app shared objects (settings, approval store, database,
quota service) stored on app.state by create_app().
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Response

from songsmith.core.approval import ApprovalStore
from songsmith.core.db import SongDB
from songsmith.core.settings import SettingsManager
from songsmith.services.quota import QuotaContext, QuotaService

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
GUEST_COOKIE = "guest_session_id"
GUEST_COOKIE_MAX_AGE = 60 * 60 * 24 * 30


# ============================================================================
# CALLER
# ============================================================================

@dataclass
class Caller:
    """
    Resolved identity of one HTTP caller.

    Attributes:
        user_id: Authenticated user id (None for guests).
        session_id: Guest session id (None for users).
        is_new_guest: True when the guest id was minted for this request.
    """

    user_id: Optional[str] = None
    session_id: Optional[str] = None
    is_new_guest: bool = False

    @property
    def quota_context(self) -> QuotaContext:
        if self.user_id:
            return QuotaContext(user_id=self.user_id)
        return QuotaContext(session_id=self.session_id)

    def attach_cookie(self, response: Response) -> Response:
        """Set the guest cookie on the response when a new guest id was minted."""
        if self.is_new_guest:
            response.set_cookie(
                GUEST_COOKIE,
                self.session_id,
                max_age=GUEST_COOKIE_MAX_AGE,
                httponly=True,
                samesite="lax",
            )
        return response


def resolve_caller(request: Request) -> Caller:
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id:
        return Caller(user_id=user_id)

    session_id = request.cookies.get(GUEST_COOKIE)
    if session_id:
        return Caller(session_id=session_id)

    session_id = f"guest_{uuid.uuid4().hex}"
    logger.debug(f"New guest session: {session_id}")
    return Caller(session_id=session_id, is_new_guest=True)


# ============================================================================
# APP STATE ACCESSORS
# ============================================================================

def get_settings(request: Request) -> SettingsManager:
    return request.app.state.settings


def get_approval_store(request: Request) -> ApprovalStore:
    return request.app.state.approval_store


def get_db(request: Request) -> SongDB:
    return request.app.state.db


def get_quota_service(request: Request) -> QuotaService:
    return request.app.state.quota


__all__ = [
    "USER_ID_HEADER",
    "GUEST_COOKIE",
    "Caller",
    "resolve_caller",
    "get_settings",
    "get_approval_store",
    "get_db",
    "get_quota_service",
]
