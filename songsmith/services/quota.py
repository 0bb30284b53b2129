"""
Daily Request Quota for Songsmith.

Rules:
- Same limit for every caller (default 5 workflow runs per day)
- Days are UTC calendar days (not a rolling 24h window)
- A caller is either an authenticated user or a guest session, never both
- The sample backend bypasses quota entirely

check_quota() runs before a workflow starts; increment_quota() only after a
successful run.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from pydantic import BaseModel, model_validator

from songsmith.core.db import SongDB

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 5


class QuotaExceededError(Exception):
    """Raised when a caller has used up the day's requests."""

    def __init__(self, limit: int, used: int, message: Optional[str] = None):
        self.limit = limit
        self.used = used
        super().__init__(message or f"Daily quota exceeded: {used}/{limit} requests used")


class QuotaContext(BaseModel):
    """Identifies the caller: exactly one of user_id / session_id."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_subject(self) -> "QuotaContext":
        if self.user_id and self.session_id:
            raise ValueError("Cannot specify both user_id and session_id")
        if not self.user_id and not self.session_id:
            raise ValueError("Must specify either user_id or session_id")
        return self


def utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class QuotaService:
    """
    Per-day request counter backed by SongDB.

    Example:
        >>> quota = QuotaService(db, limit=5)
        >>> context = QuotaContext(session_id="guest_123")
        >>> quota.check_quota(context)
        >>> quota.increment_quota(context)
        >>> quota.get_quota_status(context)
        {'used': 1, 'limit': 5, 'remaining': 4}
    """

    def __init__(
        self,
        db: SongDB,
        limit: int = DEFAULT_DAILY_LIMIT,
        enabled: bool = True,
        today: Callable[[], str] = utc_today,
    ):
        self.db = db
        self.limit = limit
        self.enabled = enabled
        self._today = today

    def _usage(self, context: QuotaContext) -> Dict[str, int]:
        usage = self.db.get_usage(self._today(), user_id=context.user_id, session_id=context.session_id)
        if usage is None:
            return {"used": 0, "limit": self.limit}
        return {"used": usage["used"], "limit": usage["limit"]}

    def check_quota(self, context: QuotaContext) -> None:
        """
        Raises:
            QuotaExceededError: If the caller has no requests left today.
        """
        if not self.enabled:
            return

        usage = self._usage(context)
        if usage["used"] >= usage["limit"]:
            logger.warning(f"Quota exceeded for {context.user_id or context.session_id}: {usage['used']}/{usage['limit']}")
            raise QuotaExceededError(usage["limit"], usage["used"])

    def increment_quota(self, context: QuotaContext) -> None:
        if not self.enabled:
            return

        used = self.db.increment_usage(
            self._today(),
            self.limit,
            user_id=context.user_id,
            session_id=context.session_id,
        )
        logger.debug(f"Quota usage for {context.user_id or context.session_id}: {used}")

    def get_quota_status(self, context: QuotaContext) -> Dict[str, int]:
        if not self.enabled:
            return {"used": 0, "limit": self.limit, "remaining": self.limit}

        usage = self._usage(context)
        return {
            "used": usage["used"],
            "limit": usage["limit"],
            "remaining": max(0, usage["limit"] - usage["used"]),
        }


__all__ = [
    "DEFAULT_DAILY_LIMIT",
    "QuotaExceededError",
    "QuotaContext",
    "QuotaService",
    "utc_today",
]
