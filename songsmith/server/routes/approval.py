"""
Approval Endpoint.

Endpoints:
- POST /api/approval - Resolve a pending human-in-the-loop approval

Each approval id is honored at most once: a second answer (or an answer to an
expired or unknown id) gets 404.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from songsmith.server.models import ApprovalRequestBody, ApprovalResponse
from songsmith.server.session import get_approval_store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/approval", response_model=ApprovalResponse, response_model_by_alias=True)
async def resolve_approval(body: ApprovalRequestBody, request: Request):
    """
    Example:
        POST /api/approval
        {"approvalId": "approval_1f2e...", "decision": "regenerate", "feedback": "shorter chorus"}
    """
    store = get_approval_store(request)
    logger.info(f"Approval received: {body.approval_id} ({body.decision})")

    if not store.resolve(body.approval_id, body.decision, body.feedback):
        logger.warning(f"Approval not pending: {body.approval_id}")
        return JSONResponse(
            status_code=404,
            content={
                "error": "Approval request not found or already resolved",
                "approvalId": body.approval_id,
                "availableIds": store.pending_ids(),
            },
        )

    return ApprovalResponse(
        success=True,
        approval_id=body.approval_id,
        decision=body.decision,
        feedback=body.feedback,
    )


__all__ = ["router"]
