"""
Songsmith Server Package.

FastAPI layer exposing the workflows over HTTP and Server-Sent Events.

Usage:
    # Start server
    python -m songsmith.server.main

    # Or programmatically
    from songsmith.server.main import create_app, run_server
    run_server(host="127.0.0.1", port=8765)
"""

from songsmith.server.models import (
    RunRequest,
    ApprovalRequestBody,
    MelodyRequest,
    HealthResponse,
    ApprovalResponse,
)
from songsmith.server.session import Caller, resolve_caller

__all__ = [
    # Models
    "RunRequest",
    "ApprovalRequestBody",
    "MelodyRequest",
    "HealthResponse",
    "ApprovalResponse",
    # Identity
    "Caller",
    "resolve_caller",
]
