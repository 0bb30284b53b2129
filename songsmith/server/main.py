"""
Songsmith HTTP Server Entry Point.

FastAPI application exposing the lyrics and melody workflows, the approval
endpoint and the song/melody library.

Usage:
    # Run the server
    python -m songsmith.server.main

    # Or with custom host/port
    python -m songsmith.server.main --host 0.0.0.0 --port 8080

    # For development with auto-reload
    uvicorn songsmith.server.main:create_app --factory --reload --port 8765
"""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from songsmith import __version__
from songsmith.core.approval import ApprovalStore
from songsmith.core.db import SongDB
from songsmith.core.logging_setup import configure_logging
from songsmith.core.settings import SettingsManager, get_settings_manager
from songsmith.server.routes.approval import router as approval_router
from songsmith.server.routes.health import router as health_router
from songsmith.server.routes.melodies import router as melodies_router
from songsmith.server.routes.runs import router as runs_router
from songsmith.server.routes.songs import router as songs_router
from songsmith.services.quota import QuotaService

logger = logging.getLogger(__name__)


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown.

    Pending approvals still open at shutdown are expired so their runs fail
    instead of hanging.
    """
    logger.info("=" * 60)
    logger.info("Songsmith Server starting...")
    backend = "sample" if app.state.settings.use_sample_backend() else "live"
    logger.info(f"Tool backend: {backend}")
    logger.info(f"Database: {app.state.db.db_path}")
    logger.info("=" * 60)

    yield

    logger.info("-" * 60)
    logger.info("Songsmith Server shutting down...")

    store: ApprovalStore = app.state.approval_store
    pending = store.pending_ids()
    if pending:
        store.timeout_seconds = 0.0
        store.cleanup_expired()
        logger.info(f"Expired {len(pending)} pending approval(s)")

    logger.info("Songsmith Server shutdown complete")
    logger.info("=" * 60)


# ============================================================================
# CREATE APPLICATION
# ============================================================================

def create_app(
    settings: Optional[SettingsManager] = None,
    db: Optional[SongDB] = None,
    approval_store: Optional[ApprovalStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings manager (defaults to the global one).
        db: Song database (defaults to the settings data directory).
        approval_store: Shared approval table (one per app).

    Returns:
        Configured FastAPI app instance.
    """
    settings = settings or get_settings_manager()

    app = FastAPI(
        title="Songsmith Server",
        description="Guardrailed LLM workflows for song lyrics and melodies.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.db = db or SongDB(settings.get_database_path())
    app.state.approval_store = approval_store or ApprovalStore(timeout_seconds=settings.get_approval_timeout())
    app.state.quota = QuotaService(app.state.db, enabled=not settings.use_sample_backend())

    # ========================================================================
    # CORS MIDDLEWARE
    # ========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # INCLUDE ROUTERS
    # ========================================================================
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(runs_router, prefix="/api", tags=["runs"])
    app.include_router(approval_router, prefix="/api", tags=["approval"])
    app.include_router(melodies_router, prefix="/api", tags=["melodies"])
    app.include_router(songs_router, prefix="/api")

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with server info."""
        return {
            "name": "Songsmith Server",
            "version": __version__,
            "status": "running",
            "docs_url": "/docs",
        }

    return app


# ============================================================================
# SERVER RUNNER
# ============================================================================

def run_server(
    host: str = "127.0.0.1",
    port: int = 8765,
    reload: bool = False,
    log_level: str = "info"
) -> None:
    """
    Run the Songsmith server with uvicorn.

    Args:
        host: Host address to bind to.
        port: Port number to listen on.
        reload: Enable auto-reload for development.
        log_level: Logging level.
    """
    configure_logging(log_level)
    logger.info(f"Starting server on {host}:{port}")
    uvicorn.run(
        "songsmith.server.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        access_log=True,
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Songsmith HTTP Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host address to bind to"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8765,
        help="Port number to listen on"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Logging level"
    )
    return parser.parse_args(argv)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main(argv=None) -> None:
    """Console entry point."""
    args = parse_args(argv)
    run_server(
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level
    )


if __name__ == "__main__":
    main()
