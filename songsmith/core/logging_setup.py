"""
Logging configuration for Songsmith entry points.

Library modules only call logging.getLogger(__name__); the server and CLI
entry points call configure_logging() once at startup.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "info") -> None:
    """
    Configure root logging to stdout.

    Args:
        level: Level name (debug, info, warning, error, critical).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


__all__ = ["LOG_FORMAT", "configure_logging"]
