"""
Structured logging configuration for the game server.
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog


def _level(environment: str) -> int:
    return logging.INFO if environment == "production" else logging.DEBUG


def configure_logging(environment: str = "development"):
    """Configure structlog: console output in development, JSON lines in production."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=_level(environment),
    )

    renderer = structlog.processors.JSONRenderer() if environment == "production" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level(environment)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def get_logger(name: Optional[str] = None):
    """Get a configured logger instance."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


class ActivityLogger:
    """Records what clients ask the server to do."""

    def __init__(self):
        self.logger = get_logger("activity")

    def log_game_command(
        self,
        session_id: str,
        player_id: Optional[str],
        command: str,
        details: Dict[str, Any] = None,
        success: bool = True,
    ):
        """Log a command sent to a game session."""
        self.logger.info(
            "game_command",
            session_id=session_id,
            player_id=player_id,
            command=command,
            success=success,
            details=details or {},
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def log_websocket_event(
        self,
        event_type: str,
        session_id: str,
        player_id: Optional[str] = None,
        details: Dict[str, Any] = None,
    ):
        """Log a WebSocket event."""
        self.logger.info(
            "websocket_event",
            event_type=event_type,
            session_id=session_id,
            player_id=player_id,
            details=details or {},
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


# Global activity logger instance
activity_logger = ActivityLogger()
