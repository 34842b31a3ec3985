"""
Structured logging configuration for the UNO server and replication core.

Provides:
- JSONFormatter for production (one JSON object per line)
- Colored formatter for development
- Contextual logging (connection, room, player) via context variables
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variables for connection-scoped data
connection_id_var: ContextVar[Optional[str]] = ContextVar("connection_id", default=None)
room_id_var: ContextVar[Optional[str]] = ContextVar("room_id", default=None)
player_id_var: ContextVar[Optional[str]] = ContextVar("player_id", default=None)

_CONTEXT_FIELDS = ("connection_id", "room_id", "room_code", "player_id", "action")


def _collect_context(record: logging.LogRecord) -> dict:
    """Merge context variables with any `extra` fields on the record."""
    context = {
        "connection_id": connection_id_var.get(),
        "room_id": room_id_var.get(),
        "player_id": player_id_var.get(),
    }
    for name in _CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value:
            context[name] = value
    return {k: v for k, v in context.items() if v}


class JSONFormatter(logging.Formatter):
    """
    Format logs as JSON for production log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_collect_context(record))

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Includes colors and a short context block, e.g. ``[room=K7QP2D, player=Ann]``.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        context = _collect_context(record)
        parts = []
        if "connection_id" in context:
            parts.append(f"conn={context['connection_id'][:8]}")
        room = context.get("room_code") or context.get("room_id")
        if room:
            parts.append(f"room={room}")
        if "player_id" in context:
            parts.append(f"player={context['player_id'][:12]}")
        if "action" in context:
            parts.append(f"action={context['action']}")
        context_str = f" [{', '.join(parts)}]" if parts else ""

        output = f"{timestamp} {color}{record.levelname:8}{reset} {record.name}{context_str} - {record.getMessage()}"

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)

        return output


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        environment: Environment name (production uses JSON, else human-readable).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        f"Logging configured: level={level}, environment={environment}",
        extra={"level": level, "environment": environment},
    )


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context.

    Usage:
        logger = ContextLogger(logging.getLogger(__name__))
        logger.with_context(room_code="K7QP2D", player_id="Ann").info("Player joined")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def with_context(self, **kwargs) -> "ContextLogger":
        """
        Create a new logger with additional context.

        Args:
            **kwargs: Context key-value pairs to add.

        Returns:
            New ContextLogger with combined context.
        """
        return ContextLogger(self.logger, {**self.extra, **kwargs})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger (typically ``get_logger(__name__)``)."""
    return ContextLogger(logging.getLogger(name))
