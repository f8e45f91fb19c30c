"""
Structured logging configuration for the Kaboo game server.

Provides:
- JSONFormatter for production (machine-readable logs)
- Human-readable formatter for development
- Contextual logging (user_id, game_id) via context variables that the
  game service sets around each move
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variables for move-scoped data
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
game_id_var: ContextVar[Optional[str]] = ContextVar("game_id", default=None)

# Record attributes copied into structured output when present
EXTRA_FIELDS = ("user_id", "game_id", "room_code", "player_id", "action", "error_code")


def context_fields(record: logging.LogRecord) -> dict:
    """
    Collect the game context attached to a log record.

    Context variables come first; values passed through ``extra=`` on the
    logging call override them.

    Args:
        record: Log record being formatted.

    Returns:
        Non-empty context values keyed by field name.
    """
    fields = {"user_id": user_id_var.get(), "game_id": game_id_var.get()}
    for name in EXTRA_FIELDS:
        value = getattr(record, name, None)
        if value:
            fields[name] = value
    return {name: value for name, value in fields.items() if value}


class JSONFormatter(logging.Formatter):
    """
    Format logs as JSON for production log aggregation.

    One JSON object per line, so ELK, CloudWatch or Datadog can ingest
    them without a custom parser.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Render a record as a single JSON line.

        Args:
            record: Log record to format.

        Returns:
            JSON string with timestamp, level, logger, message, the game
            context, source location for errors and any traceback.
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **context_fields(record),
        }

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

    Colors the level and prefixes the message with a short game/user/room tag.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    # Context shown in the tag, with how many characters of each to keep
    TAGS = (("game_id", "game", 8), ("user_id", "user", 8), ("room_code", "room", None))

    def format(self, record: logging.LogRecord) -> str:
        """
        Render a record as one colored console line.

        Args:
            record: Log record to format.

        Returns:
            "HH:MM:SS.mmm LEVEL logger [game=..., user=..., room=...] - message",
            followed by the traceback when there is one.
        """
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        fields = context_fields(record)
        tags = [
            f"{label}={str(fields[name])[:width] if width else fields[name]}"
            for name, label, width in self.TAGS
            if name in fields
        ]
        context = f" [{', '.join(tags)}]" if tags else ""

        output = f"{timestamp} {color}{record.levelname:8}{reset} {record.name}{context} - {record.getMessage()}"
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
    handler.setFormatter(JSONFormatter() if environment == "production" else DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from libraries
    for noisy in ("asyncio", "redis"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={level}, environment={environment}"
    )


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that stamps fixed context onto every record.

    Usage:
        logger = get_logger(__name__)
        logger.with_context(room_code="ABCD").info("Game started with 3 players")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        """
        Args:
            logger: Underlying logger.
            extra: Context added to every record from this adapter.
        """
        super().__init__(logger, extra or {})

    def with_context(self, **kwargs) -> "ContextLogger":
        """
        Derive a logger carrying more context.

        The adapter itself is unchanged, so a module-level logger can be
        narrowed per game or per room without leaking context.

        Args:
            **kwargs: Context fields such as room_code or player_id.

        Returns:
            New ContextLogger with this adapter's context plus kwargs.
        """
        return ContextLogger(self.logger, {**self.extra, **kwargs})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """
        Merge the adapter context into a logging call.

        Args:
            msg: Log message, passed through untouched.
            kwargs: Logging call keyword arguments.

        Returns:
            The message and kwargs whose ``extra`` holds the adapter context,
            overridden by any ``extra`` given on the call itself.
        """
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__).

    Returns:
        ContextLogger with no context yet.
    """
    return ContextLogger(logging.getLogger(name))
