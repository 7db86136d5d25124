"""
Logging setup for ledger scans and store operations.

Most log lines are about one channel and often one ledger position.
The JSON formatter promotes those two fields to the top level so
scans can be followed with a plain ``jq 'select(.position == 12)'``,
and ChannelLoggerAdapter stamps them on every record.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

# Attributes every LogRecord carries; anything else came in via ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

_CONTEXT_FIELDS = ("channel", "position")

HUMAN_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields, in order: timestamp (UTC, from the record's creation time),
    level, logger, channel and position when known, message, then any
    other ``extra`` values. Values that are not JSON serializable are
    rendered with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        entry["message"] = record.getMessage()

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in _CONTEXT_FIELDS or key in entry or key.startswith("_"):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            entry[key] = value

        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = None,
    json_output: bool = True,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Install a single handler on a logger.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: root logger)
        json_output: JSON lines if True, otherwise ``HUMAN_FORMAT``
        stream: Output stream (default: stdout for JSON, stderr otherwise)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    if json_output:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(StructuredJsonFormatter())
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(HUMAN_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger named ``ledger_record_storage.<name>``."""
    return logging.getLogger(f"ledger_record_storage.{name}")


class ChannelLoggerAdapter(logging.LoggerAdapter):
    """
    Adds the channel, and optionally a position, to every record.

    Example:
        >>> log = ChannelLoggerAdapter(get_storage_logger("store"), channel.hex)
        >>> log.at_position(42).info("Submitted record")
    """

    def __init__(self, logger: logging.Logger, channel: str, position: int | None = None):
        super().__init__(logger, {"channel": channel, "position": position})

    def at_position(self, position: int) -> "ChannelLoggerAdapter":
        """Same channel, pinned to one ledger position."""
        return ChannelLoggerAdapter(self.logger, self.extra["channel"], position)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        # Explicit ``extra`` from the call site wins over the adapter's context.
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
