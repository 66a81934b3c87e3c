"""
Structured logging for the Qwen MCP gateway.

Every record is one JSON object (or one plain-text line when JSON is switched
off). INFO and WARNING go to stdout, ERROR and above to stderr. Anything passed
through ``extra=`` becomes a top-level key of the JSON object.

Example usage:
    from qwen_mcp_gateway.core.logging_config import setup_logging, get_logger, LogLevel

    setup_logging(level=LogLevel.INFO)
    logger = get_logger("qwen.client")
    logger.info("Upstream call completed", extra={"duration_ms": 142, "model": "qwen-max"})
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, TextIO

# Attributes every LogRecord carries; anything else on a record came from ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# urllib3 logs every pooled connection at DEBUG
_CHATTY_LIBRARIES = ("urllib3",)


class LogLevel(Enum):
    """Configurable log levels, by name."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_string(cls, level_str: str) -> 'LogLevel':
        """Case-insensitive lookup.

        Raises:
            ValueError: If level_str is not one of the member names.
        """
        try:
            return cls(level_str.upper())
        except ValueError:
            raise ValueError(
                f"Invalid log level '{level_str}'. Valid levels: {[m.value for m in cls]}"
            ) from None

    def to_logging_level(self) -> int:
        return logging.getLevelName(self.value)


class JSONFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Output format:
    {
        "timestamp": "2025-09-13T10:00:00.123Z",
        "level": "ERROR",
        "component": "qwen.client",
        "message": "Failed qwen_generate",
        "duration_ms": 512,
        "error": "Could not connect to Qwen Cloud"
    }

    Values that JSON cannot represent are written with ``str()``.
    """

    def __init__(self, include_source_location: bool = False):
        super().__init__()
        self.include_source_location = include_source_location

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if self.include_source_location:
            entry["source"] = f"{record.pathname}:{record.lineno}"
            entry["function"] = record.funcName

        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False, separators=(",", ":"))


class _BelowLevel(logging.Filter):
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _stream_handler(
    stream: TextIO, formatter: logging.Formatter, level: int, below: Optional[int] = None
) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    if below is not None:
        handler.addFilter(_BelowLevel(below))
    return handler


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    include_source_location: bool = False,
    format_json: bool = True
) -> None:
    """
    Replace the root logger's handlers with the gateway's stdout/stderr pair.

    Args:
        level: Minimum level to emit
        include_source_location: Add ``source`` (file:line) and ``function`` to JSON records
        format_json: JSON lines when True, plain text otherwise
    """
    threshold = level.to_logging_level()
    formatter: logging.Formatter = (
        JSONFormatter(include_source_location=include_source_location)
        if format_json
        else logging.Formatter(_PLAIN_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(threshold)
    root.addHandler(_stream_handler(sys.stdout, formatter, threshold, below=logging.ERROR))
    root.addHandler(_stream_handler(sys.stderr, formatter, max(threshold, logging.ERROR)))

    library_level = logging.INFO if level is LogLevel.DEBUG else logging.WARNING
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)


def configure_from_dict(config: Mapping[str, Any]) -> None:
    """
    Apply a ``logging`` config section, e.g. ``Config.logging.model_dump()``.

    An unknown level name falls back to INFO.
    """
    try:
        level = LogLevel.from_string(str(config.get("level", "INFO")))
    except ValueError:
        level = LogLevel.INFO

    setup_logging(
        level=level,
        include_source_location=bool(config.get("include_source_location", False)),
        format_json=bool(config.get("format_json", True)),
    )


def get_logger(component: str) -> logging.Logger:
    """Logger named after a gateway component, e.g. ``qwen.client`` or ``mcp.server``."""
    return logging.getLogger(component)


class PerformanceLogger:
    """
    Time a block and log its outcome with ``duration_ms``.

    Success is logged at INFO. A failure is logged once at ERROR with the
    exception type and message, then re-raised.
    """

    def __init__(self, logger: logging.Logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.duration_ms: Optional[int] = None
        self._started = 0.0

    def __enter__(self) -> 'PerformanceLogger':
        self._started = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = int((time.perf_counter() - self._started) * 1000)
        extra = {**self.context, "operation": self.operation, "duration_ms": self.duration_ms}
        if exc_type is None:
            self.logger.info(f"Completed {self.operation}", extra=extra)
            return
        extra.update(error_type=exc_type.__name__, error=str(exc_val))
        self.logger.error(f"Failed {self.operation}", extra=extra)
