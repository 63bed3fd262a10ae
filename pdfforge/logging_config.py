"""Logging configuration for the pdfforge CLI and embedding services.

The library itself only creates module loggers; nothing is configured on
import. Applications call ``setup_logging`` once at startup, choosing plain
text for terminals or one JSON object per line for log aggregation.
"""

import json
import logging
from datetime import datetime, timezone
from typing import IO, Optional

# Extra fields copied into JSON output when passed via logger.x(..., extra={...})
EXTRA_FIELDS = (
    "operation",
    "path",
    "executable",
    "strategy",
    "compression_level",
    "duration_ms",
    "error_kind",
)

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Example:
        >>> logger.info("Compressed", extra={"operation": "compress", "duration_ms": 812})
        # Output: {"timestamp": "2026-01-05T17:52:00.123000Z", "level": "INFO",
        #          "message": "Compressed", "operation": "compress", "duration_ms": 812, ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .replace(tzinfo=None)
            .isoformat()
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.thread:
            log_data["thread_id"] = record.thread

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False, stream: Optional[IO[str]] = None) -> None:
    """Configure root logging.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names mean INFO.
        json_format: Use StructuredFormatter instead of plain text.
        stream: Output stream (default: stderr).
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))
    root_logger.addHandler(handler)

    numeric_level = getattr(logging, str(level).upper(), None)
    root_logger.setLevel(numeric_level if isinstance(numeric_level, int) else logging.INFO)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    # PyPDF2 warns on every recoverable xref problem
    logging.getLogger("PyPDF2").setLevel(logging.ERROR)
