"""Logging setup for the ledger scripts and host applications."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Sync cycles run on the worker thread, so the thread name is part of every line
STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
QUIET_LIBRARIES = ("confluent_kafka", "faker")


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Route ledger logs to a single console handler.

    Parameters
    ----------
    level : str
        Log level name. Unknown names fall back to INFO.
    format_type : str
        "standard" for pipe-separated lines, "json" for one object per line.
    stream : TextIO | None
        Destination (default stdout). ``ledger_admin.py`` passes stderr so
        exported documents stay clean on stdout.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
    logging.getLogger("loan_ledger").setLevel(log_level)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, stamped with the record's own UTC time."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        # Structured fields passed as logger.info(..., extra={"extra": {...}})
        if isinstance(getattr(record, "extra", None), dict):
            log_data.update(record.extra)
        return json.dumps(log_data, default=str, ensure_ascii=False)
