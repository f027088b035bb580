"""Structured logging for generation runs.

Every retry, salvage, success, exhaustion and cancellation event carries
`step`, `attempt` and `outcome` fields. With structured logs enabled they are
rendered as JSON lines, otherwise they ride along on the plain log record.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Optional

from nutrigen.core.config import settings


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None) -> None:
    """Install a single stream handler on the root `nutrigen` logger."""
    level = (level or settings.log_level).upper()
    structured = settings.structured_logs if structured is None else structured

    logger = logging.getLogger("nutrigen")
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Prevent duplicate handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)


def log_step(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    step: str,
    attempt: Optional[int] = None,
    outcome: str,
    **fields: Any,
) -> None:
    """Emit one structured step event."""
    extra_fields = {"step": step, "attempt": attempt, "outcome": outcome}
    extra_fields.update(fields)
    logger.log(level, message, extra={"extra_fields": extra_fields})
