"""Root logging setup and PII scrubbing for every handler the app writes to."""
from __future__ import annotations

import logging
import re

from flask import Flask

VERBOSE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s"
COMPACT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(message)s"
QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic")

# Applied in order
REDACTIONS = (
    (re.compile(r"[\w.+-]+@[\w-]+(\.[\w-]+)+"), "[REDACTED_EMAIL]"),
    (re.compile(r"\b(token|api[_-]?key|secret|password|authorization)\s*[:=]\s*[^\s,;]+", re.IGNORECASE), r"\1=[REDACTED]"),
    (re.compile(r"Bearer\s+\S+", re.IGNORECASE), "Bearer [REDACTED]"),
)


def redact(message: str) -> str:
    for pattern, replacement in REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


class PiiRedactionFilter(logging.Filter):
    """Renders the record once, scrubbed, so handlers never see raw args."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


def configure_logging(app: Flask) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL") or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)
    if level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    compact = app.config.get("FLASK_ENV") == "production" and not app.debug
    formatter = logging.Formatter(COMPACT_FORMAT if compact else VERBOSE_FORMAT)
    scrub = app.config.get("LOG_REDACT_PII", True)

    for handler in [*root.handlers, *app.logger.handlers]:
        handler.setFormatter(formatter)
        if scrub and not any(isinstance(f, PiiRedactionFilter) for f in handler.filters):
            handler.addFilter(PiiRedactionFilter())
