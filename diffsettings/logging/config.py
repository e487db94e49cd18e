from __future__ import annotations

import json
import logging
from typing import Any

from diffsettings.lib.redaction import redact, redact_connection_string

JSON_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
SENSITIVE_KEYS = {"password", "pwd", "secret", "token"}
REDACTED_VALUE = "***REDACTED***"
_STANDARD_RECORD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message"}


class ConnectionStringFilter(logging.Filter):
    """Mask credentials in ``extra`` context and in the rendered message.

    Context keys ending in ``connection_string`` are reduced to their redacted
    form; keys naming a bare secret are replaced outright.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for key, value in list(record.__dict__.items()):
            if key in _STANDARD_RECORD_ATTRS:
                continue
            if key in SENSITIVE_KEYS:
                setattr(record, key, REDACTED_VALUE)
            elif key.endswith("connection_string") and isinstance(value, str):
                setattr(record, key, redact_connection_string(value))
        if record.args:
            record.msg = redact(record.getMessage())
            record.args = ()
        elif isinstance(record.msg, str):
            record.msg = redact(record.msg)
        return True


class JsonFormatter(logging.Formatter):
    """Emit log records as compact JSON lines."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = self._extract_extras(record)
        if extras:
            payload["context"] = extras
        if record.exc_info:
            payload["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=True)

    def _extract_extras(self, record: logging.LogRecord) -> dict[str, Any]:
        extras: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, (str, int, float, bool)) or value is None:
                extras[key] = value
            else:
                extras[key] = str(value)
        return extras


def configure_logging(*, level: int = logging.INFO, logger_name: str = "diffsettings") -> logging.Logger:
    """Attach a JSON stream handler carrying the credential filter to the package logger.

    The filter sits on the handler so records propagated from child loggers
    pass through it. Safe to call more than once.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.addFilter(ConnectionStringFilter())
        handler.setFormatter(JsonFormatter(JSON_LOG_FORMAT))
        logger.addHandler(handler)

    return logger


__all__ = ["JsonFormatter", "ConnectionStringFilter", "configure_logging", "REDACTED_VALUE"]
