"""
Structured JSON logging with request_id, order_id, line_id, terminal_id when applicable.
Redact secrets in backend response logs.
"""
from __future__ import annotations

import json
import logging
import time
from contextvars import ContextVar
from typing import Any, Optional

from pos_terminal.config import get_settings

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def _redact(obj: Any) -> Any:
    """Redact keys that might contain secrets (e.g. backend error payloads)."""
    if isinstance(obj, dict):
        return {k: "***" if k.lower() in ("authorization", "token", "secret", "key") else _redact(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S.000Z", time.gmtime(record.created)),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if request_id_ctx.get():
            log["request_id"] = request_id_ctx.get()
        for field in ("terminal_id", "order_id", "line_id", "resource"):
            value = getattr(record, field, None)
            if value:
                log[field] = str(value)
        if getattr(record, "backend_response", None):
            log["backend_response"] = _redact(record.backend_response)
        if record.exc_info:
            log["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(get_settings().log_level.upper())
    return logger
