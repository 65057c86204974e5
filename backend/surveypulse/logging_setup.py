from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "0").lower() in ("1", "true", "yes")

_STANDARD_ATTRS = {
    "msg", "args", "levelname", "levelno", "name", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "processName", "process",
    "taskName", "message",
}


class JsonFormatter(logging.Formatter):
    # One JSON object per line.
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # extra={...} fields
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value, ensure_ascii=False)
                payload[key] = value
            except TypeError:
                payload[key] = str(value)

        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = LOG_LEVEL, json_logs: bool = LOG_JSON) -> None:
    # Configure the root logger once; repeated calls replace our handler.
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_surveypulse", False):
            root.removeHandler(handler)
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler._surveypulse = True
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s"
        ))
    root.addHandler(handler)
