# Overview: Structured (JSON) log output for the Flask app and the operation event stream.

from __future__ import annotations

import json
import logging

from flask import Flask

from .observability import OPERATIONS_LOGGER


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(app: Flask) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    ops_logger = logging.getLogger(OPERATIONS_LOGGER)
    ops_logger.setLevel(level)

    # pytest's caplog owns handlers while testing
    if app.testing or not app.config.get("LOG_JSON", True):
        return
    if any(getattr(h, "_scanpos_json", False) for h in ops_logger.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(level)
    handler._scanpos_json = True  # type: ignore[attr-defined]

    ops_logger.addHandler(handler)
    ops_logger.propagate = False
    app.logger.handlers = [handler]
