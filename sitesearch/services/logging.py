"""Logging helpers for SiteSearch."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from flask import Flask


class CredentialFilter(logging.Filter):
    """Маскирует учётные данные в URL, попадающих в сообщения обхода."""

    _USERINFO = re.compile(r"(?<=://)[^/\s@:]+:[^/\s@]+@")
    _PASSWORD = re.compile(r"(password=)[^&\s]+", re.I)

    @classmethod
    def mask(cls, text: str) -> str:
        return cls._PASSWORD.sub(r"\1***", cls._USERINFO.sub("***@", text))

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.mask(message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


class JsonFormatter(logging.Formatter):
    """Форматтер, выводящий JSON-строки."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False)


def _resolve_level(level: str | int | None) -> int:
    resolved = logging.getLevelName(str(level or "INFO").upper())
    if isinstance(resolved, str):  # unknown name returns string
        return logging.INFO
    return resolved


def configure_logging(app: Flask, log_file_path: Path, *, level: str | int | None = None) -> RotatingFileHandler:
    """Attach a rotating JSON file handler to the Flask logger and the ``sitesearch`` tree."""

    resolved_level = _resolve_level(level or app.config.get("LOG_LEVEL"))
    app.logger.setLevel(resolved_level)
    package_logger = logging.getLogger("sitesearch")
    package_logger.setLevel(resolved_level)

    handler = get_rotating_log_handler(app, log_file_path)
    if handler is None:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file_path,
            maxBytes=100 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        app.logger.addHandler(handler)
        package_logger.addHandler(handler)

    handler.setLevel(resolved_level)
    if not any(isinstance(f, CredentialFilter) for f in handler.filters):
        handler.addFilter(CredentialFilter())
    handler.setFormatter(JsonFormatter())
    return handler


def get_rotating_log_handler(app: Flask, log_file_path: Path) -> Optional[RotatingFileHandler]:
    """Return the configured rotating handler for the app logger, if any."""
    for handler in app.logger.handlers:
        if isinstance(handler, RotatingFileHandler):
            base_filename = getattr(handler, "baseFilename", "")
            if Path(base_filename).resolve() == log_file_path.resolve():
                return handler
    return None
