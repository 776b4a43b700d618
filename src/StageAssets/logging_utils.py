"""Structured logging helpers shared across asset acquisition components."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging", "LOGGER_NAME"]

LOGGER_NAME = "StageAssets"

_STRUCTURED_FIELDS = ("stage", "capability", "source", "url", "path", "entry", "error")
_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}
_CREDENTIAL_URL = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with secret fields and URL credentials masked."""

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str):
            masked[key] = _CREDENTIAL_URL.sub(r"\g<scheme>***@", value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string including structured ``extra`` fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = str(value) if isinstance(value, Path) else value
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    log_dir: Optional[Path] = None,
    max_log_size_mb: int = 20,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``StageAssets`` logger with a console and optional JSONL file handler."""

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_stageassets_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    if json_output:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._stageassets_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"stage-assets-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._stageassets_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
