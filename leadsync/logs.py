# leadsync/logs.py
"""
Logging setup for stage runs.

Every record is one JSON object per line:

  {"ts": "...", "level": "INFO", "logger": "leadsync.verify.runner",
   "batch": "verify_3f2a...", "message": "...", "context": {...}}

written to stderr and to a size-rotated log file. Stage code logs through
BatchLogger so the run id and a structured `context=` mapping ride along:

    log = BatchLogger(logging.getLogger(__name__), batch_id)
    log.info("source finished", context={"rows": 120})
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_HANDLER_TAG = "_leadsync_handler"


def new_batch_id(stage: str) -> str:
    return f"{stage}_{uuid.uuid4().hex}"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "batch": getattr(record, "batch", ""),
            "message": record.getMessage(),
            "context": getattr(record, "context", {}) or {},
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=_json_default)


class BatchLogger(logging.LoggerAdapter):
    """LoggerAdapter that stamps a batch id and accepts context=... on every call."""

    def __init__(self, logger: logging.Logger, batch_id: str) -> None:
        super().__init__(logger, {"batch": batch_id})

    @property
    def batch_id(self) -> str:
        return str(self.extra["batch"])

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        context: Mapping[str, Any] = kwargs.pop("context", None) or {}
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("batch", self.extra["batch"])
        extra["context"] = dict(context)
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(log_file: str | Path | None = None, level: str = "INFO") -> None:
    """
    Install JSON handlers on the root logger (stderr + optional rotating file).

    Safe to call more than once: handlers installed by a previous call are
    replaced rather than duplicated.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = JsonLineFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_TAG, True)
        root.addHandler(handler)

    # httpx logs every request at INFO; keep it out of the run log.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = [
    "BatchLogger",
    "JsonLineFormatter",
    "configure_logging",
    "new_batch_id",
]
