"""Structured logging for InsightForge services.

Log lines are emitted as JSON objects so the API and the worker can be
aggregated in one place. Run-lifecycle code attaches a RunContext so every
line about a run carries its identifiers.
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Optional


DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "insightforge"
PLAIN_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# Chatty third-party loggers that are capped at WARNING
NOISY_LOGGERS = ("httpx", "httpcore", "playwright", "urllib3")

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_loggers: dict[str, "StructuredLogger"] = {}


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record: base fields, extras, source and traceback."""

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        entry.update(
            (key, _json_value(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        )

        # Warnings and errors say where they came from
        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(entry)


@dataclass
class RunContext:
    """Identifiers attached to every log line about one run."""

    run_id: Optional[int] = None
    user_id: Optional[int] = None
    task_id: Optional[str] = None
    stage: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        values = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) not in (None, "")
        }
        values.update(self.extra)
        return values

    def with_stage(self, stage: str) -> "RunContext":
        return RunContext(
            run_id=self.run_id,
            user_id=self.user_id,
            task_id=self.task_id,
            stage=stage,
            extra=dict(self.extra),
        )


class StructuredLogger:
    """Stdlib logger facade taking a RunContext and keyword fields.

    Both end up on the record as ``extra`` attributes, which JsonFormatter
    renders as top-level keys.
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(name)

    def log(
        self,
        level: int,
        msg: str,
        context: Optional[RunContext] = None,
        exc_info: bool = False,
        **data: Any,
    ) -> None:
        extra = {**context.to_dict(), **data} if context else data
        self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, context: Optional[RunContext] = None, **data: Any) -> None:
        self.log(logging.DEBUG, msg, context, **data)

    def info(self, msg: str, context: Optional[RunContext] = None, **data: Any) -> None:
        self.log(logging.INFO, msg, context, **data)

    def warning(self, msg: str, context: Optional[RunContext] = None, **data: Any) -> None:
        self.log(logging.WARNING, msg, context, **data)

    def error(
        self,
        msg: str,
        context: Optional[RunContext] = None,
        exc_info: bool = False,
        **data: Any,
    ) -> None:
        self.log(logging.ERROR, msg, context, exc_info=exc_info, **data)

    def exception(self, msg: str, context: Optional[RunContext] = None, **data: Any) -> None:
        self.log(logging.ERROR, msg, context, exc_info=True, **data)


def get_logger(name: str) -> StructuredLogger:
    """Cached StructuredLogger for ``name``."""
    return _loggers.setdefault(name, StructuredLogger(name))


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Replace the root handlers with a single stdout handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines instead of plain text
        service_name: Value of the ``service`` field in JSON lines
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter(service_name=service_name) if json_format else logging.Formatter(PLAIN_FORMAT)
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
