"""Logging setup for plan checks.

Records about one plan carry the plan's context (query id, mode, predicate,
target) as record attributes. The JSON formatter emits them as top-level
fields and the text formatter appends them in brackets, so a batch log can
be filtered per query or per mode.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

PLAN_CONTEXT_FIELDS = ("query_id", "mode", "predicate", "target")


def plan_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the plan context fields set on a record, in a fixed order."""
    context: Dict[str, Any] = {}
    for name in PLAN_CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            context[name] = value
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, plan context as top-level fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(plan_context(record))
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


class StandardFormatter(logging.Formatter):
    """Human-readable lines ending in ``[query_id=... mode=...]`` when known."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = plan_context(record)
        if not context:
            return line
        parts: List[str] = []
        for name, value in context.items():
            parts.append(f"{name}={value}")
        return f"{line} [{' '.join(parts)}]"


def setup_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger.

    Console output goes to stderr; stdout is reserved for command results.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        structured: Emit JSON lines instead of text
        log_file: Optional file that receives the same records
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = StructuredFormatter() if structured else StandardFormatter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    logging.getLogger("psycopg2").setLevel(logging.WARNING)


class PlanLogger(logging.LoggerAdapter):
    """Adapter that stamps every record with one plan's context."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> Tuple[str, MutableMapping[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def plan_logger(
    name: str,
    query_id: Optional[str] = None,
    mode: Optional[str] = None,
    predicate: Optional[str] = None,
    target: Optional[str] = None,
) -> PlanLogger:
    """Logger for messages about a single plan or plan pair.

    Example:
        >>> log = plan_logger(__name__, query_id="q01", mode="on")
        >>> log.info("Plan captured")  # ... [query_id=q01 mode=on]
    """
    context = {"query_id": query_id, "mode": mode, "predicate": predicate, "target": target}
    return PlanLogger(logging.getLogger(name), context)
