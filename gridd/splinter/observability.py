"""
Daemon Logging

Structured logging for the Grid daemon. Modules log through the standard
``logging`` module; this module adds:

- ``StructuredHandler``: one JSON object per record, for log shippers
- a correlation id bound per provisioning run through ``contextvars``, so
  every line of one run (build, assemble, submit) can be grouped
- ``configure_logging``: root logger setup used by the CLI

Records may carry ``operation`` and ``context`` extras:

    logger.info("Batches accepted", extra={"operation": "submit", "context": {"circuit": cid}})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(correlation)s%(message)s"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    operation: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                operation=getattr(record, "operation", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class CorrelationFilter(logging.Filter):
    """Adds ``%(correlation)s`` to text records ("[<id>] " or empty)."""

    def filter(self, record: logging.LogRecord) -> bool:
        cid = correlation_id_var.get()
        record.correlation = f"[{cid}] " if cid else ""
        return True


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block."""
    cid = correlation_id or new_correlation_id()
    token = correlation_id_var.set(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(token)


def configure_logging(
    level: str = "info",
    json_output: bool = False,
    stream: Any = None,
) -> logging.Handler:
    """Install a single handler on the root logger and return it."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_gridd_handler", False):
            root.removeHandler(handler)

    if json_output:
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
        handler.addFilter(CorrelationFilter())
    handler._gridd_handler = True  # type: ignore[attr-defined]

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
