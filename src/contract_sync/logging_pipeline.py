"""JSON log output for the contract commands."""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from queue import Full, Queue
from typing import Iterable, TextIO, override
from uuid import uuid4

LOGGER = logging.getLogger(__name__)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_KEYS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def __init__(self, *, default_trace_id: str | None = None) -> None:
        super().__init__()
        self._default_trace_id = default_trace_id

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        trace_id = getattr(record, "trace_id", None) or self._default_trace_id
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_KEYS and key != "trace_id"
        }

        payload: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": trace_id,
            "context": context,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exception"] = record.exc_text

        return json.dumps(payload, default=str)


class BoundedQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that drops records when the queue is full."""

    @override
    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except Full:
            self.handleError(record)

    @override
    def handleError(self, record: logging.LogRecord) -> None:
        return


def configure_structured_logging(
    logger: logging.Logger,
    *,
    trace_id: str | None = None,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> logging.handlers.QueueListener:
    """Attach JSON output to ``logger`` through a background queue listener.

    Args:
        logger: Target logger to configure.
        trace_id: Identifier stamped on every record; a random one is
            generated when omitted.
        level: Logging verbosity level.
        stream: Destination stream. Defaults to ``sys.stderr`` so command
            output on stdout stays clean.

    Returns:
        The started queue listener; stop it with :func:`shutdown_listeners`.
    """
    logger.setLevel(level)

    record_queue: Queue[logging.LogRecord] = Queue(maxsize=1024)
    logger.addHandler(BoundedQueueHandler(record_queue))

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(JsonFormatter(default_trace_id=trace_id or str(uuid4())))

    listener = logging.handlers.QueueListener(record_queue, stream_handler)
    listener.start()
    return listener


def shutdown_listeners(listeners: Iterable[logging.handlers.QueueListener]) -> None:
    """Stop all queue listeners, logging rather than raising on failure."""
    for listener in listeners:
        try:
            listener.stop()
        except Exception as exc:  # pragma: no cover - defensive logging cleanup
            LOGGER.warning("Failed to stop logging listener", exc_info=exc)


def detach_queue_handlers(logger: logging.Logger) -> None:
    """Remove handlers installed by :func:`configure_structured_logging`."""
    for handler in list(logger.handlers):
        if isinstance(handler, BoundedQueueHandler):
            logger.removeHandler(handler)
