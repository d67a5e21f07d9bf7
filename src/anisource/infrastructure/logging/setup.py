from __future__ import annotations

import atexit
import copy
import logging
import logging.config
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Optional

import structlog

from anisource.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)


BASE_LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "httpx": {"level": "WARNING"},
        "httpcore": {"level": "WARNING"},
    },
}


def _add_record_created_timestamp_utc(
    _: Any, __: Any, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Ensure timestamps for non-structlog (foreign) LogRecords match the time when the record
    was created, not the time when the background listener formats it.

    ProcessorFormatter sets event_dict["_record"] for foreign records.
    """
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = dt.isoformat().replace("+00:00", "Z")
    return event_dict


_QUEUE_LISTENER: Optional[QueueListener] = None


def _renderer(config: AppConfig) -> structlog.typing.Processor:
    if config.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _processor_formatter(config: AppConfig) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            _add_record_created_timestamp_utc,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(config),
        ],
    )


def build_logging_config(config: AppConfig) -> dict[str, Any]:
    """
    Build a dictConfig rendered through structlog.

    Library loggers listed in BASE_LOGGING_CONFIG keep their own (quieter)
    level unless the configured level is DEBUG.
    """
    cfg = copy.deepcopy(BASE_LOGGING_CONFIG)

    cfg.setdefault("formatters", {})
    cfg["formatters"]["structlog"] = {
        "()": structlog.stdlib.ProcessorFormatter,
        "foreign_pre_chain": [
            structlog.contextvars.merge_contextvars,
            _add_record_created_timestamp_utc,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ],
        "processors": [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(config),
        ],
    }
    cfg["handlers"]["default"]["formatter"] = "structlog"

    level = config.log_level
    if level == "DEBUG":
        for logger_cfg in cfg["loggers"].values():
            logger_cfg["level"] = level

    cfg["root"] = {"handlers": ["default"], "level": level}
    return cfg


def _stop_async_listener() -> None:
    global _QUEUE_LISTENER
    if _QUEUE_LISTENER is not None:
        try:
            _QUEUE_LISTENER.stop()
        finally:
            _QUEUE_LISTENER = None


def _enable_async_logging(config: AppConfig) -> None:
    """
    Route ALL stdlib logging through a QueueHandler; emit via QueueListener in a background thread.

    Keeps blocking I/O off the asyncio loop. Everything goes to stderr so
    stdout stays reserved for command output (JSON descriptors).
    """
    global _QUEUE_LISTENER

    _stop_async_listener()

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setFormatter(_processor_formatter(config))

    q: queue.Queue[logging.LogRecord] = queue.Queue()  # unbounded; non-dropping

    class _StructlogPreservingQueueHandler(QueueHandler):
        """QueueHandler that keeps structlog event dicts (record.msg) intact."""

        def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
            # QueueHandler.prepare() would normally do record.msg = record.getMessage().
            return copy.copy(record)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_StructlogPreservingQueueHandler(q))
    root.setLevel(config.log_level)

    _QUEUE_LISTENER = QueueListener(q, stderr_handler, respect_handler_level=True)
    _QUEUE_LISTENER.start()
    atexit.register(_stop_async_listener)


def configure_logging(config: AppConfig) -> dict[str, Any]:
    """
    Configure structlog + stdlib logging.

    Returns the dictConfig (useful for debugging/inspection), but the
    actual emission is wired through QueueHandler/QueueListener.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    cfg = build_logging_config(config)
    logging.config.dictConfig(cfg)

    _enable_async_logging(config)

    log.info(
        "logging_configured", log_format=config.log_format, log_level=config.log_level
    )
    return cfg
