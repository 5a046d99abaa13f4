from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from tracktube.config import AppSettings

LOG_FILE_NAME = "tracktube.log"
TELEMETRY_LOG_FILE_NAME = "tracktube-telemetry.log"
APP_LOGGER_NAME = "tracktube"
TELEMETRY_LOGGER_NAME = "tracktube.telemetry"

# `tracktube serve` starts uvicorn with log_config=None; its loggers share our handlers.
_SERVER_LOGGER_NAMES: tuple[str, ...] = ("uvicorn", "uvicorn.error", "uvicorn.access")
_QUIET_LOGGER_NAMES: tuple[str, ...] = ("googleapiclient", "urllib3")


def configure_application_logging(settings: AppSettings) -> Path:
    """
    Route tracktube and uvicorn logs to stderr and a JSON log file.

    Telemetry events go only to their own JSON file. Calling this again
    replaces the handlers, so the CLI and the server lifespan can both call it.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    telemetry_file = settings.log_dir / TELEMETRY_LOG_FILE_NAME
    console_level = _resolve_log_level(settings.log_level)

    _configure_structlog()

    console_handler = _console_handler(sys.stderr, level=console_level)
    file_handler = _json_file_handler(log_file, level=logging.DEBUG)

    _attach(
        logging.getLogger(APP_LOGGER_NAME),
        level=logging.DEBUG,
        handlers=(console_handler, file_handler),
    )
    _attach(
        logging.getLogger(TELEMETRY_LOGGER_NAME),
        level=logging.INFO,
        handlers=(_json_file_handler(telemetry_file, level=logging.INFO),),
    )
    for name in _SERVER_LOGGER_NAMES:
        _attach(logging.getLogger(name), level=console_level, handlers=(console_handler, file_handler))
    for name in _QUIET_LOGGER_NAMES:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(APP_LOGGER_NAME).info(
        "logging configured console_level=%s path=%s telemetry_path=%s",
        logging.getLevelName(console_level),
        log_file,
        telemetry_file,
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _attach(
    logger: logging.Logger,
    *,
    level: int,
    handlers: tuple[logging.Handler, ...],
) -> None:
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        logger.addHandler(handler)


def _console_handler(stream: TextIO, *, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=_is_tty(stream)),
            ],
        )
    )
    return handler


def _json_file_handler(path: Path, *, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                _add_source_location,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["thread_name"] = record.threadName
    return event_dict


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (OSError, ValueError):
        return False
