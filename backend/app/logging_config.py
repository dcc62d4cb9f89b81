from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

from backend.app.config import AppSettings
from backend.app.telemetry import REDACTED, is_sensitive_key

LOG_FILE_NAME = "tube-guard.log"
PROVIDER_LOG_FILE_NAME = "tube-guard-providers.log"
TELEMETRY_LOG_FILE_NAME = "tube-guard-telemetry.log"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3

# Extraction libraries log every request at INFO.
THIRD_PARTY_LOG_LEVELS: dict[str, int] = {
    "googleapiclient.discovery_cache": logging.ERROR,
    "googleapiclient.http": logging.WARNING,
    "urllib3": logging.WARNING,
    "yt_dlp": logging.WARNING,
}


@dataclass(frozen=True)
class _FileTarget:
    logger_name: str
    file_name: str
    level: int
    propagate: bool


# Provider lines also reach the main log; telemetry stays in its own file.
_SIDE_FILES: tuple[_FileTarget, ...] = (
    _FileTarget("tube_guard.providers", PROVIDER_LOG_FILE_NAME, logging.DEBUG, propagate=True),
    _FileTarget("tube_guard.telemetry", TELEMETRY_LOG_FILE_NAME, logging.INFO, propagate=False),
)


def configure_application_logging(settings: AppSettings) -> Path:
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    console_level = _resolve_log_level(settings.log_level)

    _configure_structlog()

    root = logging.getLogger("tube_guard")
    root.setLevel(logging.DEBUG)
    root.propagate = False
    _reset_handlers(root)
    root.addHandler(_console_handler(console_level))
    root.addHandler(_file_handler(log_file, logging.DEBUG))

    for target in _SIDE_FILES:
        logger = logging.getLogger(target.logger_name)
        logger.setLevel(target.level)
        logger.propagate = target.propagate
        _reset_handlers(logger)
        logger.addHandler(_file_handler(log_dir / target.file_name, target.level))

    for name, level in THIRD_PARTY_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    root.info(
        "logging configured console_level=%s path=%s side_files=%s",
        logging.getLevelName(console_level),
        log_file,
        ",".join(target.file_name for target in _SIDE_FILES),
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            _redact_sensitive_fields,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _console_handler(level: int) -> logging.Handler:
    stream = sys.stdout
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=_is_terminal(stream)),
            ],
        )
    )
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                _add_source_location,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True, ensure_ascii=False),
            ],
        )
    )
    return handler


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _redact_sensitive_fields,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _redact_sensitive_fields(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    for key in list(event_dict):
        if key != "event" and not key.startswith("_") and is_sensitive_key(key):
            event_dict[key] = REDACTED
    return event_dict


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


def _is_terminal(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(callable(isatty) and isatty())
