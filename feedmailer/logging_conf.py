"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
import re
from pathlib import Path
from urllib.parse import urlparse

import structlog

_LOGGING_INITIALISED = False
_LOG_DIR: Path | None = None


def _default_log_dir() -> Path:
    return Path.cwd() / "logs"


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED, _LOG_DIR

    if not _LOGGING_INITIALISED:
        log_dir = log_dir or _default_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        main_log = log_dir / "feedmailer.log"
        error_log = log_dir / "error.log"
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "main_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(main_log),
                        "encoding": "utf-8",
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "encoding": "utf-8",
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "feedmailer": {
                        "handlers": ["console", "main_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        # Forward structlog events to stdlib logging, JSON rendering happens in the handlers
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
        _LOG_DIR = log_dir
    return structlog.get_logger("feedmailer")


def source_log_name(url: str) -> str:
    """File-system safe name for a source, e.g. ``example.com_feed.xml``."""

    parsed = urlparse(url)
    raw = f"{parsed.hostname or ''}{parsed.path}" or url
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", raw).strip("._")
    return name[:120] or "source"


def source_logger(url: str) -> structlog.BoundLogger:
    """Return a logger bound to a specific source and ensure its file handler exists.

    The per-source file lives in ``logs/sources/`` once logging is configured.
    """

    name = source_log_name(url)
    logger_name = f"feedmailer.source.{name.replace('.', '_')}"
    if _LOG_DIR is not None:
        source_log_path = _LOG_DIR / "sources" / f"{name}.log"
        py_logger = logging.getLogger(logger_name)
        if not any(
            isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(source_log_path)
            for handler in py_logger.handlers
        ):
            source_log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(source_log_path, encoding="utf-8")
            # same JSON formatter as the application handlers
            app_logger = logging.getLogger("feedmailer")
            if app_logger.handlers:
                file_handler.setFormatter(app_logger.handlers[0].formatter)
            file_handler.setLevel(logging.INFO)
            py_logger.addHandler(file_handler)
    return structlog.get_logger(logger_name).bind(source=url)


__all__ = ["configure_logging", "source_log_name", "source_logger"]
