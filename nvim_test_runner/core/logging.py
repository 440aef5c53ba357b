"""Structured logging configuration — structlog + stdlib logging."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

DEFAULT_LOG_FILE = "/tmp/nvim-test-runner.log"


def setup_logging(verbose: bool = False) -> None:
    """Configure structlog and stdlib logging.

    Console output goes to stderr (INFO, or DEBUG when *verbose*); a file
    handler keeps a DEBUG-level record of every run.

    Reads from environment variables:
        NVIM_TEST_RUNNER_LOG_LEVEL  — file log level (default: DEBUG)
        NVIM_TEST_RUNNER_LOG_FORMAT — console | json, for the file (default: console)
        NVIM_TEST_RUNNER_LOG_FILE   — log file path (default: /tmp/nvim-test-runner.log)
    """
    file_level = os.environ.get("NVIM_TEST_RUNNER_LOG_LEVEL", "DEBUG").upper()
    file_format = os.environ.get("NVIM_TEST_RUNNER_LOG_FORMAT", "console").lower()
    log_file = os.environ.get("NVIM_TEST_RUNNER_LOG_FILE", DEFAULT_LOG_FILE)
    console_level = "DEBUG" if verbose else "INFO"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if file_format == "json":
        file_renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        file_renderer = structlog.dev.ConsoleRenderer(colors=False)

    # --- structlog configure ---
    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "console",
            "level": console_level,
        },
    }
    root_handlers = ["console"]
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": log_file,
            "formatter": "file",
            "level": file_level,
            "delay": True,
        }
        root_handlers.append("file")

    # --- stdlib logging configure ---
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        structlog.dev.ConsoleRenderer(),
                    ],
                },
                "file": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        file_renderer,
                    ],
                },
            },
            "handlers": handlers,
            "root": {
                "handlers": root_handlers,
                "level": "DEBUG",
            },
            "loggers": {
                "asyncio": {"level": "WARNING"},
            },
        }
    )
