"""Structured logging configuration using structlog.

The library only ever calls get_logger(); setup_logging() is for applications
that want the same renderer choice the client was developed with (JSON in
production, console output while debugging). configure_from_settings() takes
that choice from the WEBREG_LOG_JSON and WEBREG_LOG_LEVEL settings.
"""

import logging
import sys

import structlog

from webreg.config import ClientConfig, get_config


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog with appropriate processors and output format.

    Logs go to stderr so that applications printing JSON results on stdout
    stay clean.

    Args:
        json_output: If True, output JSON (production). If False, console format (dev).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs every request at INFO through stdlib logging; keep it quiet
    # unless the caller asked for debug output.
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))


def configure_from_settings(config: ClientConfig | None = None) -> None:
    """Run setup_logging() with the log settings of ``config``.

    Args:
        config: Client configuration; defaults to ``get_config()``.
    """
    config = config or get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance bound with the module name.

    Args:
        name: Logger name (typically __name__ from calling module).

    Returns:
        Configured structlog logger with module name context.
    """
    return structlog.get_logger(name)
