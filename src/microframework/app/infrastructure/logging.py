# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides logging configuration for bootstrapped applications.

This module includes:
- `initialize_logger`: Configures structlog, and routes the standard library loggers used by
  uvicorn and SQLAlchemy through the same JSON renderer.
"""

import logging
import sys

import structlog

# =================================== #
#               Logging               #
# =================================== #


SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]

# Loggers of the libraries the framework starts.
LIBRARY_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine")


async def initialize_logger(log_level: str) -> None:
    """
    Initialize and configure the logger with `structlog`.

    Application logs go through structlog's processors and are rendered as JSON lines on
    stdout. Records emitted by the standard library loggers of uvicorn and SQLAlchemy are
    rendered by the same processors, so the whole output shares one format.

    Args:
        - log_level: The logging level to set (e.g., "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL").

    Raises:
        - TypeError: If the log_level is not provided.
        - ValueError: If the log_level is invalid.
    """
    if not log_level:
        raise TypeError

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *SHARED_PROCESSORS,
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            ),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in LIBRARY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers = []
        library_logger.propagate = True
