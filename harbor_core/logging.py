"""
Centralized logging configuration for the authorization service.
Initializes loguru and intercepts standard library logging.
"""

import logging
import sys

from loguru import logger

from harbor_core.config import settings


class InterceptHandler(logging.Handler):
    """
    Default handler from documents for intercepting standard library logging messages.
    See: https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
    """

    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _not_audit(record) -> bool:
    return not record["extra"].get("audit", False)


def setup_logging(level: str | None = None):
    """
    Configures loguru to handle all logs and output them to stdout.

    Audit records (bound with ``audit=True``) go to a separate JSON-serialized
    stdout sink so log shippers can route them to the audit trail.
    """
    level = level or settings.LOG_LEVEL

    # Remove all existing handlers
    logger.remove()

    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
        colorize=True,
        filter=_not_audit,
    )
    logger.add(
        sys.stdout,
        level="INFO",
        serialize=True,
        filter=lambda record: record["extra"].get("audit", False),
    )

    # Intercept standard library logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in ["uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"]:
        _logger = logging.getLogger(name)
        _logger.handlers = [InterceptHandler()]
        _logger.propagate = False

    logger.info("Logging initialized with Loguru.")
