"""
Logging configuration.

Configures loguru for the ledger processes (worker, scheduler).
"""

import sys

from loguru import logger

from referral_ledger.config.settings import settings


def setup_logging(log_file: str | None = None) -> None:
    """
    Configure logger sinks.

    Args:
        log_file: Optional rotating file sink path
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        serialize=settings.log_json,
        backtrace=settings.debug,
        diagnose=settings.debug,
    )
    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=settings.log_level,
            encoding="utf-8",
            serialize=settings.log_json,
        )
