"""
Logging setup shared by the command-line entry points.

Library modules only call `from loguru import logger`; the sink is chosen
once by whoever runs the pipeline.
"""

import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | <cyan>{message}</cyan>"
)


def resolve_log_level(config=None) -> str:
    """DEBUG in debug mode, otherwise the configured log level."""
    if config is None:
        from configs.config import settings as config

    if config.debug:
        return "DEBUG"
    return config.log_level.upper()


def setup_logging(level: Optional[str] = None, config=None) -> None:
    """Replace loguru's default sink with a coloured stderr sink."""
    if config is None:
        from configs.config import settings as config

    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=(level or resolve_log_level(config)).upper(),
        backtrace=config.debug,
        diagnose=config.debug,
    )
