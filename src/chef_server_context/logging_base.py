"""
Logger factory for the package.

get_logger configures the root logger once, at the level taken from the
CHEF_CONTEXT_LOG_LEVEL setting, unless the host application already set up
logging.
"""

import logging

from .settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configured_level() -> int:
    return logging.getLevelName(get_settings().log_level.value)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name.

    Args:
        name: Name of the logger (typically __name__)

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)

    # Set up basic configuration if not already configured
    if not logger.handlers and not logging.getLogger().handlers:
        logging.basicConfig(level=_configured_level(), format=LOG_FORMAT)

    return logger

