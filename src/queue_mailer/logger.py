"""Logging utilities for the queue mailer.

The actual logging setup (level, handlers, format) belongs to the
application entry point via ``logging.basicConfig()``; this module only
hands out named loggers.

Example:
    Typical usage in a module::

        from queue_mailer.logger import get_logger

        logger = get_logger("RetryEngine")
        logger.warning("Rescheduling job")
"""

import logging


def get_logger(name: str = "QueueMailer") -> logging.Logger:
    """Retrieve a logger instance.

    Args:
        name: The logger name. Defaults to "QueueMailer".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)
