"""Logging utilities for blobwire modules."""

import logging


PACKAGE_LOGGERS = (
    'blobwire',
    'blobwire.client',
    'blobwire.connection',
    'blobwire.upload',
    'blobwire.upload.channel',
    'blobwire.upload.bulk',
    'blobwire.upload.router',
    'blobwire.cache',
)


def get_logger(name: str) -> logging.Logger:
    """Get a logger that automatically inherits from root logger.

    Loggers propagate to the root logger, so ``logging.basicConfig()`` is
    enough to see their output. When the root logger has no handlers yet,
    the logger defaults to WARNING so library output stays quiet.

    Args:
        name: Logger name (typically one of ``PACKAGE_LOGGERS``)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.propagate = True

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logger.setLevel(logging.WARNING)

    return logger


def resolve_level(level) -> int:
    """
    Convert a level name or number into a ``logging`` level.

    Accepts ints and names such as ``"debug"`` or ``"WARNING"``.
    ``"warn"`` is accepted as an alias of WARNING.
    """
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name == 'WARN':
        name = 'WARNING'
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value
