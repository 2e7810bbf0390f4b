"""
blobwire - Async Python client for realtime media blob transport.

Usage:
    >>> from blobwire import MediaClient, ClientConfig
    >>>
    >>> async with MediaClient(ClientConfig.for_server("http://localhost:3000")) as client:
    ...     task_ids = client.upload_files(["notes.txt", "movie.mp4"])
    ...     await client.wait_for_uploads(task_ids)
"""
import logging

from .client import MediaClient, ActivityEntry

# Configuration
from .core.api import (
    ClientConfig,
    ConnectionConfig,
    ReconnectConfig,
    HeartbeatConfig,
    ChannelUploadConfig,
    BulkUploadConfig,
    SSLConfig,
    TimeoutConfig,
)

# Components
from .core.blobs import MediaBlob
from .core.cache import BlobCache
from .core.connection import ConnectionManager, ConnectionStatus
from .core.upload import (
    BulkUploadPipeline,
    ChannelUploadPipeline,
    SmartUploadRouter,
    UploadStatus,
    UploadTask,
)

# Errors
from .core.exceptions import (
    BlobwireError,
    ConfigurationError,
    UploadError,
    UploadErrorKind,
    ConnectionFailedError,
    BulkRequestError,
    ProtocolValidationError,
)
from .core.logging import PACKAGE_LOGGERS, resolve_level

__version__ = '1.0.0'


def setup_logging(level=logging.INFO):
    """
    Configure logging for blobwire modules.

    Sets the level of every blobwire logger and keeps propagation enabled,
    so output goes wherever the root logger sends it.

    Args:
        level: Logging level or name (default: logging.INFO)
    """
    level = resolve_level(level)
    for logger_name in PACKAGE_LOGGERS:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        logger.propagate = True


__all__ = [
    'MediaClient',
    'ActivityEntry',
    'ClientConfig',
    'ConnectionConfig',
    'ReconnectConfig',
    'HeartbeatConfig',
    'ChannelUploadConfig',
    'BulkUploadConfig',
    'SSLConfig',
    'TimeoutConfig',
    'MediaBlob',
    'BlobCache',
    'ConnectionManager',
    'ConnectionStatus',
    'BulkUploadPipeline',
    'ChannelUploadPipeline',
    'SmartUploadRouter',
    'UploadStatus',
    'UploadTask',
    'BlobwireError',
    'ConfigurationError',
    'UploadError',
    'UploadErrorKind',
    'ConnectionFailedError',
    'BulkRequestError',
    'ProtocolValidationError',
    'setup_logging',
    '__version__',
]
