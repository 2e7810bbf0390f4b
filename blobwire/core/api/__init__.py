"""Configuration, events, retry strategies and bulk endpoint schemas."""
from .config import (
    ClientConfig,
    ConnectionConfig,
    ReconnectConfig,
    HeartbeatConfig,
    ChannelUploadConfig,
    BulkUploadConfig,
    SSLConfig,
    TimeoutConfig,
    DEFAULT_SIZE_THRESHOLD,
    DEFAULT_MAX_BULK_SIZE,
    LOG_LEVELS,
)
from .errors import HTTPStatusMapping
from .events import EventEmitter
from .retry import ReconnectStrategy, FixedDelayStrategy, ExponentialBackoffStrategy
from .schemas import UploadRequest, UploadResponse, UploadInfo, UploadList

__all__ = [
    # Configuration
    'ClientConfig',
    'ConnectionConfig',
    'ReconnectConfig',
    'HeartbeatConfig',
    'ChannelUploadConfig',
    'BulkUploadConfig',
    'SSLConfig',
    'TimeoutConfig',
    'DEFAULT_SIZE_THRESHOLD',
    'DEFAULT_MAX_BULK_SIZE',
    'LOG_LEVELS',

    # Errors
    'HTTPStatusMapping',

    # Events
    'EventEmitter',

    # Reconnection
    'ReconnectStrategy',
    'FixedDelayStrategy',
    'ExponentialBackoffStrategy',

    # Bulk endpoint
    'UploadRequest',
    'UploadResponse',
    'UploadInfo',
    'UploadList',
]
