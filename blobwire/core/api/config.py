"""
Client configuration module.

Provides configuration for the realtime channel, both upload paths and the
client facade. Every section validates itself and raises
``ConfigurationError`` so a malformed setup fails at construction time.
"""
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, Tuple
from urllib.parse import urlsplit, urlunsplit
import ssl

import aiohttp

from ..exceptions import ConfigurationError
from .retry import ReconnectStrategy, FixedDelayStrategy, ExponentialBackoffStrategy


MB = 1024 * 1024
DEFAULT_SIZE_THRESHOLD = 10 * MB
DEFAULT_MAX_BULK_SIZE = 1024 * MB

LOG_LEVELS = ('none', 'error', 'warn', 'info', 'debug')


@dataclass
class SSLConfig:
    """
    SSL/TLS configuration.

    Applies to ``wss://`` channels and ``https://`` bulk requests.
    """
    verify: bool = True
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    ca_file: Optional[str] = None
    check_hostname: bool = True

    def create_ssl_context(self):
        """Create SSL context from configuration (``False`` disables verification)."""
        if not self.verify:
            return False

        context = ssl.create_default_context()

        if self.ca_file:
            context.load_verify_locations(self.ca_file)

        if self.cert_file:
            context.load_cert_chain(
                self.cert_file,
                keyfile=self.key_file
            )

        context.check_hostname = self.check_hostname

        return context


@dataclass
class TimeoutConfig:
    """
    Timeout configuration for bulk requests.

    The total defaults to five minutes per upload.
    """
    total: float = 300.0
    connect: float = 30.0
    sock_read: Optional[float] = None
    sock_connect: float = 30.0

    def to_aiohttp_timeout(self) -> aiohttp.ClientTimeout:
        """Convert to aiohttp ClientTimeout."""
        return aiohttp.ClientTimeout(
            total=self.total,
            connect=self.connect,
            sock_read=self.sock_read,
            sock_connect=self.sock_connect
        )


@dataclass
class ReconnectConfig:
    """
    Automatic reconnection settings.

    Attributes:
        enabled: Reconnect after abnormal closure or failed attempts
        delay: Seconds between attempts (base delay when ``backoff`` is set)
        max_attempts: Consecutive attempts before giving up, 0 = unlimited
        backoff: Use exponential backoff with jitter instead of a fixed delay
        max_delay: Upper bound for backoff delays
        jitter: Proportional jitter applied to backoff delays
    """
    enabled: bool = True
    delay: float = 3.0
    max_attempts: int = 5
    backoff: bool = False
    max_delay: float = 30.0
    jitter: float = 0.1

    def validate(self) -> None:
        if self.delay < 0:
            raise ConfigurationError(f"Reconnect delay must be >= 0, got {self.delay}")
        if self.max_attempts < 0:
            raise ConfigurationError(
                f"Reconnect max_attempts must be >= 0, got {self.max_attempts}"
            )
        if self.backoff and self.max_delay < self.delay:
            raise ConfigurationError("Reconnect max_delay must be >= delay")
        if not 0 <= self.jitter < 1:
            raise ConfigurationError(f"Reconnect jitter must be in [0, 1), got {self.jitter}")

    def create_strategy(self) -> ReconnectStrategy:
        """Build the strategy object matching this configuration."""
        if self.backoff:
            return ExponentialBackoffStrategy(
                base_delay=self.delay,
                max_delay=self.max_delay,
                max_attempts=self.max_attempts,
                jitter=self.jitter
            )
        return FixedDelayStrategy(delay=self.delay, max_attempts=self.max_attempts)


@dataclass
class HeartbeatConfig:
    """
    Keepalive settings.

    Attributes:
        interval: Seconds between heartbeats, 0 disables them
        ack_timeout: Seconds to wait for a heartbeat ack before treating the
            peer as dead; None keeps the connection open regardless
    """
    interval: float = 30.0
    ack_timeout: Optional[float] = None

    def validate(self) -> None:
        if self.interval < 0:
            raise ConfigurationError(f"Heartbeat interval must be >= 0, got {self.interval}")
        if self.ack_timeout is not None and self.ack_timeout <= 0:
            raise ConfigurationError("Heartbeat ack_timeout must be positive")


@dataclass
class ConnectionConfig:
    """Realtime channel configuration."""
    url: Optional[str] = None
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    heartbeat: HeartbeatConfig = field(default_factory=HeartbeatConfig)
    ssl: SSLConfig = field(default_factory=SSLConfig)
    headers: Dict[str, str] = field(default_factory=dict)
    open_timeout: float = 30.0

    def validate(self) -> None:
        if self.url is not None:
            validate_url(self.url, ('ws', 'wss'))
        if self.open_timeout <= 0:
            raise ConfigurationError("Connection open_timeout must be positive")
        self.reconnect.validate()
        self.heartbeat.validate()


@dataclass
class ChannelUploadConfig:
    """
    Small-file (channel) upload configuration.

    Attributes:
        max_file_size: Largest file accepted on this path
        allowed_mime_types: If non-empty, only these MIME types are accepted
        client_id: Value stored as ``source_client_id`` on created blobs
        user_agent: Recorded in blob metadata
    """
    max_file_size: int = DEFAULT_SIZE_THRESHOLD
    allowed_mime_types: Tuple[str, ...] = ()
    client_id: str = 'web-client'
    user_agent: str = 'blobwire/1.0.0'

    def validate(self) -> None:
        if self.max_file_size <= 0:
            raise ConfigurationError("Channel max_file_size must be positive")
        if not self.client_id:
            raise ConfigurationError("Channel client_id must not be empty")


@dataclass
class BulkUploadConfig:
    """
    Large-file (HTTP) upload configuration.

    Attributes:
        base_url: Server origin, e.g. ``http://localhost:3000``
        min_file_size: Smallest file accepted on this path
        max_file_size: Absolute ceiling
        timeout: Per-request timeouts
        credentials: Send session cookies with requests
        cookies: Session cookies supplied by the authenticated session
        headers: Extra headers (e.g. an authorization header)
        upload_path: Path of the upload endpoint
    """
    base_url: str = 'http://localhost:3000'
    min_file_size: int = DEFAULT_SIZE_THRESHOLD
    max_file_size: int = DEFAULT_MAX_BULK_SIZE
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    credentials: bool = True
    cookies: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    ssl: SSLConfig = field(default_factory=SSLConfig)
    upload_path: str = '/api/upload'
    list_path: str = '/api/uploads'

    def validate(self) -> None:
        validate_url(self.base_url, ('http', 'https'))
        if self.min_file_size <= 0:
            raise ConfigurationError("Bulk min_file_size must be positive")
        if self.max_file_size < self.min_file_size:
            raise ConfigurationError(
                f"Bulk max_file_size ({self.max_file_size}) is below "
                f"min_file_size ({self.min_file_size})"
            )

    def endpoint(self, path: str) -> str:
        """Join a path onto the base URL."""
        return f"{self.base_url.rstrip('/')}{path}"

    def get_session_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp ClientSession."""
        kwargs: Dict[str, Any] = {
            'headers': dict(self.headers),
            'timeout': self.timeout.to_aiohttp_timeout(),
        }
        if self.credentials and self.cookies:
            kwargs['cookies'] = dict(self.cookies)
        return kwargs


@dataclass
class ClientConfig:
    """
    Complete client configuration.

    ``size_threshold`` is authoritative: files below it go over the channel,
    files at or above it over the bulk path. ``channel_config()`` and
    ``bulk_config()`` return the sub-configurations with the threshold
    applied.
    """
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    channel: ChannelUploadConfig = field(default_factory=ChannelUploadConfig)
    bulk: BulkUploadConfig = field(default_factory=BulkUploadConfig)
    size_threshold: int = DEFAULT_SIZE_THRESHOLD
    auto_list_blobs: bool = True
    auto_list_delay: float = 0.1
    log_level: str = 'info'
    log_limit: int = 100

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate every section, raising ConfigurationError."""
        if self.size_threshold <= 0:
            raise ConfigurationError("size_threshold must be positive")
        if self.size_threshold > self.bulk.max_file_size:
            raise ConfigurationError(
                f"size_threshold ({self.size_threshold}) exceeds the bulk "
                f"ceiling ({self.bulk.max_file_size})"
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
        if self.log_limit <= 0:
            raise ConfigurationError("log_limit must be positive")
        if self.auto_list_delay < 0:
            raise ConfigurationError("auto_list_delay must be >= 0")
        self.connection.validate()
        self.channel_config().validate()
        self.bulk_config().validate()

    def channel_config(self) -> ChannelUploadConfig:
        return replace(self.channel, max_file_size=self.size_threshold)

    def bulk_config(self) -> BulkUploadConfig:
        return replace(self.bulk, min_file_size=self.size_threshold)

    @classmethod
    def default(cls) -> 'ClientConfig':
        """Create default configuration."""
        return cls()

    @classmethod
    def for_server(cls, base_url: str, ws_path: str = '/ws', **kwargs) -> 'ClientConfig':
        """
        Create configuration for a server origin.

        The channel URL is derived from the HTTP origin
        (``http`` -> ``ws``, ``https`` -> ``wss``).

        Example:
            >>> config = ClientConfig.for_server("https://media.example.com")
            >>> config.connection.url
            'wss://media.example.com/ws'
        """
        validate_url(base_url, ('http', 'https'))
        parts = urlsplit(base_url)
        scheme = 'wss' if parts.scheme == 'https' else 'ws'
        ws_url = urlunsplit((scheme, parts.netloc, ws_path, '', ''))

        connection = kwargs.pop('connection', None) or ConnectionConfig()
        connection = replace(connection, url=ws_url)
        bulk = kwargs.pop('bulk', None) or BulkUploadConfig()
        bulk = replace(bulk, base_url=base_url.rstrip('/'))
        return cls(connection=connection, bulk=bulk, **kwargs)


def validate_url(url: str, schemes: Tuple[str, ...]) -> None:
    """Raise ConfigurationError unless ``url`` has one of ``schemes`` and a host."""
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ConfigurationError(f"Invalid URL {url!r}: {e}") from e
    if parts.scheme not in schemes or not parts.netloc:
        raise ConfigurationError(
            f"Invalid URL {url!r}: expected {' or '.join(schemes)} scheme with a host"
        )
