"""Tests for configuration and reconnect strategies."""
import random

import pytest

from blobwire.core.api.config import (
    BulkUploadConfig,
    ChannelUploadConfig,
    ClientConfig,
    ConnectionConfig,
    HeartbeatConfig,
    ReconnectConfig,
    DEFAULT_SIZE_THRESHOLD,
)
from blobwire.core.api.retry import ExponentialBackoffStrategy, FixedDelayStrategy
from blobwire.core.exceptions import ConfigurationError


class TestClientConfig:
    """Test suite for ClientConfig."""

    def test_defaults(self):
        """Test default values."""
        config = ClientConfig()

        assert config.size_threshold == DEFAULT_SIZE_THRESHOLD
        assert config.auto_list_blobs is True
        assert config.log_level == 'info'
        assert config.connection.reconnect.delay == 3.0
        assert config.connection.reconnect.max_attempts == 5
        assert config.connection.heartbeat.interval == 30.0

    def test_for_server(self):
        """Test channel URL derivation."""
        config = ClientConfig.for_server('https://media.example.com/')

        assert config.connection.url == 'wss://media.example.com/ws'
        assert config.bulk.base_url == 'https://media.example.com'
        assert config.bulk.endpoint('/api/upload') == 'https://media.example.com/api/upload'

    def test_threshold_applies_to_both_paths(self):
        """Test the threshold is the channel ceiling and the bulk floor."""
        config = ClientConfig(size_threshold=1000)

        assert config.channel_config().max_file_size == 1000
        assert config.bulk_config().min_file_size == 1000

    @pytest.mark.parametrize('kwargs', [
        {'size_threshold': 0},
        {'log_level': 'verbose'},
        {'log_limit': 0},
        {'auto_list_delay': -1},
        {'size_threshold': 2 * 1024 ** 3},
    ])
    def test_invalid(self, kwargs):
        """Test malformed settings raise at construction."""
        with pytest.raises(ConfigurationError):
            ClientConfig(**kwargs)

    def test_invalid_server_url(self):
        """Test non-HTTP origins."""
        with pytest.raises(ConfigurationError):
            ClientConfig.for_server('ftp://example.com')


class TestSectionValidation:
    """Test suite for per-section validation."""

    def test_connection_url_scheme(self):
        """Test the channel URL must be ws or wss."""
        with pytest.raises(ConfigurationError):
            ConnectionConfig(url='http://example.com/ws').validate()

    def test_negative_reconnect_delay(self):
        """Test reconnect bounds."""
        with pytest.raises(ConfigurationError):
            ReconnectConfig(delay=-1).validate()

    def test_heartbeat_ack_timeout(self):
        """Test ack timeout must be positive."""
        with pytest.raises(ConfigurationError):
            HeartbeatConfig(ack_timeout=0).validate()

    def test_bulk_max_below_min(self):
        """Test bulk size bounds."""
        with pytest.raises(ConfigurationError):
            BulkUploadConfig(min_file_size=100, max_file_size=10).validate()

    def test_channel_client_id(self):
        """Test client id must be set."""
        with pytest.raises(ConfigurationError):
            ChannelUploadConfig(client_id='').validate()

    def test_session_kwargs(self):
        """Test cookies are only sent with credentials."""
        config = BulkUploadConfig(cookies={'session': 'abc'}, headers={'X-Test': '1'})

        assert config.get_session_kwargs()['cookies'] == {'session': 'abc'}
        assert config.get_session_kwargs()['headers'] == {'X-Test': '1'}

        config.credentials = False
        assert 'cookies' not in config.get_session_kwargs()


class TestReconnectStrategies:
    """Test suite for reconnect strategies."""

    def test_fixed_delay(self):
        """Test the same delay every attempt."""
        strategy = FixedDelayStrategy(delay=3.0, max_attempts=5)

        assert [strategy.delay(n) for n in (1, 2, 5)] == [3.0, 3.0, 3.0]
        assert strategy.should_retry(4)
        assert not strategy.should_retry(5)

    def test_unlimited(self):
        """Test zero means unlimited attempts."""
        assert FixedDelayStrategy(max_attempts=0).should_retry(1000)

    def test_backoff_grows_and_caps(self):
        """Test exponential growth up to the cap."""
        strategy = ExponentialBackoffStrategy(base_delay=1.0, max_delay=5.0, jitter=0)

        assert [strategy.delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_backoff_jitter_bounds(self):
        """Test jitter stays within the proportional spread."""
        strategy = ExponentialBackoffStrategy(base_delay=2.0, jitter=0.1, rng=random.Random(42))

        for _ in range(20):
            assert 1.8 <= strategy.delay(1) <= 2.2

    def test_config_builds_strategy(self):
        """Test the strategy follows the backoff flag."""
        assert isinstance(ReconnectConfig().create_strategy(), FixedDelayStrategy)
        assert isinstance(ReconnectConfig(backoff=True).create_strategy(), ExponentialBackoffStrategy)
