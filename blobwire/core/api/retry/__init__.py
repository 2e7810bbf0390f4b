"""Reconnect strategies."""
from .retry_strategy import ReconnectStrategy, FixedDelayStrategy, ExponentialBackoffStrategy

__all__ = [
    'ReconnectStrategy',
    'FixedDelayStrategy',
    'ExponentialBackoffStrategy',
]
