"""Realtime channel connection."""
from .status import ConnectionStatus, ConnectionStatusEvent
from .manager import (
    ConnectionManager,
    NORMAL_CLOSURE,
    ABNORMAL_CLOSURE,
    HEARTBEAT_TIMEOUT_CLOSURE,
)

__all__ = [
    'ConnectionStatus',
    'ConnectionStatusEvent',
    'ConnectionManager',
    'NORMAL_CLOSURE',
    'ABNORMAL_CLOSURE',
    'HEARTBEAT_TIMEOUT_CLOSURE',
]
