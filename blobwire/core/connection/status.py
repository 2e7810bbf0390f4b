"""Connection status values and status-change events."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConnectionStatus(str, Enum):
    """Lifecycle states of the realtime channel."""

    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    ERROR = 'error'


@dataclass(frozen=True)
class ConnectionStatusEvent:
    """Payload of ``status-change`` events."""
    status: ConnectionStatus
    user_count: int = 0
    connection_id: str = ''
    timestamp: float = field(default_factory=time.time)
    previous: Optional[ConnectionStatus] = None
