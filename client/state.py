from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ConnectionState(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ConnectionEvent(str, Enum):
    START = "START"                    # manager started with a credential
    NO_CREDENTIAL = "NO_CREDENTIAL"    # credential missing at attempt time
    OPENED = "OPENED"                  # transport confirmed the open
    OPEN_FAILED = "OPEN_FAILED"        # transport refused or errored while opening
    MESSAGE = "MESSAGE"                # inbound frame
    CLOSED = "CLOSED"                  # transport closed
    ERROR = "ERROR"                    # transport error
    RETRY = "RETRY"                    # reconnection timer fired
    STOP = "STOP"                      # manager teardown


S, E = ConnectionState, ConnectionEvent

# Pairs not listed leave the state unchanged
TRANSITIONS: Dict[Tuple[ConnectionState, ConnectionEvent], ConnectionState] = {
    (S.IDLE, E.START): S.CONNECTING,

    (S.CONNECTING, E.OPENED): S.OPEN,
    (S.CONNECTING, E.OPEN_FAILED): S.CLOSED,
    (S.CONNECTING, E.CLOSED): S.CLOSED,
    (S.CONNECTING, E.ERROR): S.CLOSED,
    (S.CONNECTING, E.NO_CREDENTIAL): S.IDLE,
    (S.CONNECTING, E.STOP): S.IDLE,

    (S.OPEN, E.CLOSED): S.CLOSED,
    (S.OPEN, E.ERROR): S.CLOSED,
    (S.OPEN, E.STOP): S.IDLE,

    (S.CLOSED, E.RETRY): S.CONNECTING,
    (S.CLOSED, E.STOP): S.IDLE,
}

del S, E


def transition(state: ConnectionState, event: ConnectionEvent) -> ConnectionState:
    return TRANSITIONS.get((state, event), state)


@dataclass
class SessionState:
    """Everything the consumer can observe about one managed connection."""
    state: ConnectionState = ConnectionState.IDLE
    connection: Optional[Any] = None
    connected: bool = False
    messages: List[Any] = field(default_factory=list)
    attempts: int = 0

    def publish(self, connection: Any) -> None:
        self.connection = connection
        self.connected = True

    def clear(self) -> None:
        self.connection = None
        self.connected = False
