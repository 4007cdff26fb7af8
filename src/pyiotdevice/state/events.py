"""Connection states, broker status codes and state-change events."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class BrokerStatus(enum.IntEnum):
    """Raw status codes reported by the broker client.

    Values the transport sends that have no mapped member resolve to
    ``UNKNOWN`` instead of raising ``ValueError``.
    """

    UNKNOWN = 0
    CONNECTING = 1
    CONNECTED = 2
    DISCONNECTED = 3
    CONNECTION_REFUSED = 4
    CONNECTION_ERROR = 5
    PROTOCOL_ERROR = 6

    @classmethod
    def _missing_(cls, value: object) -> BrokerStatus:
        return cls.UNKNOWN


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REFUSED = "refused"
    PROTOCOL_ERROR = "protocol_error"
    CONNECTION_ERROR = "connection_error"
    UNKNOWN = "unknown"

    @classmethod
    def from_broker_status(cls, status: BrokerStatus | int) -> ConnectionState:
        return _STATUS_TO_STATE[BrokerStatus(status)]

    @property
    def is_terminal(self) -> bool:
        """Whether a connect attempt is finished once this state is reached."""
        return self is not ConnectionState.CONNECTING and self is not ConnectionState.DISCONNECTED

    @property
    def is_error(self) -> bool:
        return self in _ERROR_STATES

    @property
    def label(self) -> str:
        """Human readable status text."""
        return _LABELS[self]


_STATUS_TO_STATE: dict[BrokerStatus, ConnectionState] = {
    BrokerStatus.UNKNOWN: ConnectionState.UNKNOWN,
    BrokerStatus.CONNECTING: ConnectionState.CONNECTING,
    BrokerStatus.CONNECTED: ConnectionState.CONNECTED,
    BrokerStatus.DISCONNECTED: ConnectionState.DISCONNECTED,
    BrokerStatus.CONNECTION_REFUSED: ConnectionState.REFUSED,
    BrokerStatus.CONNECTION_ERROR: ConnectionState.CONNECTION_ERROR,
    BrokerStatus.PROTOCOL_ERROR: ConnectionState.PROTOCOL_ERROR,
}

_ERROR_STATES = frozenset(
    {
        ConnectionState.REFUSED,
        ConnectionState.PROTOCOL_ERROR,
        ConnectionState.CONNECTION_ERROR,
        ConnectionState.UNKNOWN,
    }
)

_LABELS: dict[ConnectionState, str] = {
    ConnectionState.DISCONNECTED: "Disconnected",
    ConnectionState.CONNECTING: "Connecting...",
    ConnectionState.CONNECTED: "Connected",
    ConnectionState.REFUSED: "Connection Refused",
    ConnectionState.PROTOCOL_ERROR: "Protocol Error",
    ConnectionState.CONNECTION_ERROR: "Connection Error",
    ConnectionState.UNKNOWN: "Unknown State",
}


class StateChange(BaseModel):
    """A state-changed notification."""

    model_config = ConfigDict(frozen=True)

    previous: ConnectionState
    current: ConnectionState
    client_id: str | None = None
    status: BrokerStatus | None = Field(
        default=None,
        description="Raw broker status that caused the change, if any.",
    )
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
