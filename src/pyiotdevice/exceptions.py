"""Custom exception hierarchy for pyiotdevice."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyiotdevice.state.events import ConnectionState


class IotError(Exception):
    """Base exception for all pyiotdevice errors."""


class IotConfigError(IotError):
    """Invalid or missing configuration."""


class IotCryptoError(IotError):
    """Key, CSR or certificate handling failure."""


class IdentityImportError(IotCryptoError):
    """A bundled credential package could not be imported."""


class IotTransportError(IotError):
    """HTTP-level failure (network, unexpected status, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class IotApiError(IotError):
    """Control plane returned an error document."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class IdentityIssuanceError(IotApiError):
    """The credential-issuance service did not return a certificate."""


class PolicyAttachError(IotApiError):
    """The authorization policy could not be attached to a new identity."""


class ConnectionStateError(IotError):
    """Operation not allowed in the current connection state."""


class ConnectInProgressError(ConnectionStateError):
    """A connect attempt is already in flight.

    Only one attempt may be pending per client; wait for it to reach a
    terminal state before trying again.
    """


class AlreadyConnectedError(ConnectionStateError):
    """The client already holds a connected session."""


class NotConnectedError(ConnectionStateError):
    """Publish/subscribe requires a connected session."""


class BrokerConnectionError(IotError):
    """A connect attempt ended in a terminal failure state."""

    def __init__(self, message: str, *, state: ConnectionState) -> None:
        self.state = state
        super().__init__(message)


class BrokerConnectionRefusedError(BrokerConnectionError):
    """The broker rejected the connection (bad identity, policy, client id)."""


class BrokerProtocolError(BrokerConnectionError):
    """MQTT protocol-level failure during the handshake."""


class BrokerTransportError(BrokerConnectionError):
    """Network or TLS failure, or the broker dropped the connection."""


class UnknownBrokerStateError(BrokerConnectionError):
    """The broker reported a status code with no known meaning."""
