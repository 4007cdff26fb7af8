"""pyiotdevice - Async device provisioning and MQTT session client for cloud IoT brokers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyiotdevice")
except PackageNotFoundError:
    __version__ = "0+local"
from pyiotdevice.client import DeviceClient
from pyiotdevice.config import CsrSubject, IotConfig
from pyiotdevice.exceptions import (
    AlreadyConnectedError,
    BrokerConnectionError,
    BrokerConnectionRefusedError,
    BrokerProtocolError,
    BrokerTransportError,
    ConnectInProgressError,
    ConnectionStateError,
    IdentityImportError,
    IdentityIssuanceError,
    IotApiError,
    IotConfigError,
    IotCryptoError,
    IotError,
    IotTransportError,
    NotConnectedError,
    PolicyAttachError,
    UnknownBrokerStateError,
)
from pyiotdevice.identity.store import IdentityStore
from pyiotdevice.models import (
    ConnectionSession,
    DeviceIdentity,
    GpioCommand,
    IdentitySource,
    QualityOfService,
    TopicSubscription,
)
from pyiotdevice.state.events import BrokerStatus, ConnectionState, StateChange

__all__ = [
    "__version__",
    "AlreadyConnectedError",
    "BrokerConnectionError",
    "BrokerConnectionRefusedError",
    "BrokerProtocolError",
    "BrokerStatus",
    "BrokerTransportError",
    "ConnectInProgressError",
    "ConnectionSession",
    "ConnectionState",
    "ConnectionStateError",
    "CsrSubject",
    "DeviceClient",
    "DeviceIdentity",
    "GpioCommand",
    "IdentityImportError",
    "IdentityIssuanceError",
    "IdentitySource",
    "IdentityStore",
    "IotApiError",
    "IotConfig",
    "IotConfigError",
    "IotCryptoError",
    "IotError",
    "IotTransportError",
    "NotConnectedError",
    "PolicyAttachError",
    "QualityOfService",
    "StateChange",
    "TopicSubscription",
    "UnknownBrokerStateError",
]
