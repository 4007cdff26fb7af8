"""Session and subscription models."""

from __future__ import annotations

import enum
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from pyiotdevice.models.identity import DeviceIdentity
from pyiotdevice.state.events import ConnectionState


class QualityOfService(enum.IntEnum):
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1


@dataclass(frozen=True, slots=True)
class TopicSubscription:
    """A live subscription; ``callback`` receives the UTF-8 decoded payload."""

    topic: str
    qos: QualityOfService
    callback: Callable[[str], None]


@dataclass(slots=True)
class ConnectionSession:
    """The single broker session held by a client.

    ``client_id`` is generated fresh for every connect attempt.
    """

    client_id: str
    identity: DeviceIdentity
    state: ConnectionState = ConnectionState.DISCONNECTED
    subscriptions: dict[str, TopicSubscription] = field(default_factory=dict)
    created_at: float = field(default_factory=time.monotonic)
