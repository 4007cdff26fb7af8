"""Public data models."""

from pyiotdevice.models.gpio import GpioCommand
from pyiotdevice.models.identity import AttachedPolicy, DeviceIdentity, IdentitySource, IssuedCertificate
from pyiotdevice.models.messaging import ConnectionSession, QualityOfService, TopicSubscription

__all__ = [
    "AttachedPolicy",
    "ConnectionSession",
    "DeviceIdentity",
    "GpioCommand",
    "IdentitySource",
    "IssuedCertificate",
    "QualityOfService",
    "TopicSubscription",
]
