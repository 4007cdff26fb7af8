from __future__ import annotations

import datetime as dt
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from pyiotdevice.config import IotConfig
from pyiotdevice.exceptions import IotApiError
from pyiotdevice.models.identity import DeviceIdentity
from pyiotdevice.models.messaging import QualityOfService
from pyiotdevice.state.events import BrokerStatus

POLICY_NAME = "DevicePolicy"
CERT_ID = "3f1b8a0c9d"
CERT_ARN = f"arn:aws:iot:eu-west-1:123456789012:cert/{CERT_ID}"
CERT_PEM = "-----BEGIN CERTIFICATE-----\nMIIBfake\n-----END CERTIFICATE-----\n"


def make_pkcs12(passphrase: str = "") -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "bundled-device")])
    now = dt.datetime.now(dt.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + dt.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    encryption: serialization.KeySerializationEncryption
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()
    return pkcs12.serialize_key_and_certificates(b"device", key, cert, None, encryption)


class FakeTransport:
    """In-memory control plane."""

    def __init__(
        self,
        *,
        issue_error: Exception | None = None,
        attach_error: Exception | None = None,
        visible_after: int = 1,
    ) -> None:
        self.issue_error = issue_error
        self.attach_error = attach_error
        self.visible_after = visible_after
        self.calls: list[tuple[str, str, dict[str, Any], dict[str, str]]] = []
        self._list_calls = 0
        self._attached = False

    def endpoints(self) -> list[str]:
        return [endpoint for _method, endpoint, _payload, _params in self.calls]

    async def request_json(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
        *,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        self.calls.append((method, endpoint, dict(payload or {}), dict(params or {})))
        if endpoint == "/certificates":
            if self.issue_error is not None:
                raise self.issue_error
            return {"certificateId": CERT_ID, "certificateArn": CERT_ARN, "certificatePem": CERT_PEM}
        if endpoint.startswith("/target-policies/"):
            if self.attach_error is not None:
                raise self.attach_error
            self._attached = True
            return {}
        if endpoint.startswith("/attached-policies/"):
            self._list_calls += 1
            if self._attached and self._list_calls >= self.visible_after:
                return {"policies": [{"policyName": POLICY_NAME, "policyArn": f"arn:policy/{POLICY_NAME}"}]}
            return {"policies": []}
        raise IotApiError(f"unexpected endpoint {endpoint}", code="404", endpoint=endpoint)


class FakeBroker:
    """Broker double that replays a scripted status sequence on connect."""

    def __init__(self, script: list[BrokerStatus] | None = None) -> None:
        self.script = [BrokerStatus.CONNECTING, BrokerStatus.CONNECTED] if script is None else script
        self.connects: list[tuple[str, bool, DeviceIdentity]] = []
        self.disconnects = 0
        self.subscriptions: dict[str, tuple[QualityOfService, Callable[[bytes], None]]] = {}
        self.unsubscribed: list[str] = []
        self.published: list[tuple[str, bytes, QualityOfService]] = []
        self.connect_threads: list[str] = []
        self._status_callback: Callable[[BrokerStatus], None] | None = None

    def connect(
        self,
        client_id: str,
        clean_session: bool,
        identity: DeviceIdentity,
        status_callback: Callable[[BrokerStatus], None],
    ) -> None:
        self.connects.append((client_id, clean_session, identity))
        self.connect_threads.append(threading.current_thread().name)
        self._status_callback = status_callback
        for status in self.script:
            status_callback(status)

    def emit(self, status: BrokerStatus) -> None:
        assert self._status_callback is not None
        self._status_callback(status)

    def disconnect(self) -> None:
        self.disconnects += 1

    def subscribe(self, topic: str, qos: QualityOfService, message_callback: Callable[[bytes], None]) -> None:
        self.subscriptions[topic] = (qos, message_callback)

    def unsubscribe(self, topic: str) -> None:
        self.unsubscribed.append(topic)
        self.subscriptions.pop(topic, None)

    def publish(self, topic: str, payload: bytes, qos: QualityOfService) -> None:
        self.published.append((topic, payload, qos))

    def deliver(self, topic: str, payload: bytes) -> None:
        _qos, callback = self.subscriptions[topic]
        callback(payload)


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bundle"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path: Path, bundle_dir: Path) -> IotConfig:
    return IotConfig(
        endpoint="a1b2c3-ats.iot.eu-west-1.amazonaws.com",
        control_plane_url="https://iot.eu-west-1.amazonaws.com",
        policy_name=POLICY_NAME,
        state_dir=str(tmp_path / "state"),
        bundle_dir=str(bundle_dir),
        policy_settle_delay=0.0,
        policy_poll_interval=0.0,
    )


@pytest.fixture
def pkcs12_bytes() -> Callable[..., bytes]:
    return make_pkcs12


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def broker_factory() -> type[FakeBroker]:
    return FakeBroker
