"""Broker client interface and its paho-mqtt implementation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pyiotdevice.exceptions import IotError, NotConnectedError
from pyiotdevice.identity.store import CredentialPaths
from pyiotdevice.models.identity import DeviceIdentity
from pyiotdevice.models.messaging import QualityOfService
from pyiotdevice.state.events import BrokerStatus

StatusCallback = Callable[[BrokerStatus], None]
MessageCallback = Callable[[bytes], None]

# MQTT v5 CONNACK reason codes (paho maps v3.1.1 return codes onto these).
_PROTOCOL_REASON_CODES = frozenset({0x81, 0x82, 0x84, 0x95, 0x9A, 0x9B})
_REFUSED_REASON_CODES = frozenset({0x80, 0x83, 0x85, 0x86, 0x87, 0x88, 0x89, 0x8A, 0x8C, 0x97, 0x99, 0x9C, 0x9D, 0x9F})


def status_from_connack(reason_code: int) -> BrokerStatus:
    """Translate a CONNACK reason code into a :class:`BrokerStatus`."""
    if reason_code == 0:
        return BrokerStatus.CONNECTED
    if reason_code in _PROTOCOL_REASON_CODES:
        return BrokerStatus.PROTOCOL_ERROR
    if reason_code in _REFUSED_REASON_CODES:
        return BrokerStatus.CONNECTION_REFUSED
    return BrokerStatus.UNKNOWN


class BrokerClient(Protocol):
    """Blocking broker operations.

    Callbacks fire on the client's network thread; callers are responsible
    for moving them onto their own update path.
    """

    def connect(
        self,
        client_id: str,
        clean_session: bool,
        identity: DeviceIdentity,
        status_callback: StatusCallback,
    ) -> None: ...

    def disconnect(self) -> None: ...

    def subscribe(self, topic: str, qos: QualityOfService, message_callback: MessageCallback) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...

    def publish(self, topic: str, payload: bytes, qos: QualityOfService) -> None: ...


class PahoBrokerClient:
    """Threaded paho-mqtt client authenticating with the identity's X.509 credentials.

    Automatic reconnects are disabled: every failure is terminal for the
    attempt that hit it.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        credentials: Callable[[DeviceIdentity], CredentialPaths],
        ca_path: str | None = None,
        keepalive: int = 60,
        trace: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._credentials = credentials
        self._ca_path = ca_path
        self._keepalive = keepalive
        self._trace = trace
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._connected = False
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(
        self,
        client_id: str,
        clean_session: bool,
        identity: DeviceIdentity,
        status_callback: StatusCallback,
    ) -> None:
        """Open the TLS connection and start the network loop.

        Returns once the CONNECT packet is sent; the outcome arrives through
        *status_callback*.
        """
        self.disconnect()
        paths = self._credentials(identity)
        self._logger.debug(
            "MQTT connect requested host=%s port=%s client_id=%s identity=%s",
            self._host,
            self._port,
            client_id,
            identity.identity_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=clean_session,
            protocol=mqtt.MQTTv311,
            reconnect_on_failure=False,
        )
        if self._trace:
            client.enable_logger(self._logger)

        attempt_done = False

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            nonlocal attempt_done
            attempt_done = True
            status = status_from_connack(int(reason_code.value))
            if status is BrokerStatus.CONNECTED:
                self._connected = True
                self._logger.debug("MQTT connected client_id=%s", client_id)
            else:
                self._logger.warning("MQTT connect failed: %s", reason_code)
            status_callback(status)

        def on_disconnect(
            _c: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            was_connected = self._connected
            self._connected = False
            if self._closing:
                return
            self._logger.debug("MQTT disconnected: %s", reason_code)
            if was_connected:
                status_callback(BrokerStatus.DISCONNECTED)
            elif not attempt_done:
                # Socket closed before any CONNACK arrived.
                status_callback(BrokerStatus.CONNECTION_ERROR)

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect

        self._closing = False
        status_callback(BrokerStatus.CONNECTING)
        try:
            client.tls_set(
                ca_certs=self._ca_path,
                certfile=str(paths.certificate_path),
                keyfile=str(paths.private_key_path),
            )
            client.connect(self._host, self._port, keepalive=self._keepalive)
        except (OSError, ValueError):
            self._logger.warning("MQTT transport setup failed for %s:%s", self._host, self._port, exc_info=True)
            status_callback(BrokerStatus.CONNECTION_ERROR)
            return

        client.loop_start()
        with self._lock:
            self._client = client
        self._logger.debug("MQTT network loop started")

    def disconnect(self) -> None:
        """Stop and disconnect the current client, if any."""
        with self._lock:
            client = self._client
            self._client = None
        if client is None:
            return
        self._closing = True
        try:
            if self._connected:
                self._logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            self._connected = False
            self._logger.debug("MQTT network loop stopped")

    def _require_client(self) -> mqtt.Client:
        client = self._client
        if client is None or not self._connected:
            raise NotConnectedError("MQTT client is not connected")
        return client

    def subscribe(self, topic: str, qos: QualityOfService, message_callback: MessageCallback) -> None:
        client = self._require_client()

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._logger.debug("Received PUBLISH topic=%s bytes=%d", msg.topic, len(msg.payload))
            message_callback(msg.payload)

        client.message_callback_add(topic, on_message)
        result, _mid = client.subscribe(topic, qos=int(qos))
        if result != mqtt.MQTT_ERR_SUCCESS:
            client.message_callback_remove(topic)
            raise IotError(f"Subscribe to {topic} failed: {mqtt.error_string(result)}")
        self._logger.debug("MQTT subscribed topic=%s qos=%d", topic, int(qos))

    def unsubscribe(self, topic: str) -> None:
        client = self._client
        if client is None:
            return
        client.message_callback_remove(topic)
        if self._connected:
            client.unsubscribe(topic)
        self._logger.debug("MQTT unsubscribed topic=%s", topic)

    def publish(self, topic: str, payload: bytes, qos: QualityOfService) -> None:
        client = self._require_client()
        info = client.publish(topic, payload, qos=int(qos))
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise IotError(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")
        self._logger.debug("MQTT published topic=%s bytes=%d", topic, len(payload))
