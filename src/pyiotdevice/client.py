"""High-level async client: provision an identity, then talk MQTT with it."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp
from pydantic import BaseModel

from pyiotdevice._mqtt import BrokerClient, PahoBrokerClient
from pyiotdevice._transport import ControlPlaneTransport, Transport
from pyiotdevice.config import IotConfig
from pyiotdevice.exceptions import (
    BrokerConnectionError,
    BrokerConnectionRefusedError,
    BrokerProtocolError,
    BrokerTransportError,
    ConnectInProgressError,
    IotError,
    NotConnectedError,
    UnknownBrokerStateError,
)
from pyiotdevice.identity.provisioner import IdentityProvisioner
from pyiotdevice.identity.store import IdentityStore
from pyiotdevice.models.gpio import GpioCommand
from pyiotdevice.models.identity import DeviceIdentity
from pyiotdevice.models.messaging import ConnectionSession, QualityOfService, TopicSubscription
from pyiotdevice.state.events import BrokerStatus, ConnectionState, StateChange
from pyiotdevice.state.machine import ConnectionStateMachine, StateChangeStream, StateListener

_logger = logging.getLogger(__name__)

_FAILURE_ERRORS: dict[ConnectionState, type[BrokerConnectionError]] = {
    ConnectionState.REFUSED: BrokerConnectionRefusedError,
    ConnectionState.PROTOCOL_ERROR: BrokerProtocolError,
    ConnectionState.CONNECTION_ERROR: BrokerTransportError,
    ConnectionState.DISCONNECTED: BrokerTransportError,
    ConnectionState.UNKNOWN: UnknownBrokerStateError,
}


class DeviceClient:
    """Async device client.

    Owns one identity and at most one broker session. Broker callbacks are
    marshalled onto the event loop the client was entered on; that loop is
    the only place connection state changes.

    Usage::

        async with DeviceClient(config) as client:
            await client.connect()
            await client.subscribe("/request", QualityOfService.AT_MOST_ONCE, print)
            await client.publish("/request", "hello")
    """

    def __init__(
        self,
        config: IotConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        broker: BrokerClient | None = None,
        store: IdentityStore | None = None,
        on_state_change: Callable[[StateChange], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._store = store or IdentityStore(config.state_dir)
        self._broker: BrokerClient = broker or PahoBrokerClient(
            host=config.endpoint,
            port=config.port,
            credentials=self._store.credential_paths,
            ca_path=config.ca_path,
            keepalive=config.keepalive,
            trace=config.mqtt_trace_enabled,
            logger=_logger,
        )
        self._machine = ConnectionStateMachine()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._provisioner: IdentityProvisioner | None = None
        self._session: ConnectionSession | None = None
        self._connecting = False
        self._connect_waiter: asyncio.Future[ConnectionState] | None = None
        if on_state_change is not None:
            self._machine.add_listener(on_state_change)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DeviceClient:
        self._loop = asyncio.get_running_loop()
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = ControlPlaneTransport(self._config, self._http_session)
        self._provisioner = IdentityProvisioner(self._config, self._store, self._transport)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        try:
            await self.disconnect()
        finally:
            if not self._external_session and self._http_session is not None:
                await self._http_session.close()
                self._http_session = None
            self._loop = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._machine.state

    @property
    def session(self) -> ConnectionSession | None:
        return self._session

    @property
    def store(self) -> IdentityStore:
        return self._store

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change listener; returns its remover."""
        return self._machine.add_listener(listener)

    def events(self) -> StateChangeStream:
        """Buffered stream of state changes from this call on; ``aclose()`` it when done."""
        return self._machine.events()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise IotError("Client not initialized. Use 'async with DeviceClient(...) as client:'")
        return self._loop

    def _require_provisioner(self) -> IdentityProvisioner:
        self._require_loop()
        if self._provisioner is None:
            raise IotError("Client not initialized. Use 'async with DeviceClient(...) as client:'")
        return self._provisioner

    def _require_connected(self) -> ConnectionSession:
        session = self._session
        if session is None or self._machine.state is not ConnectionState.CONNECTED:
            raise NotConnectedError(f"Not connected (state={self._machine.state.label})")
        return session

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def ensure_identity(self) -> DeviceIdentity:
        """Return the persisted identity, importing or issuing one if needed."""
        return await self._require_provisioner().ensure_identity()

    async def clear_identity(self) -> bool:
        """Forget the persisted identity so the next connect provisions again."""
        if self._session is not None or self._connecting:
            raise IotError("Cannot clear the identity while a session is active")
        loop = self._require_loop()
        return await loop.run_in_executor(None, self._store.clear)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> ConnectionSession:
        """Connect to the broker and wait for a terminal status.

        Returns
        -------
        ConnectionSession
            The connected session.

        Raises
        ------
        ConnectInProgressError
            Another connect attempt has not reached a terminal status yet.
        AlreadyConnectedError
            A session is already connected.
        IdentityIssuanceError, PolicyAttachError
            Provisioning a new identity failed.
        BrokerConnectionError
            The broker refused or failed the connection.
        """
        loop = self._require_loop()
        if self._connecting:
            raise ConnectInProgressError("A connect attempt is already in progress")
        self._machine.require_idle()
        self._connecting = True
        try:
            identity = await self.ensure_identity()
            client_id = str(uuid.uuid4())
            session = ConnectionSession(client_id=client_id, identity=identity, state=ConnectionState.CONNECTING)
            waiter: asyncio.Future[ConnectionState] = loop.create_future()
            self._session = session
            self._connect_waiter = waiter
            self._machine.transition(ConnectionState.CONNECTING, client_id=client_id)

            def status_callback(status: BrokerStatus) -> None:
                loop.call_soon_threadsafe(self._on_broker_status, client_id, status)

            broker_call = loop.run_in_executor(
                None,
                self._broker.connect,
                client_id,
                self._config.clean_session,
                identity,
                status_callback,
            )
            try:
                await asyncio.shield(broker_call)
                outcome = await waiter
            except BaseException:
                # Cancelled, or the broker call itself blew up. The worker
                # thread may still be inside connect; disconnect only after it returns.
                await asyncio.wait([broker_call])
                await self._abort_session()
                raise
        finally:
            self._connecting = False
            self._connect_waiter = None

        if outcome is ConnectionState.CONNECTED:
            _logger.info("Using certificate %s with client id %s", identity.identity_id, client_id)
            return session

        self._session = None
        await loop.run_in_executor(None, self._broker.disconnect)
        error_cls = _FAILURE_ERRORS.get(outcome, UnknownBrokerStateError)
        raise error_cls(f"Connect failed: {outcome.label}", state=outcome)

    def _on_broker_status(self, client_id: str, status: BrokerStatus) -> None:
        """Apply a broker status on the event loop."""
        session = self._session
        if session is None or session.client_id != client_id:
            _logger.debug("Ignoring status %s for stale client id %s", status.name, client_id)
            return

        new_state = ConnectionState.from_broker_status(status)
        session.state = new_state
        self._machine.transition(new_state, status=status)

        waiter = self._connect_waiter
        settles_attempt = new_state.is_terminal or new_state is ConnectionState.DISCONNECTED
        if waiter is not None and not waiter.done() and settles_attempt:
            waiter.set_result(new_state)
            return

        if new_state is ConnectionState.DISCONNECTED:
            # Broker dropped an established session.
            _logger.warning("Broker closed the session for client id %s", client_id)
            session.subscriptions.clear()
            self._session = None

    async def _abort_session(self) -> None:
        loop = self._require_loop()
        self._session = None
        try:
            await loop.run_in_executor(None, self._broker.disconnect)
        finally:
            self._machine.transition(ConnectionState.DISCONNECTED)

    async def disconnect(self) -> None:
        """Close the session, removing its subscriptions.

        The broker call runs in the default executor so the event loop is
        never blocked. A no-op when there is no session.
        """
        session = self._session
        if session is None:
            return
        if self._connecting:
            raise ConnectInProgressError("Cannot disconnect while a connect attempt is in progress")
        loop = self._require_loop()
        self._session = None
        topics = list(session.subscriptions)
        session.subscriptions.clear()

        def _teardown() -> None:
            try:
                for topic in topics:
                    self._broker.unsubscribe(topic)
            finally:
                self._broker.disconnect()

        _logger.info("Disconnecting client id %s", session.client_id)
        try:
            await loop.run_in_executor(None, _teardown)
        finally:
            session.state = ConnectionState.DISCONNECTED
            self._machine.transition(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Publish / subscribe
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        topic: str,
        qos: QualityOfService,
        on_message: Callable[[str], None],
    ) -> TopicSubscription:
        """Subscribe to *topic*; *on_message* gets each payload as UTF-8 text.

        Resubscribing a topic replaces the previous handler.
        """
        session = self._require_connected()
        loop = self._require_loop()
        subscription = TopicSubscription(topic=topic, qos=QualityOfService(qos), callback=on_message)

        def message_callback(payload: bytes) -> None:
            loop.call_soon_threadsafe(self._deliver, session, subscription, payload)

        previous = session.subscriptions.get(topic)
        session.subscriptions[topic] = subscription
        try:
            await loop.run_in_executor(None, self._broker.subscribe, topic, subscription.qos, message_callback)
        except BaseException:
            if previous is not None:
                session.subscriptions[topic] = previous
            else:
                session.subscriptions.pop(topic, None)
            raise
        _logger.debug("Subscribed to %s", topic)
        return subscription

    def _deliver(self, session: ConnectionSession, subscription: TopicSubscription, payload: bytes) -> None:
        if session is not self._session or session.subscriptions.get(subscription.topic) is not subscription:
            return
        text = payload.decode("utf-8", errors="replace")
        _logger.debug("Received on %s: %s", subscription.topic, text)
        try:
            subscription.callback(text)
        except Exception:
            _logger.exception("Message handler for %s failed", subscription.topic)

    async def unsubscribe(self, topic: str) -> None:
        session = self._session
        if session is None or session.subscriptions.pop(topic, None) is None:
            return
        loop = self._require_loop()
        await loop.run_in_executor(None, self._broker.unsubscribe, topic)

    async def publish(
        self,
        topic: str,
        message: str | bytes,
        qos: QualityOfService = QualityOfService.AT_MOST_ONCE,
    ) -> None:
        """Send *message* without waiting for delivery."""
        self._require_connected()
        payload = message.encode("utf-8") if isinstance(message, str) else bytes(message)
        self._broker.publish(topic, payload, QualityOfService(qos))

    async def publish_json(
        self,
        topic: str,
        document: BaseModel | Mapping[str, Any],
        qos: QualityOfService = QualityOfService.AT_MOST_ONCE,
    ) -> None:
        if isinstance(document, BaseModel):
            text = document.model_dump_json()
        else:
            text = json.dumps(dict(document), separators=(",", ":"))
        await self.publish(topic, text, qos)

    async def set_lamp(self, on: bool, *, topic: str | None = None) -> GpioCommand:
        """Publish the lamp GPIO command on *topic* (default: configured topic)."""
        command = GpioCommand.lamp(on)
        await self.publish(topic or self._config.topic, command.to_payload())
        return command
