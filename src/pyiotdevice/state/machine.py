"""Connection state holder with listener and async-stream notification.

All transitions must happen on the client's event loop; broker callbacks
are marshalled there before reaching :meth:`ConnectionStateMachine.transition`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from pyiotdevice.exceptions import AlreadyConnectedError, ConnectInProgressError
from pyiotdevice.state.events import BrokerStatus, ConnectionState, StateChange

_logger = logging.getLogger(__name__)

StateListener = Callable[[StateChange], None]


class ConnectionStateMachine:
    """Current connection state plus its observers.

    A transition to the state already held emits nothing, so a broker that
    repeats a status never produces duplicate notifications.
    """

    def __init__(self, initial: ConnectionState = ConnectionState.DISCONNECTED) -> None:
        self._state = initial
        self._client_id: str | None = None
        self._listeners: list[StateListener] = []
        self._streams: list[asyncio.Queue[StateChange]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client_id(self) -> str | None:
        return self._client_id

    def require_idle(self) -> None:
        """Raise if a connect attempt is pending or a session is connected."""
        if self._state is ConnectionState.CONNECTING:
            raise ConnectInProgressError("A connect attempt is already in progress")
        if self._state is ConnectionState.CONNECTED:
            raise AlreadyConnectedError("Already connected; disconnect first")

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* and return a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def transition(
        self,
        new_state: ConnectionState,
        *,
        status: BrokerStatus | None = None,
        client_id: str | None = None,
    ) -> StateChange | None:
        """Move to *new_state* and notify observers.

        Returns the emitted change, or ``None`` when the state did not change.
        """
        if client_id is not None:
            self._client_id = client_id
        if new_state is self._state:
            return None

        change = StateChange(
            previous=self._state,
            current=new_state,
            client_id=self._client_id,
            status=status,
        )
        self._state = new_state
        if new_state is ConnectionState.DISCONNECTED:
            self._client_id = None
        _logger.info("Connection state %s -> %s", change.previous.label, change.current.label)

        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                _logger.warning("State listener %r failed", listener, exc_info=True)
        for queue in self._streams:
            queue.put_nowait(change)
        return change

    def events(self) -> StateChangeStream:
        """Return a stream of every state change from this call on.

        The stream is registered immediately, so changes emitted before the
        first iteration are buffered, not lost. Call ``aclose()`` to stop
        receiving.

        Usage::

            stream = machine.events()
            async for change in stream:
                if change.current.is_terminal:
                    break
            await stream.aclose()
        """
        return StateChangeStream(self._streams)


class StateChangeStream:
    """Buffered async iterator over state changes."""

    def __init__(self, streams: list[asyncio.Queue[StateChange]]) -> None:
        self._queue: asyncio.Queue[StateChange] = asyncio.Queue()
        self._streams = streams
        streams.append(self._queue)

    def __aiter__(self) -> StateChangeStream:
        return self

    async def __anext__(self) -> StateChange:
        if self._queue not in self._streams and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()

    async def aclose(self) -> None:
        if self._queue in self._streams:
            self._streams.remove(self._queue)
