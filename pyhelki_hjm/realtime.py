"""
Realtime push channel for one HJM gateway.

Wraps a ``socketio.AsyncClient`` with our own reconnection policy:
exponential backoff, a keepalive ping and a hard attempt cap. The
library's built-in reconnection is disabled.
"""
import asyncio
import enum
import inspect
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

import socketio

from .auth import HelkiTokenManager
from .config import HelkiConfig
from .constants import (
    EVENT_CONNECT,
    EVENT_CONNECT_ERROR,
    EVENT_DEV_DATA,
    EVENT_DISCONNECT,
    EVENT_PING,
    EVENT_UPDATE,
)
from .exceptions import HelkiNetworkError

_LOGGER = logging.getLogger(__name__)


class ChannelState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    DESTROYED = "destroyed"


def reconnect_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before the given (1-indexed) reconnect attempt."""
    return min(base * 2 ** (attempt - 1), cap)


def _spawn(coro, tasks: set) -> asyncio.Task:
    task = asyncio.ensure_future(coro)
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    return task


class EventEmitter:
    """Named events with ordered listeners. Coroutine listeners run as tasks."""

    def __init__(self):
        self._listeners: dict[str, list[Callable]] = {}
        self._listener_tasks: set[asyncio.Task] = set()

    def on(self, event: str, listener: Callable) -> Callable[[], None]:
        """Subscribe; returns a callable that removes the listener again."""
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Callable) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        # Copy: a listener may unsubscribe while we iterate
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    _spawn(result, self._listener_tasks)
            except Exception:
                _LOGGER.exception("Listener for '%s' failed", event)


class HelkiSocketClient(EventEmitter):
    """
    Persistent Socket.IO connection for a single device.

    Events:
        connected              - transport open, dev_data requested
        disconnected(reason)   - transport lost, reconnect scheduled
        update(payload)        - push update, forwarded verbatim
        error(err)             - connect failure
        max_reconnect_reached  - attempt cap hit, no more retries

    Usage:
        channel = HelkiSocketClient(token_manager, "smartbox-001")
        channel.on("update", handle_update)
        await channel.connect()
        ...
        await channel.disconnect()

    disconnect() is final: the instance never connects again afterwards.
    """

    def __init__(
        self,
        token_manager: HelkiTokenManager,
        device_id: str,
        config: HelkiConfig | None = None,
        client_factory: Callable[[], Any] | None = None,
    ):
        super().__init__()
        self._tokens = token_manager
        self.device_id = device_id
        self.config = config or HelkiConfig()
        self._client_factory = client_factory or self._default_client_factory

        self._client: Any = None
        self._state = ChannelState.IDLE
        self._destroyed = False
        self._connecting = False
        self._reconnect_attempts = 0
        self._ping_handle: asyncio.TimerHandle | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    # ---------- state helpers ----------

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def _default_client_factory(self) -> socketio.AsyncClient:
        return socketio.AsyncClient(
            reconnection=False,
            logger=_LOGGER.getChild(f"socketio.{self.device_id}"),
            engineio_logger=_LOGGER.getChild(f"engineio.{self.device_id}"),
        )

    def _url(self, token: str) -> str:
        query = urlencode({"token": token, "dev_id": self.device_id})
        return f"{self.config.api_base}?{query}"

    # ---------- public control ----------

    async def connect(self) -> None:
        """
        Open the channel. Never raises: failures are reported through the
        ``error`` event and retried with backoff.
        """
        if self._destroyed:
            return

        self._state = ChannelState.CONNECTING
        try:
            token = await self._tokens.get_token()
        except Exception as err:
            if not self._destroyed:
                self._connect_failed(err)
            return

        # disconnect() may have run while we waited for the token
        if self._destroyed:
            return

        # Close any transport left from an earlier connect()
        self._cancel_reconnect()
        stale, self._client = self._client, None
        if stale is not None:
            self._stop_ping()
            await self._close_client(stale)
            if self._destroyed:
                return

        client = self._client_factory()
        self._client = client
        self._bind(client)

        _LOGGER.debug("Realtime: connecting %s", self.device_id)
        self._connecting = True
        try:
            await client.connect(
                self._url(token),
                transports=["websocket"],
                socketio_path=self.config.socketio_path,
                wait_timeout=self.config.request_timeout,
            )
        except Exception as err:
            if client is self._client and not self._destroyed:
                self._connect_failed(err)
            return
        finally:
            self._connecting = False

        if self._destroyed or client is not self._client:
            await self._close_client(client)

    async def disconnect(self) -> None:
        """Tear down permanently: stop timers, close the transport."""
        self._destroyed = True
        self._state = ChannelState.DESTROYED
        self._stop_ping()
        self._cancel_reconnect()

        client = self._client
        self._client = None
        if client is not None:
            await self._close_client(client)
        _LOGGER.debug("Realtime: %s destroyed", self.device_id)

    # ---------- transport events ----------

    def _bind(self, client: Any) -> None:
        # Events from a replaced or torn-down client are dropped
        def current() -> bool:
            return client is self._client and not self._destroyed

        async def on_connect():
            if current():
                await self._on_connect(client)

        async def on_disconnect(reason=None):
            if current():
                self._on_disconnect(reason)

        async def on_connect_error(data=None):
            if current():
                self._on_connect_error(data)

        async def on_update(data=None):
            if current():
                self.emit("update", data)

        client.on(EVENT_CONNECT, handler=on_connect)
        client.on(EVENT_DISCONNECT, handler=on_disconnect)
        client.on(EVENT_CONNECT_ERROR, handler=on_connect_error)
        client.on(EVENT_UPDATE, handler=on_update)

    async def _on_connect(self, client: Any) -> None:
        _LOGGER.debug("Realtime: %s connected", self.device_id)
        self._reconnect_attempts = 0
        self._state = ChannelState.OPEN
        self._cancel_reconnect()
        self._start_ping()
        self.emit("connected")
        try:
            await client.emit(EVENT_DEV_DATA)
        except Exception:
            _LOGGER.debug("Realtime: dev_data request failed", exc_info=True)

    def _on_disconnect(self, reason: Any) -> None:
        _LOGGER.info("Realtime: %s disconnected (%s)", self.device_id, reason)
        self._stop_ping()
        self._state = ChannelState.RECONNECTING
        self.emit("disconnected", reason)
        self._schedule_reconnect()

    def _on_connect_error(self, data: Any) -> None:
        if self._connecting:
            # client.connect() raises for this too; handled there
            _LOGGER.debug("Realtime: connect_error during connect: %s", data)
            return
        err = data if isinstance(data, Exception) else HelkiNetworkError(
            f"Realtime connect error: {data}"
        )
        self._connect_failed(err)

    def _connect_failed(self, err: Exception) -> None:
        _LOGGER.info("Realtime: %s connect failed (%s: %s)", self.device_id, type(err).__name__, err)
        self._stop_ping()
        self._state = ChannelState.RECONNECTING
        self.emit("error", err)
        self._schedule_reconnect()

    # ---------- heartbeat ----------

    def _start_ping(self) -> None:
        self._stop_ping()
        loop = asyncio.get_running_loop()
        self._ping_handle = loop.call_later(self.config.ping_interval, self._on_ping_timer)

    def _stop_ping(self) -> None:
        if self._ping_handle is not None:
            self._ping_handle.cancel()
            self._ping_handle = None

    def _on_ping_timer(self) -> None:
        self._ping_handle = None
        if self._destroyed or self._state is not ChannelState.OPEN:
            return
        client = self._client
        if client is not None and client.connected:
            _spawn(self._send_ping(client), self._tasks)
        self._start_ping()

    async def _send_ping(self, client: Any) -> None:
        try:
            await client.emit(EVENT_PING)
        except Exception:
            _LOGGER.debug("Realtime: ping failed", exc_info=True)

    # ---------- reconnection ----------

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _schedule_reconnect(self) -> None:
        if self._destroyed:
            return
        if self._reconnect_attempts >= self.config.max_reconnect_attempts:
            _LOGGER.warning(
                "Realtime: %s gave up after %d reconnect attempts",
                self.device_id, self._reconnect_attempts,
            )
            self._cancel_reconnect()
            self._state = ChannelState.IDLE
            self.emit("max_reconnect_reached")
            return

        self._cancel_reconnect()
        self._reconnect_attempts += 1
        delay = reconnect_delay(
            self._reconnect_attempts,
            self.config.reconnect_delay,
            self.config.max_reconnect_delay,
        )
        _LOGGER.info(
            "Realtime: %s reconnect attempt %d in %.0fs",
            self.device_id, self._reconnect_attempts, delay,
        )
        self._state = ChannelState.RECONNECTING
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._destroyed:
            return
        _spawn(self._reconnect(), self._tasks)

    async def _reconnect(self) -> None:
        stale = self._client
        self._client = None
        if stale is not None:
            await self._close_client(stale)
        if self._destroyed:
            return
        await self.connect()

    async def _close_client(self, client: Any) -> None:
        try:
            await client.disconnect()
        except Exception:
            _LOGGER.debug("Realtime: closing transport failed", exc_info=True)
