from __future__ import annotations
import asyncio
from contextlib import suppress
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import websockets
import websockets.exceptions

from client.config import ClientConfig
from client.credentials import DEFAULT_CREDENTIAL_KEY, CredentialStore
from client.resolver import AddressResolver, build_socket_url
from client.state import ConnectionEvent, ConnectionState, SessionState, transition
from shared.frames import FrameDecodeError, decode_frame, encode_message
from shared.log import get_logger, log_connection_event

logger = get_logger(__name__)


Connector = Callable[[str], Awaitable[Any]]
MessageHandler = Callable[[Any], Awaitable[None]]
StatusHandler = Callable[[bool], Awaitable[None]]


class ConnectionManager:
    """
    Owns one logical WebSocket connection and keeps it alive.

    Every attempt reads the credential, resolves the endpoint address afresh
    and opens the socket. When the socket closes (or fails to open) exactly
    one reconnection is scheduled `reconnect_delay` seconds later, forever,
    until `stop()` is called.

    Consumer surface: `connection`, `send`/`send_message`, `messages`,
    `is_connected`.
    """

    def __init__(
        self,
        resolver: AddressResolver,
        credentials: CredentialStore,
        *,
        credential_key: str = DEFAULT_CREDENTIAL_KEY,
        reconnect_delay: float = 3.0,
        socket_path: str = "/ws",
        connector: Optional[Connector] = None,
        ping_interval: Optional[float] = 15.0,
        ping_timeout: Optional[float] = 45.0,
    ) -> None:
        self.resolver = resolver
        self.credentials = credentials
        self.credential_key = credential_key
        self.reconnect_delay = reconnect_delay
        self.socket_path = socket_path
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self._connector: Connector = connector or self._open_websocket

        self.session = SessionState()
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._attempt_task: Optional[asyncio.Task] = None
        self._message_handlers: List[MessageHandler] = []
        self._status_handlers: List[StatusHandler] = []

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        credentials: Optional[CredentialStore] = None,
        **kwargs: Any,
    ) -> "ConnectionManager":
        resolver = AddressResolver(
            config.location,
            config_path=config.config_path,
            timeout=config.config_timeout,
            dev_port_map=config.dev_port_map,
        )
        return cls(
            resolver,
            credentials or CredentialStore(config.credentials_path),
            credential_key=config.credential_key,
            reconnect_delay=config.reconnect_delay,
            socket_path=config.socket_path,
            ping_interval=config.ping_interval,
            ping_timeout=config.ping_timeout,
            **kwargs,
        )

    # ---- consumer surface ----

    @property
    def connection(self) -> Optional[Any]:
        return self.session.connection

    @property
    def is_connected(self) -> bool:
        return self.session.connected

    @property
    def messages(self) -> Sequence[Any]:
        return self.session.messages

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def on_message(self, handler: MessageHandler) -> None:
        self._message_handlers.append(handler)

    def on_status(self, handler: StatusHandler) -> None:
        self._status_handlers.append(handler)

    async def send(self, message: Any) -> None:
        """Send a message as a JSON text frame; logged no-op while disconnected."""
        connection = self.session.connection
        if connection is None or not self.session.connected:
            logger.warning("WebSocket not connected")
            return
        try:
            await connection.send(encode_message(message))
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Connection closed while sending")

    send_message = send

    # ---- lifecycle ----

    async def start(self) -> bool:
        """
        Begin connecting. Returns False when no credential is available, in
        which case nothing is scheduled and `start()` must be called again
        once the credential exists.
        """
        if self.session.state is not ConnectionState.IDLE:
            logger.debug("Already started (state=%s)", self.session.state.value)
            return True
        if not self.credentials.get(self.credential_key):
            logger.warning("No authentication token found for WebSocket connection")
            return False
        self._apply(ConnectionEvent.START)
        self._spawn_attempt()
        return True

    async def stop(self) -> None:
        """Cancel any pending reconnection and close the active connection. Idempotent."""
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

        task, self._attempt_task = self._attempt_task, None
        connection = self.session.connection
        was_connected = self.session.connected
        self._apply(ConnectionEvent.STOP)

        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        if connection is not None:
            await self._close_quietly(connection)
        if was_connected:
            await self._notify_status(False)

    async def __aenter__(self) -> "ConnectionManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ---- internals ----

    def _apply(self, event: ConnectionEvent, connection: Any = None) -> ConnectionState:
        previous = self.session.state
        current = transition(previous, event)
        if current is previous:
            logger.debug("Ignored %s in state %s", event.value, previous.value)
            return current

        self.session.state = current
        if current is ConnectionState.OPEN:
            self.session.publish(connection)
        else:
            self.session.clear()
        log_connection_event(
            logger, "debug", f"{previous.value} -> {current.value}",
            state=current.value, event=event.value,
        )
        return current

    def _spawn_attempt(self) -> None:
        task = asyncio.create_task(self._attempt())
        self._attempt_task = task

        def _done(_task: asyncio.Task) -> None:
            if self._attempt_task is _task:
                self._attempt_task = None
            if not _task.cancelled() and _task.exception() is not None:
                logger.error("Connection attempt crashed: %s", _task.exception())

        task.add_done_callback(_done)

    async def _open_websocket(self, url: str) -> Any:
        return await websockets.connect(url, ping_interval=self.ping_interval, ping_timeout=self.ping_timeout)

    async def _attempt(self) -> None:
        self.session.attempts += 1
        attempt = self.session.attempts

        token = self.credentials.get(self.credential_key)
        if not token:
            logger.warning("No authentication token found for WebSocket connection")
            self._apply(ConnectionEvent.NO_CREDENTIAL)
            return

        try:
            base = await self.resolver.resolve(token)
            url = build_socket_url(base, token, self.socket_path)
            log_connection_event(logger, "info", "Opening WebSocket", url=base, attempt=attempt)
            websocket = await self._connector(url)
        except Exception as e:
            logger.error("WebSocket error: %s", e)
            self._apply(ConnectionEvent.OPEN_FAILED)
            self._schedule_reconnect()
            return

        if self._apply(ConnectionEvent.OPENED, websocket) is not ConnectionState.OPEN:
            # Torn down while the socket was opening
            await self._close_quietly(websocket)
            return
        log_connection_event(logger, "info", "WebSocket connected", url=base, attempt=attempt)
        await self._notify_status(True)

        event = await self._receive(websocket)
        if self._apply(event) is not ConnectionState.CLOSED:
            # stop() ran from a handler and already closed and notified
            return
        await self._close_quietly(websocket)
        await self._notify_status(False)
        self._schedule_reconnect()

    async def _receive(self, websocket: Any) -> ConnectionEvent:
        """Consume frames until the socket goes away; returns the terminating event."""
        try:
            async for raw in websocket:
                await self._handle_frame(raw)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info("WebSocket closed: %s", e)
            return ConnectionEvent.CLOSED
        except Exception as e:
            logger.error("WebSocket error: %s", e)
            return ConnectionEvent.ERROR
        logger.info("WebSocket closed")
        return ConnectionEvent.CLOSED

    async def _handle_frame(self, raw: Any) -> None:
        try:
            message = decode_frame(raw)
        except FrameDecodeError as e:
            logger.error("Error parsing WebSocket message: %s", e)
            return

        self.session.messages.append(message)
        for handler in list(self._message_handlers):
            try:
                await handler(message)
            except Exception as e:
                logger.error("Message handler failed: %s", e)

    def _schedule_reconnect(self) -> None:
        if self.session.state is not ConnectionState.CLOSED or self._reconnect_timer is not None:
            return
        log_connection_event(
            logger, "info", f"Reconnecting in {self.reconnect_delay}s",
            state=self.session.state.value, attempt=self.session.attempts + 1,
        )
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(self.reconnect_delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        if self._apply(ConnectionEvent.RETRY) is ConnectionState.CONNECTING:
            self._spawn_attempt()

    async def _notify_status(self, connected: bool) -> None:
        for handler in list(self._status_handlers):
            try:
                await handler(connected)
            except Exception as e:
                logger.error("Status handler failed: %s", e)

    async def _close_quietly(self, connection: Any) -> None:
        try:
            await connection.close(code=1000)
        except Exception as e:
            logger.error("Error closing connection: %s", e)
