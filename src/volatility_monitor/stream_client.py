"""
Supervised websocket client for the market-data feed.

Features:
- Automatic reconnection after a fixed delay (no exponential backoff; the
  upstream feed is a public, highly available endpoint)
- Application-level liveness probe: a ping every heartbeat interval, and the
  connection is aborted when no pong arrived for twice that interval
- Optional SUBSCRIBE request on open and optional forward proxy

The whole state machine runs inside one supervisor task. Connect, serve and
reconnect delay are awaited in sequence, so at most one reconnect is ever
pending, and ``close()`` cancelling that task stops everything at once.
"""

import asyncio
import json
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import websockets.exceptions
from websockets.asyncio.client import ClientConnection, connect

from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_CONNECT_TIMEOUT = 10.0

# Failures that end one connection and lead to a scheduled reconnect
TRANSPORT_ERRORS = (
    websockets.exceptions.WebSocketException,
    OSError,
    asyncio.TimeoutError,
)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamClient:
    """Keeps one websocket connection alive and forwards every text frame.

    Args:
        url: Websocket URL (e.g. wss://fstream.binance.com/ws/!ticker@arr)
        on_message: Called with each received message; exceptions are logged
        on_open: Optional hook called after every successful (re)connect
        proxy: Optional forward proxy URL for the outbound connection
        subscribe_streams: Streams to SUBSCRIBE to after open
        heartbeat_interval: Seconds between liveness probes
        reconnect_delay: Fixed seconds to wait before reconnecting
        connect_timeout: Seconds allowed for the opening handshake
        connect_factory: Replaces ``websockets.asyncio.client.connect`` in tests
        clock: Monotonic clock used for the liveness check
    """

    def __init__(
        self,
        url: str,
        on_message: Callable[[str], Any],
        on_open: Optional[Callable[[], Any]] = None,
        *,
        proxy: Optional[str] = None,
        subscribe_streams: Optional[List[str]] = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        connect_factory: Callable[..., Any] = connect,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.on_message = on_message
        self.on_open = on_open
        self.proxy = proxy
        self.subscribe_streams = list(subscribe_streams or [])
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.connect_factory = connect_factory
        self.clock = clock

        # Connection state
        self.state = ConnectionState.DISCONNECTED
        self.websocket: Optional[ClientConnection] = None
        self.last_pong = clock()
        self.connect_attempts = 0
        self.reconnect_pending = False

        self._supervisor: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    def connect(self) -> None:
        """Start the supervisor task. Must be called from a running loop."""
        if self.is_closed:
            raise RuntimeError("StreamClient has been closed")
        if self._supervisor is not None and not self._supervisor.done():
            return
        self._supervisor = asyncio.get_running_loop().create_task(self._supervise())

    async def close(self) -> None:
        """Stop permanently: cancel heartbeat and pending reconnect, close the socket."""
        if self.is_closed:
            return
        self._set_state(ConnectionState.CLOSING)

        websocket = self.websocket
        supervisor = self._supervisor
        if supervisor is not None and not supervisor.done():
            supervisor.cancel()
            await asyncio.gather(supervisor, return_exceptions=True)

        if websocket is not None:
            try:
                await websocket.close()
            except Exception as e:
                logger.error(f"Error closing WebSocket: {type(e).__name__}: {e}")

        self.websocket = None
        self._set_state(ConnectionState.CLOSED)
        logger.info("WebSocket closed manually", extra={"url": self.url})

    async def wait_closed(self) -> None:
        """Wait until the supervisor task has finished."""
        if self._supervisor is not None:
            await asyncio.gather(self._supervisor, return_exceptions=True)

    # ------------------------------------------------------------------
    # Supervisor
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug(f"Stream state {self.state.value} -> {state.value}")
            self.state = state

    def _connect_kwargs(self) -> Dict[str, Any]:
        # Library keepalive is off; liveness is tracked by our own probe.
        return {"proxy": self.proxy, "ping_interval": None}

    async def _supervise(self) -> None:
        while not self.is_closed:
            try:
                await self._run_connection()
            except TRANSPORT_ERRORS as e:
                logger.error(
                    "WebSocket connection error",
                    extra={
                        "url": self.url,
                        "state": self.state.value,
                        "error_type": type(e).__name__,
                        "error_details": str(e),
                    },
                )
            except Exception as e:
                logger.error(
                    "Unexpected error in WebSocket session",
                    extra={
                        "url": self.url,
                        "state": self.state.value,
                        "error_type": type(e).__name__,
                        "error_details": str(e),
                    },
                    exc_info=True,
                )

            if self.is_closed:
                break
            self._set_state(ConnectionState.DISCONNECTED)
            await self._wait_before_reconnect()

    async def _wait_before_reconnect(self) -> None:
        logger.info(
            f"Reconnecting in {self.reconnect_delay:.1f}s (attempt {self.connect_attempts + 1})",
            extra={"url": self.url},
        )
        self.reconnect_pending = True
        try:
            await asyncio.sleep(self.reconnect_delay)
        finally:
            self.reconnect_pending = False

    async def _run_connection(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1
        logger.info(
            f"Connecting to WebSocket: {self.url}{' via proxy' if self.proxy else ''}",
            extra={"url": self.url, "attempt": self.connect_attempts},
        )

        websocket = await asyncio.wait_for(
            self.connect_factory(self.url, **self._connect_kwargs()),
            timeout=self.connect_timeout,
        )
        self.websocket = websocket
        try:
            await self._serve(websocket)
        finally:
            self.websocket = None

    async def _serve(self, websocket: ClientConnection) -> None:
        """Run reader and heartbeat side by side until either one finishes."""
        self._set_state(ConnectionState.CONNECTED)
        self.last_pong = self.clock()
        logger.info("WebSocket connection established", extra={"url": self.url})

        heartbeat = asyncio.create_task(self._heartbeat(websocket))
        reader = asyncio.create_task(self._read(websocket))
        try:
            if self.subscribe_streams:
                await self._subscribe(websocket)
            if self.on_open is not None:
                self.on_open()

            done, _ = await asyncio.wait({heartbeat, reader}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (heartbeat, reader):
                task.cancel()
            await asyncio.gather(heartbeat, reader, return_exceptions=True)

        if reader in done:
            # re-raises ConnectionClosedError for abnormal closes
            reader.result()
            logger.warning(
                f"WebSocket closed: {websocket.close_code}",
                extra={"url": self.url, "close_code": websocket.close_code},
            )

    async def _subscribe(self, websocket: ClientConnection) -> None:
        subscription_message = {
            "method": "SUBSCRIBE",
            "params": self.subscribe_streams,
            "id": 1,
        }
        await websocket.send(json.dumps(subscription_message))
        logger.info(f"Subscribed to {len(self.subscribe_streams)} streams")

    async def _read(self, websocket: ClientConnection) -> None:
        async for message in websocket:
            if isinstance(message, bytes):
                message = message.decode("utf-8", errors="replace")
            try:
                self.on_message(message)
            except Exception as e:
                logger.error(
                    f"Message handler failed: {type(e).__name__}: {e}",
                    extra={"error_type": type(e).__name__},
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def _heartbeat(self, websocket: ClientConnection) -> None:
        """Probe the peer; returns once liveness is lost and the socket aborted."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)

            silence = self.clock() - self.last_pong
            if silence > self.heartbeat_interval * 2:
                logger.warning(
                    f"Heartbeat lost after {silence:.1f}s without pong, reconnecting...",
                    extra={"url": self.url},
                )
                self._terminate(websocket)
                return

            try:
                pong_waiter = await websocket.ping()
            except websockets.exceptions.ConnectionClosed as e:
                logger.warning(f"Ping failed, connection already closed: {e}", extra={"url": self.url})
                return
            pong_waiter.add_done_callback(self._on_pong)

    def _on_pong(self, waiter: "asyncio.Future[Any]") -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        self.last_pong = self.clock()

    @staticmethod
    def _terminate(websocket: ClientConnection) -> None:
        # Skip the closing handshake; a half-open peer would never answer it.
        transport = websocket.transport
        if transport is not None:
            transport.abort()
