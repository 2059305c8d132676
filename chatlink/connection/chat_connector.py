# Chat Connector - Connection Management
# Keeps one chat WebSocket alive with heartbeat and bounded reconnects

"""
Chat Connector Module

Responsibilities:
- Own exactly one transport per connector instance
- Connection state management
- Application-level heartbeat while open
- Auto-reconnect with bounded linear backoff
- Route inbound frames to a single callback set

Every connection attempt is a new generation. Its transport task,
heartbeat and connect timeout are cancelled together on any transition
out of it, and events that arrive late from an older generation are
ignored.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from .callbacks import ChatCallbacks
from .errors import (
    HeartbeatTimeoutError,
    NotConnectedError,
    RetryExhaustedError,
    TransportError,
)
from .heartbeat_manager import HeartbeatMonitor, HeartbeatPolicy
from .reconnect_scheduler import ReconnectScheduler, RetryPolicy
from .transport import WebSocketTransport
from ..processors.chat_models import ChatMessage, PING_FRAME
from ..processors.message_dispatcher import MessageDispatcher
from ..utils.helpers import safe_invoke
from ..utils.logger import setup_logger

# Delay before a caller-initiated retry_connection() reconnects
RETRY_CONNECTION_DELAY = 0.5

class ConnectionState(Enum):
    """Chat connection states"""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECT_PENDING = "reconnect_pending"

@dataclass
class _Generation:
    """Resources belonging to one connection attempt"""
    number: int
    transport: Any
    run_task: Optional[asyncio.Task] = None
    timeout_task: Optional[asyncio.Task] = None
    heartbeat: Optional[HeartbeatMonitor] = None
    opened: bool = False
    lost: bool = False

    def cancel(self):
        """Cancel every task of this generation (except the caller's own)"""
        if self.heartbeat is not None:
            self.heartbeat.stop()
        current = asyncio.current_task()
        for task in (self.timeout_task, self.run_task):
            if task is not None and not task.done() and task is not current:
                task.cancel()

class ChatConnector:
    """
    Real-time chat connection manager

    One instance per chat session; nothing is shared between instances.

    Usage:
        connector = ChatConnector(url="wss://example.com/ws")
        await connector.connect(ChatCallbacks(...), identity="nickname")
        await connector.send_message(ChatMessage(room_id="public", sender="nickname", message="hi"))
        await connector.disconnect()
    """

    def __init__(
        self,
        url: str = "ws://localhost:8080/ws",
        max_retries: int = 3,
        base_delay: float = 3.0,
        max_delay: float = 30.0,
        heartbeat_interval: float = 25.0,
        max_missed_heartbeats: int = 3,
        connect_timeout: Optional[float] = 10.0,
        close_timeout: float = 5.0,
        headers: Optional[Dict[str, str]] = None,
        transport_factory: Optional[Callable[..., Any]] = None
    ):
        """
        Initialize chat connector

        Args:
            url: WebSocket URL
            max_retries: Automatic reconnect attempts before giving up
            base_delay: Backoff step in seconds (delay = base_delay * attempt)
            max_delay: Maximum reconnect delay in seconds
            heartbeat_interval: Seconds between pings
            max_missed_heartbeats: Unanswered pings that force a reconnect
            connect_timeout: Seconds an attempt may stay connecting (None = no limit)
            close_timeout: Seconds to wait for the closing handshake
            headers: Extra handshake headers (session cookie, client IP)
            transport_factory: Builds a transport; defaults to WebSocketTransport
        """
        self.url = url
        self.heartbeat_interval = heartbeat_interval
        self.max_missed_heartbeats = max_missed_heartbeats
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout
        self.headers = headers or {}
        self.transport_factory = transport_factory or WebSocketTransport

        self.scheduler = ReconnectScheduler(
            RetryPolicy(max_retries=max_retries, base_delay=base_delay, max_delay=max_delay)
        )
        self.dispatcher = MessageDispatcher(on_pong=self._handle_pong)

        # Connection state
        self.state = ConnectionState.IDLE
        self.retries_exhausted = False
        self._callbacks: Optional[ChatCallbacks] = None
        self._identity: Optional[str] = None
        self._generation = 0
        self._current: Optional[_Generation] = None
        self._closing: Optional[asyncio.Future] = None

        self._stats = {
            "connects": 0,
            "attempts": 0,
            "reconnects_scheduled": 0,
            "heartbeat_timeouts": 0,
            "messages_sent": 0,
        }

        self.logger = setup_logger("ChatConnector", "INFO")

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ChatConnector":
        """
        Build a connector from ConnectorSettings

        Args:
            settings: chatlink.utils.config.ConnectorSettings
            **kwargs: Overrides (e.g. transport_factory)
        """
        options = dict(
            url=settings.url,
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            heartbeat_interval=settings.heartbeat_interval,
            max_missed_heartbeats=settings.max_missed_heartbeats,
            connect_timeout=settings.connect_timeout,
            close_timeout=settings.close_timeout,
            headers=settings.headers,
        )
        options.update(kwargs)
        return cls(**options)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def connect(self, callbacks: ChatCallbacks, identity: Optional[str] = None):
        """
        Start (or restart) the chat session

        Returns once the transport is wired up, not once it is open. A call
        while already open is a no-op; a call while connecting or waiting to
        reconnect replaces the pending attempt and the callback set.

        Args:
            callbacks: The single active callback set
            identity: User nickname, reused for every reconnect
        """
        if self.state is ConnectionState.OPEN and self.connected:
            self.logger.warning("Already connected")
            return

        self._callbacks = callbacks
        self._identity = identity
        self.retries_exhausted = False
        self.scheduler.cancel()
        self._start_attempt()

    async def send_message(self, message: Union[ChatMessage, Dict[str, Any]]):
        """
        Send a chat message (fire-and-forget)

        Args:
            message: ChatMessage or a plain dict

        Raises:
            NotConnectedError: channel is not open
            TransportError: write failed on an open channel
        """
        if not self.connected:
            self.logger.error(f"Cannot send message: not connected (state={self.state.value})")
            raise NotConnectedError(self.state.value)

        if isinstance(message, ChatMessage):
            payload = message.to_wire()
        else:
            payload = json.dumps(message)

        try:
            await self._current.transport.send(payload)
        except TransportError as e:
            self.logger.error(f"Failed to send message: {e}")
            raise

        self._stats["messages_sent"] += 1
        self.logger.debug(f"Sent: {payload}")

    async def disconnect(self):
        """
        Close the session; safe to call from any state, any number of times

        All timers are cancelled before the first await, so nothing fires
        after this call starts.
        A call made while an earlier one is still closing the transport
        waits for that close to finish.
        """
        self.scheduler.cancel()
        self.scheduler.reset()
        self.retries_exhausted = False
        callbacks = self._callbacks
        self._callbacks = None
        gen = self._current
        self._current = None

        if gen is None:
            closing = self._closing
            if closing is not None and not closing.done():
                self.logger.debug("Disconnect already in progress, waiting for close")
                await asyncio.shield(closing)
            if self._current is None:
                self.state = ConnectionState.IDLE
            return

        self.logger.info("Disconnecting...")
        was_open = gen.opened and not gen.lost
        gen.lost = True
        gen.cancel()

        self.state = ConnectionState.CLOSING
        closing = asyncio.ensure_future(gen.transport.close())
        self._closing = closing
        try:
            await asyncio.shield(closing)
        finally:
            if self._closing is closing:
                self._closing = None
        if self._current is None:
            self.state = ConnectionState.IDLE
        self.logger.info("✅ Disconnected")

        if was_open and callbacks is not None:
            await safe_invoke(self.logger, "on_disconnect", callbacks.on_disconnect)

    async def retry_connection(self):
        """
        Caller-initiated recovery

        Resets the retry count, tears down the current transport and
        reconnects with the stored callbacks after a short fixed delay.
        """
        self.logger.info("Manual reconnect requested")
        self.scheduler.cancel()
        self.scheduler.reset()
        self.retries_exhausted = False

        gen = self._current
        self._current = None
        was_open = False
        if gen is not None:
            was_open = gen.opened and not gen.lost
            gen.lost = True
            gen.cancel()
        self.state = ConnectionState.IDLE

        callbacks = self._callbacks
        if callbacks is None:
            self.logger.warning("No session to retry: connect() has not been called")
            if gen is not None:
                await gen.transport.close()
            return

        self.state = ConnectionState.RECONNECT_PENDING
        self.scheduler.schedule_after(RETRY_CONNECTION_DELAY, self._reconnect)

        if gen is not None:
            await gen.transport.close()
        if was_open:
            await safe_invoke(self.logger, "on_disconnect", callbacks.on_disconnect)

    @property
    def connected(self) -> bool:
        """Open according to both our state and the transport itself"""
        return (
            self.state is ConnectionState.OPEN
            and self._current is not None
            and not self._current.lost
            and self._current.transport.is_open
        )

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def heartbeat(self) -> Optional[HeartbeatMonitor]:
        """Heartbeat monitor of the live connection, if any"""
        if self._current is None or self._current.lost:
            return None
        return self._current.heartbeat

    def get_state(self) -> ConnectionState:
        return self.state

    def get_stats(self) -> dict:
        """Get connector statistics"""
        return {
            "state": self.state.value,
            "generation": self._generation,
            "retry_count": self.scheduler.retry_count,
            "retries_exhausted": self.retries_exhausted,
            **self._stats,
            "dispatcher": self.dispatcher.get_stats(),
        }

    # ------------------------------------------------------------------
    # Connection attempts
    # ------------------------------------------------------------------

    def _start_attempt(self):
        """Retire the current generation and open a new transport"""
        old = self._current
        if old is not None and not old.lost:
            self.logger.debug(f"Superseding connection #{old.number}")
            old.lost = True
            old.cancel()

        self._generation += 1
        number = self._generation
        transport = self.transport_factory(
            url=self.url,
            generation=number,
            on_open=self._handle_transport_open,
            on_frame=self._handle_transport_frame,
            on_error=self._handle_transport_error,
            on_close=self._handle_transport_close,
            headers=self.headers,
            close_timeout=self.close_timeout,
        )
        gen = _Generation(number=number, transport=transport)
        self._current = gen
        self.state = ConnectionState.CONNECTING
        self._stats["attempts"] += 1

        self.logger.info(
            f"Connecting to {self.url} (attempt #{number}, identity={self._identity})..."
        )

        loop = asyncio.get_running_loop()
        gen.run_task = loop.create_task(transport.run())
        if self.connect_timeout:
            gen.timeout_task = loop.create_task(self._connect_timeout(number))

    def _reconnect(self):
        """Reconnect timer callback"""
        if self._callbacks is None:
            return
        self._start_attempt()

    async def _connect_timeout(self, generation: int):
        """Fail an attempt that neither opens nor errors in time"""
        await asyncio.sleep(self.connect_timeout)
        gen = self._live(generation)
        if gen is None or gen.opened:
            return
        await self._handle_transport_error(
            generation,
            TransportError(
                f"Connection attempt timed out after {self.connect_timeout}s",
                {"url": self.url}
            )
        )

    def _live(self, generation: int) -> Optional[_Generation]:
        """Return the generation if it is still the live one, else None"""
        gen = self._current
        if gen is None or gen.number != generation or gen.lost:
            return None
        return gen

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    async def _handle_transport_open(self, generation: int):
        gen = self._live(generation)
        if gen is None:
            self.logger.debug(f"Ignoring open from stale connection #{generation}")
            return

        gen.opened = True
        if gen.timeout_task is not None and not gen.timeout_task.done():
            gen.timeout_task.cancel()

        self.state = ConnectionState.OPEN
        self.scheduler.reset()
        self.retries_exhausted = False
        self._stats["connects"] += 1

        gen.heartbeat = HeartbeatMonitor(
            send_ping=lambda: self._send_ping(generation),
            on_timeout=lambda missed: self._handle_heartbeat_timeout(generation, missed),
            policy=HeartbeatPolicy(
                interval=self.heartbeat_interval,
                max_missed=self.max_missed_heartbeats
            )
        )
        gen.heartbeat.start()

        self.logger.info("✅ Connected successfully")
        if self._callbacks is not None:
            await safe_invoke(self.logger, "on_connect", self._callbacks.on_connect)

    async def _handle_transport_frame(self, generation: int, raw_frame):
        gen = self._live(generation)
        if gen is None or not gen.opened:
            return
        await self.dispatcher.dispatch(raw_frame, self._callbacks)

    async def _handle_transport_error(self, generation: int, error: TransportError):
        gen = self._live(generation)
        if gen is None:
            self.logger.debug(f"Ignoring error from stale connection #{generation}: {error}")
            return

        self.logger.error(f"Transport error ({error.source}-reported): {error}")
        await self._connection_lost(gen, error, close_transport=True)

    async def _handle_transport_close(self, generation: int, code: Optional[int], reason: str):
        gen = self._live(generation)
        if gen is None:
            return

        self.logger.warning(f"Connection closed (code={code}, reason={reason!r})")
        await self._connection_lost(gen)

    async def _handle_heartbeat_timeout(self, generation: int, missed: int):
        gen = self._live(generation)
        if gen is None:
            return

        error = HeartbeatTimeoutError(missed, self.heartbeat_interval)
        self._stats["heartbeat_timeouts"] += 1
        self.logger.error(f"Forcing reconnect ({error.source}-detected): {error}")
        await self._connection_lost(gen, error, close_transport=True)

    def _handle_pong(self):
        gen = self._current
        if gen is not None and not gen.lost and gen.heartbeat is not None:
            gen.heartbeat.handle_pong()

    async def _send_ping(self, generation: int):
        gen = self._live(generation)
        if gen is None:
            return
        await gen.transport.send(json.dumps(PING_FRAME))

    async def _connection_lost(
        self,
        gen: _Generation,
        error: Optional[Exception] = None,
        close_transport: bool = False
    ):
        """
        Leave a generation after close/error/timeout and arm the next retry

        State and timers are settled before any callback runs, so a callback
        calling disconnect() cancels the retry armed here.
        """
        gen.lost = True
        gen.cancel()

        callbacks = self._callbacks
        exhausted = False
        if callbacks is None:
            self.state = ConnectionState.IDLE
        elif self.scheduler.schedule(self._reconnect) is None:
            exhausted = True
            self.retries_exhausted = True
            self.state = ConnectionState.IDLE
        else:
            self._stats["reconnects_scheduled"] += 1
            self.state = ConnectionState.RECONNECT_PENDING

        if close_transport:
            await gen.transport.close()

        if callbacks is None:
            return

        if error is not None:
            await safe_invoke(self.logger, "on_error", callbacks.on_error, error)
        if gen.opened:
            await safe_invoke(self.logger, "on_disconnect", callbacks.on_disconnect)
        if exhausted:
            await safe_invoke(
                self.logger, "on_error", callbacks.on_error,
                RetryExhaustedError(self.scheduler.policy.max_retries)
            )
