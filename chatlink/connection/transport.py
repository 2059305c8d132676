# Transport - One WebSocket Connection Attempt
# Wraps a single `websockets` client connection and reports its events

"""
Transport Module

Responsibilities:
- Open one WebSocket connection (TLS/handshake handled by websockets)
- Attach handshake headers (session cookie, client IP)
- Pump inbound frames to the owner
- Report open / frame / error / close events tagged with a generation

A transport is never reused: the connector builds a fresh one for every
connection attempt, and the generation number on each event lets the
connector ignore events from a transport it has already replaced.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from .errors import TransportError
from ..utils.logger import setup_logger

class WebSocketTransport:
    """
    Transport handle for one connection attempt

    Event hooks (all coroutine functions, first argument is the generation):
    - on_open(generation)
    - on_frame(generation, raw_frame)
    - on_error(generation, TransportError)
    - on_close(generation, code, reason)
    """

    def __init__(
        self,
        url: str,
        generation: int,
        on_open: Callable[[int], Awaitable[Any]],
        on_frame: Callable[[int, Any], Awaitable[Any]],
        on_error: Callable[[int, TransportError], Awaitable[Any]],
        on_close: Callable[[int, Optional[int], str], Awaitable[Any]],
        headers: Optional[Dict[str, str]] = None,
        close_timeout: float = 5.0
    ):
        """
        Initialize transport

        Args:
            url: ws:// or wss:// URL
            generation: Connection attempt number assigned by the connector
            on_open: Called once the handshake completes
            on_frame: Called for each inbound frame
            on_error: Called on open/receive failure
            on_close: Called once the connection is closed
            headers: Extra handshake headers
            close_timeout: Seconds to wait for the closing handshake
        """
        self.url = url
        self.generation = generation
        self.on_open = on_open
        self.on_frame = on_frame
        self.on_error = on_error
        self.on_close = on_close
        self.headers = headers or {}
        self.close_timeout = close_timeout

        self.connection = None
        self.logger = setup_logger("Transport", "INFO")

    @property
    def is_open(self) -> bool:
        """Check the WebSocket's own ready state"""
        return self.connection is not None and self.connection.state is State.OPEN

    async def run(self):
        """
        Open the connection and pump frames until it closes

        Cancelling this coroutine closes the connection without reporting
        any further events.
        """
        try:
            try:
                self.connection = await websockets.connect(
                    self.url,
                    additional_headers=self.headers or None,
                    open_timeout=None,  # connector owns the connect timeout
                    ping_interval=None,  # application-level heartbeat
                    close_timeout=self.close_timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self.on_error(
                    self.generation,
                    TransportError(f"Connection failed: {e}", {"url": self.url})
                )
                return

            await self.on_open(self.generation)

            try:
                async for message in self.connection:
                    await self.on_frame(self.generation, message)
            except ConnectionClosedError as e:
                await self.on_error(
                    self.generation,
                    TransportError(f"Connection lost: {e}", {"url": self.url})
                )

            await self.on_close(
                self.generation,
                self.connection.close_code,
                self.connection.close_reason or ""
            )

        except asyncio.CancelledError:
            self.logger.debug(f"Transport #{self.generation} cancelled")
            raise

        finally:
            if self.is_open:
                await self.close()

    async def send(self, text: str):
        """
        Write one frame

        Args:
            text: Serialized JSON frame

        Raises:
            TransportError: connection missing, closed or failing
        """
        if self.connection is None:
            raise TransportError("Transport is not open")
        try:
            await self.connection.send(text)
        except ConnectionClosed as e:
            raise TransportError(f"Failed to send message: {e}") from e

    async def close(self):
        """Close the connection (bounded wait, never raises)"""
        if self.connection is None:
            return
        try:
            await asyncio.wait_for(self.connection.close(), timeout=self.close_timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Connection close timeout - forcing")
        except Exception as e:
            self.logger.warning(f"Error closing connection: {e}")
