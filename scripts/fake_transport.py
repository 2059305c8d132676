# Fake Transport - In-memory transport for connector tests

"""
In-memory stand-in for WebSocketTransport

The test drives the connection by hand: open(), receive(), fail(), drop().
Each call goes through the same generation-tagged hooks the real
transport uses.
"""

import json
import sys
from pathlib import Path
from typing import List

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatlink.connection.callbacks import ChatCallbacks
from chatlink.connection.errors import TransportError

class FakeTransport:
    """One fake connection attempt"""

    def __init__(self, url, generation, on_open, on_frame, on_error, on_close,
                 headers=None, close_timeout=5.0):
        self.url = url
        self.generation = generation
        self.on_open = on_open
        self.on_frame = on_frame
        self.on_error = on_error
        self.on_close = on_close
        self.headers = headers or {}
        self.sent: List[str] = []
        self.close_calls = 0
        self.run_started = False
        # Set to an asyncio.Event to hold close() until it is set
        self.close_gate = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def run(self):
        self.run_started = True

    async def send(self, text: str):
        if not self._open:
            raise TransportError("Transport is not open")
        self.sent.append(text)

    async def close(self):
        if self.close_gate is not None:
            await self.close_gate.wait()
        self._open = False
        self.close_calls += 1

    # Test drivers

    async def open(self):
        self._open = True
        await self.on_open(self.generation)

    async def receive(self, payload):
        raw = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
        await self.on_frame(self.generation, raw)

    async def fail(self, message: str = "connection reset"):
        self._open = False
        await self.on_error(self.generation, TransportError(message))

    async def drop(self, code: int = 1006, reason: str = ""):
        self._open = False
        await self.on_close(self.generation, code, reason)

    def sent_frames(self) -> list:
        return [json.loads(text) for text in self.sent]

    def pings_sent(self) -> int:
        return sum(1 for frame in self.sent_frames() if frame == {"type": "ping"})

class FakeTransportFactory:
    """transport_factory that keeps every transport it builds"""

    def __init__(self):
        self.transports: List[FakeTransport] = []

    def __call__(self, **kwargs) -> FakeTransport:
        transport = FakeTransport(**kwargs)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]

class Recorder:
    """Records every callback invocation in order"""

    def __init__(self):
        self.events = []

    def callbacks(self, with_ban_handler: bool = True) -> ChatCallbacks:
        return ChatCallbacks(
            on_message=lambda payload: self.events.append(("message", payload)),
            on_connect=lambda: self.events.append(("connect", None)),
            on_disconnect=lambda: self.events.append(("disconnect", None)),
            on_error=lambda error: self.events.append(("error", error)),
            on_ban_notification=(
                (lambda payload: self.events.append(("ban", payload)))
                if with_ban_handler else None
            ),
        )

    def names(self) -> list:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list:
        return [value for event, value in self.events if event == name]
