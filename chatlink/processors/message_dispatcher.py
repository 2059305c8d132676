# Message Dispatcher - Inbound Frame Routing
# Classifies every inbound frame and routes it to the active callbacks

"""
Message Dispatcher Module

Responsibilities:
- Parse JSON frames from the WebSocket
- Classify them (pong / moderation / ordinary message)
- Route each kind to the matching callback
- Drop malformed frames without disturbing the connection

Classification order:
1. {"type": "pong"}     -> heartbeat acknowledgment, never forwarded
2. {"error": <set>}     -> on_ban_notification (or on_error if not registered)
3. any other JSON object -> on_message, verbatim
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..connection.callbacks import ChatCallbacks
from ..connection.errors import ModerationNotification, ProtocolParseError
from ..utils.helpers import safe_invoke
from ..utils.logger import setup_logger
from .chat_models import PONG_TYPE

def _has_error(data: Dict[str, Any]) -> bool:
    """
    Check whether a frame carries a moderation error

    Empty objects and arrays count as set; null, false, 0, NaN and "" do not.
    """
    error = data.get("error")
    if isinstance(error, float) and error != error:
        return False
    return error not in (None, False, "", 0)

class FrameKind(Enum):
    """Inbound frame categories"""
    PONG = "pong"
    MODERATION = "moderation"
    MESSAGE = "message"

@dataclass
class InboundFrame:
    """Classified inbound frame"""
    kind: FrameKind
    payload: Dict[str, Any]
    received_at: datetime

class MessageDispatcher:
    """
    Routes inbound frames to a single callback set

    The pong hook is how heartbeat acknowledgments reach the heartbeat
    monitor; callers never see pong frames.
    """

    def __init__(self, on_pong: Optional[Callable[[], Any]] = None):
        """
        Initialize message dispatcher

        Args:
            on_pong: Called (synchronously) for every pong frame
        """
        self.on_pong = on_pong
        self.logger = setup_logger("MessageDispatcher", "INFO")
        self._counts = {kind: 0 for kind in FrameKind}
        self._error_count = 0

    def parse(self, raw_frame) -> Dict[str, Any]:
        """
        Parse raw frame into a JSON object

        Args:
            raw_frame: Text (or binary) frame from the WebSocket

        Returns:
            Decoded JSON object

        Raises:
            ProtocolParseError: invalid JSON, or JSON that is not an object
        """
        try:
            data = json.loads(raw_frame)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            raise ProtocolParseError(f"JSON decode error: {e}", raw_frame) from e

        if not isinstance(data, dict):
            raise ProtocolParseError(
                f"Expected JSON object, got {type(data).__name__}", raw_frame
            )
        return data

    def classify(self, raw_frame) -> Optional[InboundFrame]:
        """
        Parse and classify a frame

        Args:
            raw_frame: Text (or binary) frame from the WebSocket

        Returns:
            InboundFrame, or None if the frame is malformed (logged and dropped)
        """
        try:
            data = self.parse(raw_frame)
        except ProtocolParseError as e:
            self._error_count += 1
            self.logger.error(f"Dropping malformed frame: {e}")
            self.logger.debug(f"Raw frame: {e.details.get('raw')}")
            return None

        if data.get("type") == PONG_TYPE:
            kind = FrameKind.PONG
        elif _has_error(data):
            kind = FrameKind.MODERATION
        else:
            kind = FrameKind.MESSAGE

        self._counts[kind] += 1
        return InboundFrame(kind=kind, payload=data, received_at=datetime.now())

    async def dispatch(self, raw_frame, callbacks: Optional[ChatCallbacks]) -> Optional[InboundFrame]:
        """
        Classify a frame and route it

        Args:
            raw_frame: Text (or binary) frame from the WebSocket
            callbacks: Active callback set (None after disconnect)

        Returns:
            The classified frame, or None if it was dropped
        """
        frame = self.classify(raw_frame)
        if frame is None:
            return None

        if frame.kind is FrameKind.PONG:
            self.logger.debug("Received pong")
            if self.on_pong:
                self.on_pong()
            return frame

        if callbacks is None:
            self.logger.debug(f"No callbacks registered, dropping {frame.kind.value} frame")
            return frame

        if frame.kind is FrameKind.MODERATION:
            self.logger.warning(f"Moderation notification: {frame.payload.get('error')}")
            if callbacks.on_ban_notification:
                await safe_invoke(self.logger, "on_ban_notification",
                                  callbacks.on_ban_notification, frame.payload)
            else:
                await safe_invoke(self.logger, "on_error",
                                  callbacks.on_error, ModerationNotification(frame.payload))
            return frame

        self.logger.debug(f"Received: {frame.payload}")
        await safe_invoke(self.logger, "on_message", callbacks.on_message, frame.payload)
        return frame

    def get_stats(self) -> dict:
        """Get dispatcher statistics"""
        total = sum(self._counts.values())
        return {
            "total_frames": total + self._error_count,
            "pong": self._counts[FrameKind.PONG],
            "moderation": self._counts[FrameKind.MODERATION],
            "message": self._counts[FrameKind.MESSAGE],
            "parse_errors": self._error_count,
        }
