# Errors - Chat Connector Exceptions
# Error taxonomy shared by the transport, heartbeat and dispatcher

"""
Errors Module

Caller-facing:
- NotConnectedError: send_message() while the channel is not open
- RetryExhaustedError: automatic reconnects used up, passed to on_error

Recovered internally (reported via on_error, then reconnect):
- TransportError: open/send/receive failure, connect timeout
- HeartbeatTimeoutError: too many unanswered pings

Never escalated:
- ProtocolParseError: malformed inbound frame, logged and dropped
- ModerationNotification: ban/error frame from the server
"""

from datetime import datetime
from typing import Any, Dict, Optional


class ChatConnectorError(Exception):
    """Base class for all chat connector errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary format"""
        return {
            "type": type(self).__name__,
            "message": str(self),
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class NotConnectedError(ChatConnectorError):
    """send_message() called while the connection is not open"""

    def __init__(self, state: str):
        super().__init__(
            f"Cannot send message: connection is not open (state={state})",
            {"state": state}
        )
        self.state = state


class TransportError(ChatConnectorError):
    """Low-level open/send/receive failure reported by the transport"""

    # Distinguishes transport-reported failures from self-detected ones in logs
    source = "transport"


class HeartbeatTimeoutError(TransportError):
    """Too many consecutive pings went unanswered"""

    source = "heartbeat"

    def __init__(self, missed: int, interval: float):
        super().__init__(
            f"No pong received for {missed} consecutive pings ({interval}s interval)",
            {"missed": missed, "interval": interval}
        )
        self.missed = missed


class ProtocolParseError(ChatConnectorError):
    """Inbound frame could not be parsed as a JSON object"""

    def __init__(self, message: str, raw: Any = None):
        preview = raw[:100] if isinstance(raw, (str, bytes)) else raw
        super().__init__(message, {"raw": preview})
        self.raw = raw


class ModerationNotification(ChatConnectorError):
    """Server-side moderation/ban notice (an `error` frame)"""

    def __init__(self, payload: Dict[str, Any]):
        super().__init__(str(payload.get("error")), {"payload": payload})
        self.payload = payload


class RetryExhaustedError(ChatConnectorError):
    """Automatic reconnection gave up after max_retries attempts"""

    def __init__(self, max_retries: int):
        super().__init__(
            f"Reconnect attempts exhausted ({max_retries}/{max_retries}); "
            f"call retry_connection() to try again",
            {"max_retries": max_retries}
        )
        self.max_retries = max_retries
