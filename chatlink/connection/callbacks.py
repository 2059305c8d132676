# Callbacks - Caller-supplied Event Handlers

"""
Callbacks Module

The connector holds exactly one ChatCallbacks set at a time. Each handler
may be a plain function or a coroutine function.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class ChatCallbacks:
    """Single active callback set registered through connect()"""
    on_message: Callable[[Dict[str, Any]], Any]
    on_connect: Callable[[], Any]
    on_disconnect: Callable[[], Any]
    on_error: Callable[[Exception], Any]
    on_ban_notification: Optional[Callable[[Dict[str, Any]], Any]] = None
