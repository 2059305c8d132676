# Helpers - Utility Functions
# Small utilities shared across the connection layer

"""
Helpers Module

Provides utility functions for:
- Calling user callbacks that may be sync or async
- Guarding the manager against exceptions raised by user callbacks
"""

import inspect
import logging
from typing import Any, Callable, Optional

async def invoke_callback(callback: Optional[Callable], *args) -> Any:
    """
    Call a callback and await the result if it is awaitable

    Args:
        callback: Plain function, coroutine function or None
        *args: Arguments passed to the callback

    Returns:
        Callback result (None when no callback is set)
    """
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result

async def safe_invoke(logger: logging.Logger, name: str, callback: Optional[Callable], *args) -> bool:
    """
    Call a user callback, logging (not raising) any exception it throws

    Args:
        logger: Logger to report callback failures on
        name: Callback name used in the log line
        callback: Callback to invoke
        *args: Arguments passed to the callback

    Returns:
        True if the callback ran without raising, False otherwise
    """
    try:
        await invoke_callback(callback, *args)
        return True
    except Exception as e:
        logger.error(f"{name} callback error: {e}", exc_info=True)
        return False
