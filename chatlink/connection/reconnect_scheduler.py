# Reconnect Scheduler - Bounded Linear Backoff

"""
Reconnect Scheduler Module

Responsibilities:
- Track retry attempts against a fixed ceiling
- Compute delay = min(base_delay * retry_count, max_delay)
- Own the single one-shot reconnect timer (arm / cancel)

With base_delay=3 the attempts fire after 3s, 6s, 9s, ... capped at
max_delay. Once retry_count reaches max_retries nothing more is armed.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from ..utils.logger import setup_logger

@dataclass
class RetryPolicy:
    """Retry ceiling and backoff parameters"""
    max_retries: int = 3
    base_delay: float = 3.0
    max_delay: float = 30.0
    retry_count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    def next_delay(self) -> float:
        """Delay for the current retry_count"""
        return min(self.base_delay * self.retry_count, self.max_delay)

class ReconnectScheduler:
    """
    Arms the one-shot reconnect timer

    At most one timer is pending at any time; arming a new one cancels the
    previous one.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None):
        """
        Initialize reconnect scheduler

        Args:
            policy: Retry ceiling and delays (defaults: 3 retries, 3s base, 30s cap)
        """
        self.policy = policy or RetryPolicy()
        self.logger = setup_logger("ReconnectScheduler", "INFO")
        self._handle: Optional[asyncio.TimerHandle] = None
        self.last_delay: Optional[float] = None

    @property
    def retry_count(self) -> int:
        return self.policy.retry_count

    @property
    def pending(self) -> bool:
        """True while a reconnect timer is armed"""
        return self._handle is not None

    def schedule(self, callback: Callable[[], None]) -> Optional[float]:
        """
        Arm the next backoff retry

        Args:
            callback: Called (synchronously, on the event loop) when the timer fires

        Returns:
            Delay in seconds, or None if retries are exhausted
        """
        self.cancel()

        if self.policy.exhausted:
            self.logger.error(
                f"Max reconnect attempts reached ({self.policy.max_retries}), giving up"
            )
            return None

        self.policy.retry_count += 1
        delay = self.policy.next_delay()
        self.logger.info(
            f"Reconnecting in {delay}s "
            f"(attempt {self.policy.retry_count}/{self.policy.max_retries})..."
        )
        self._arm(delay, callback)
        return delay

    def schedule_after(self, delay: float, callback: Callable[[], None]):
        """
        Arm a fixed-delay timer without touching the retry count

        Args:
            delay: Seconds to wait
            callback: Called when the timer fires
        """
        self.cancel()
        self._arm(delay, callback)

    def cancel(self) -> bool:
        """
        Cancel the pending timer

        Returns:
            True if a timer was pending
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self.logger.debug("Pending reconnect cancelled")
        return True

    def reset(self):
        """Reset retry count (successful open or manual retry)"""
        self.policy.retry_count = 0

    def _arm(self, delay: float, callback: Callable[[], None]):
        loop = asyncio.get_running_loop()
        self.last_delay = delay
        self._handle = loop.call_later(delay, self._fire, callback)

    def _fire(self, callback: Callable[[], None]):
        self._handle = None
        callback()
