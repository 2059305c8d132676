# Heartbeat Manager - Keep Connection Alive
# Application-level ping/pong liveness monitor

"""
Heartbeat Manager Module

Responsibilities:
- Send {"type": "ping"} every `interval` seconds while the channel is open
- Count pings that have not been answered by a pong
- Trigger the timeout hook once `max_missed` pings go unanswered

Some transports never surface a half-open connection (mobile networks,
NAT timeouts), so the close event alone cannot be relied on. Detection
latency is bounded by interval * max_missed.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..utils.logger import setup_logger

@dataclass
class HeartbeatPolicy:
    """Probe cadence and missed-probe threshold"""
    interval: float = 25.0
    max_missed: int = 3
    missed_count: int = 0

class HeartbeatMonitor:
    """
    Manages the ping/pong loop for one open connection

    A monitor belongs to a single connection generation: it is started when
    that connection opens and stopped on any exit from the open state.
    """

    def __init__(
        self,
        send_ping: Callable[[], Awaitable[Any]],
        on_timeout: Callable[[int], Awaitable[Any]],
        policy: Optional[HeartbeatPolicy] = None
    ):
        """
        Initialize heartbeat monitor

        Args:
            send_ping: Coroutine function writing one ping frame
            on_timeout: Coroutine function called with the missed count
                once the threshold is reached
            policy: Interval and threshold (defaults: 25s, 3 missed)
        """
        self.send_ping = send_ping
        self.on_timeout = on_timeout
        self.policy = policy or HeartbeatPolicy()
        self.logger = setup_logger("HeartbeatMonitor", "INFO")
        self._task: Optional[asyncio.Task] = None
        self._pings_sent = 0
        self._pongs_received = 0

    @property
    def missed_count(self) -> int:
        return self.policy.missed_count

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start heartbeat loop (resets the missed counter)"""
        self.stop()
        self.policy.missed_count = 0
        self._task = asyncio.get_running_loop().create_task(self._heartbeat_loop())
        self.logger.debug(
            f"Heartbeat started ({self.policy.interval}s interval, "
            f"max {self.policy.max_missed} missed)"
        )

    def stop(self):
        """Stop heartbeat loop"""
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def handle_pong(self):
        """Handle pong response"""
        self._pongs_received += 1
        if self.policy.missed_count:
            self.logger.debug(f"Pong received, clearing {self.policy.missed_count} missed")
        self.policy.missed_count = 0

    async def _heartbeat_loop(self):
        """
        Background task sending pings

        Each tick sends a ping and counts it as missed until a pong arrives.
        """
        try:
            while True:
                await asyncio.sleep(self.policy.interval)

                try:
                    await self.send_ping()
                    self._pings_sent += 1
                    self.logger.debug("Sent ping")
                except Exception as e:
                    self.logger.warning(f"Failed to send ping: {e}")

                self.policy.missed_count += 1
                if self.policy.missed_count >= self.policy.max_missed:
                    self.logger.error(
                        f"Heartbeat timeout: {self.policy.missed_count}/"
                        f"{self.policy.max_missed} pings unanswered"
                    )
                    # Detach first: the timeout hook stops this monitor
                    self._task = None
                    await self.on_timeout(self.policy.missed_count)
                    return

        except asyncio.CancelledError:
            self.logger.debug("Heartbeat loop cancelled")
            raise

    def get_stats(self) -> dict:
        """Get heartbeat statistics"""
        return {
            "running": self.is_running,
            "pings_sent": self._pings_sent,
            "pongs_received": self._pongs_received,
            "missed_count": self.policy.missed_count,
        }
