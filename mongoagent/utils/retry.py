"""
Retry utilities for reconciliation attempts.

The action manager owns its retry loop (cancellation and re-reads must happen
between attempts), so this module only provides the backoff policy and an
interruptible wait.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with a fixed attempt ceiling.

    Args:
        max_attempts: Read/plan/apply cycles allowed per action (default: 5)
        initial_delay: Delay after the first failed attempt in seconds
        max_delay: Maximum delay between attempts in seconds
        exponential_base: Base for exponential backoff calculation
    """

    max_attempts: int = 5
    initial_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0

    @classmethod
    def from_settings(cls, conf) -> "BackoffPolicy":
        return cls(
            max_attempts=conf.action_max_attempts,
            initial_delay=conf.action_backoff_initial,
            max_delay=conf.action_backoff_max,
            exponential_base=conf.action_backoff_base,
        )

    def delay(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-based)

        Example:
            >>> BackoffPolicy(initial_delay=1.0, max_delay=5.0).delay(3)
            4.0
        """
        return min(
            self.initial_delay * (self.exponential_base ** max(attempt - 1, 0)),
            self.max_delay,
        )

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.max_attempts


async def wait_or_event(delay: float, event: Optional[asyncio.Event]) -> bool:
    """
    Wait for delay seconds or until the event is set.

    Args:
        delay: Time to wait in seconds
        event: Event that interrupts the wait (e.g. cancellation)

    Returns:
        True if the event was set, False if the wait completed normally
    """
    if event is None:
        await asyncio.sleep(delay)
        return False
    if event.is_set():
        return True

    try:
        await asyncio.wait_for(event.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False
