"""
Run context: deadline, clock and cooperative cancellation.

Checks never sleep directly; every wait goes through the run context so a
cancellation or an elapsed deadline ends the wait early, and tests can swap
in a clock that advances instantly.
"""

import threading
import time
from typing import Optional
import logging

from swarmcheck.core.errors import RunCancelled

logger = logging.getLogger(__name__)


class Clock:
    """Time source for a run: now() in seconds and an interruptible sleep."""

    def now(self) -> float:
        raise NotImplementedError

    def sleep(self, seconds: float, interrupt: threading.Event) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    """Monotonic wall clock."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, interrupt: threading.Event) -> None:
        """Sleep up to seconds, waking early when interrupt is set."""
        if seconds > 0:
            interrupt.wait(seconds)


class RunContext:
    """
    Per-run state shared by every step of a check.

    Owns the seed, the optional deadline and the cancel signal.
    """

    def __init__(
        self,
        seed: int,
        duration: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            seed: Run seed for all seeded streams
            duration: Seconds until the run deadline (None for no deadline)
            clock: Object with now() and sleep(seconds, interrupt)
        """
        self.seed = seed
        self.clock = clock or SystemClock()
        self.started_at = self.clock.now()
        self.deadline = None if duration is None else self.started_at + duration
        self._cancel = threading.Event()

    def cancel(self):
        """Request cancellation; honoured at the next check point."""
        if not self._cancel.is_set():
            logger.info("Run cancellation requested")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self.clock.now() >= self.deadline

    def elapsed(self) -> float:
        return self.clock.now() - self.started_at

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock.now())

    def check(self):
        """Raise RunCancelled if the run should stop."""
        if self._cancel.is_set():
            raise RunCancelled()
        if self.expired:
            raise RunCancelled("run deadline elapsed")

    def wait(self, seconds: float) -> bool:
        """
        Wait for seconds, bounded by the deadline.

        Returns:
            True if the full wait completed, False if the run was cancelled
            or the deadline passed
        """
        if self.cancelled:
            return False
        remaining = self.remaining()
        if remaining is not None and seconds >= remaining:
            self.clock.sleep(remaining, self._cancel)
            return False
        self.clock.sleep(seconds, self._cancel)
        return not self.cancelled

    def sleep(self, seconds: float):
        """Wait for seconds, raising RunCancelled if interrupted."""
        if not self.wait(seconds):
            self.check()
            raise RunCancelled()

    def with_timeout(self, duration: Optional[float]) -> "RunContext":
        """
        Child context with a deadline no later than this one's.

        The child shares clock, seed and cancel signal with its parent.
        """
        child = RunContext(self.seed, duration, self.clock)
        child._cancel = self._cancel
        if self.deadline is not None and (child.deadline is None or self.deadline < child.deadline):
            child.deadline = self.deadline
        return child
