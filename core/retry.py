"""
Bounded retries and polling around node calls.

Every network-dependent step of a check runs through a RetryPolicy. A policy
makes at most max_attempts calls, waits between them through the run context
and stops early, without spending an attempt, when the run is cancelled.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type
import logging

from swarmcheck.core.errors import (
    ConfigurationError,
    PollExhaustedError,
    RunCancelled,
    TransientNetworkError,
)
from swarmcheck.core.runtime import RunContext

logger = logging.getLogger(__name__)


class DelayMode(Enum):
    """When the policy waits."""
    AFTER_FAILURE = "after_failure"  # Back off only after a failed attempt
    BEFORE_EACH = "before_each"  # Fixed wait before every attempt


class RetryStatus(Enum):
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryOutcome:
    """Result of running an operation under a policy."""

    status: RetryStatus
    attempts: int
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RetryStatus.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.status is RetryStatus.CANCELLED


class _NotYet(Exception):
    """Polled operation returned a falsy result."""


class RetryPolicy:
    """Bounded-attempt executor."""

    def __init__(
        self,
        max_attempts: int = 3,
        delay: float = 0.0,
        mode: DelayMode = DelayMode.AFTER_FAILURE,
        retry_on: Tuple[Type[BaseException], ...] = (TransientNetworkError,),
    ):
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
        if delay < 0:
            raise ConfigurationError(f"delay must be non-negative, got {delay}")
        self.max_attempts = max_attempts
        self.delay = delay
        self.mode = mode
        self.retry_on = retry_on

    def execute(
        self,
        operation: Callable[[], Any],
        ctx: RunContext,
        on_failure: Optional[Callable[[BaseException, int], None]] = None,
    ) -> RetryOutcome:
        """
        Run operation until it succeeds, the run is cancelled or attempts run out.

        Errors outside retry_on propagate unchanged.

        Args:
            operation: Zero-argument callable
            ctx: Run context supplying waits and cancellation
            on_failure: Called with (error, attempt) after each failed attempt

        Returns:
            RetryOutcome with the value or the last error
        """
        attempts = 0
        last_error: Optional[BaseException] = None

        while attempts < self.max_attempts:
            if ctx.cancelled:
                return RetryOutcome(RetryStatus.CANCELLED, attempts, error=last_error)
            if self.mode is DelayMode.BEFORE_EACH and not ctx.wait(self.delay):
                return RetryOutcome(RetryStatus.CANCELLED, attempts, error=last_error)

            attempts += 1
            try:
                value = operation()
            except RunCancelled:
                return RetryOutcome(RetryStatus.CANCELLED, attempts - 1, error=last_error)
            except self.retry_on as e:
                last_error = e
                if on_failure is not None:
                    on_failure(e, attempts)
                logger.debug(f"Attempt {attempts}/{self.max_attempts} failed: {e}")
                if (
                    self.mode is DelayMode.AFTER_FAILURE
                    and attempts < self.max_attempts
                    and not ctx.wait(self.delay)
                ):
                    return RetryOutcome(RetryStatus.CANCELLED, attempts, error=last_error)
                continue

            return RetryOutcome(RetryStatus.SUCCEEDED, attempts, value=value)

        return RetryOutcome(RetryStatus.EXHAUSTED, attempts, error=last_error)

    def call(
        self,
        operation: Callable[[], Any],
        ctx: RunContext,
        node: Optional[str] = None,
        name: str = "operation",
    ) -> Any:
        """
        Raising form of execute.

        Raises:
            TransientNetworkError: tagged with node, operation and attempts
            RunCancelled: if the run was cancelled
        """
        outcome = self.execute(operation, ctx)
        if outcome.succeeded:
            return outcome.value
        if outcome.cancelled:
            raise RunCancelled(f"{name} cancelled")
        raise TransientNetworkError(
            str(outcome.error) if outcome.error else "failed",
            node=node,
            operation=name,
            attempts=outcome.attempts,
        ) from outcome.error

    def poll(
        self,
        operation: Callable[[], Any],
        ctx: RunContext,
        condition: str,
        node: Optional[str] = None,
    ) -> Any:
        """
        Call operation until it returns a truthy value.

        Errors in retry_on count as "not yet".

        Raises:
            PollExhaustedError: naming condition and node
            RunCancelled: if the run was cancelled
        """
        def attempt():
            result = operation()
            if not result:
                raise _NotYet(condition)
            return result

        polling = RetryPolicy(
            max_attempts=self.max_attempts,
            delay=self.delay,
            mode=self.mode,
            retry_on=self.retry_on + (_NotYet,),
        )
        outcome = polling.execute(attempt, ctx)
        if outcome.succeeded:
            return outcome.value
        if outcome.cancelled:
            raise RunCancelled(f"waiting for {condition} cancelled")
        raise PollExhaustedError(condition, node, outcome.attempts) from (
            None if isinstance(outcome.error, _NotYet) else outcome.error
        )
