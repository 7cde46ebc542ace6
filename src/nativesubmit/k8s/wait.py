"""Polling and retry timing for Kubernetes operations.

Every loop here honours an optional monotonic deadline and an optional
``threading.Event`` for cancellation, so a caller can bound or abort a
submission at any point.
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum

from .client import K8sError


class WaitStatus(Enum):
    """Status of a wait operation."""

    READY = "ready"
    EXHAUSTED = "exhausted"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class WaitResult:
    """Result of a wait operation."""

    status: WaitStatus
    message: str
    elapsed_seconds: float
    attempts: int


class WaitError(K8sError):
    """Raised when a wait operation fails."""

    pass


class WaitTimeout(WaitError):
    """Raised when a wait operation runs past its deadline."""

    pass


class WaitCancelled(WaitError):
    """Raised when the caller cancels a wait operation."""

    pass


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule.

    ``attempts`` counts calls, so a policy with 5 attempts sleeps at most
    4 times. Each delay is multiplied by ``factor`` and stretched by up to
    ``jitter`` of itself.
    """

    attempts: int = 5
    delay: float = 0.01
    factor: float = 1.0
    jitter: float = 0.1

    def delays(self) -> Iterator[float]:
        delay = self.delay
        while True:
            if self.jitter > 0:
                yield delay * (1 + random.uniform(0, self.jitter))
            else:
                yield delay
            delay *= self.factor


# Optimistic-concurrency retries on update
CONFLICT_RETRY = RetryPolicy(attempts=5, delay=0.01, factor=1.0, jitter=0.1)

# Post-create existence check for the driver Service
SERVICE_VERIFY = RetryPolicy(attempts=5, delay=2.0, factor=1.0, jitter=0.0)


def deadline_after(timeout_seconds: float | None) -> float | None:
    """Monotonic deadline ``timeout_seconds`` from now, or None."""
    if timeout_seconds is None:
        return None
    return time.monotonic() + timeout_seconds


def pause(seconds: float, cancel: threading.Event | None = None) -> bool:
    """Sleep for ``seconds``; returns True if ``cancel`` was set meanwhile."""
    if cancel is not None:
        return cancel.wait(seconds)
    if seconds > 0:
        time.sleep(seconds)
    return False


def wait_for_condition(
    check_fn: Callable[[], tuple[bool, str]],
    timeout_seconds: float | None = 300,
    poll_interval: float = 5,
    description: str = "condition",
    max_attempts: int | None = None,
    deadline: float | None = None,
    cancel: threading.Event | None = None,
    propagate: tuple[type[Exception], ...] = (),
) -> WaitResult:
    """Generic wait for a condition to be true.

    Args:
        check_fn: Function that returns (success, message)
        timeout_seconds: Maximum time to wait, None for no local limit
        poll_interval: Seconds between checks
        description: Description for messages
        max_attempts: Give up after this many checks
        deadline: Absolute ``time.monotonic()`` limit set by the caller
        cancel: Event that aborts the wait when set
        propagate: Exception types raised by check_fn that end the wait
            instead of counting as a failed check

    Returns:
        WaitResult with outcome
    """
    start_time = time.monotonic()
    limit = start_time + timeout_seconds if timeout_seconds is not None else None
    if deadline is not None:
        limit = deadline if limit is None else min(limit, deadline)
    attempts = 0
    message = ""

    def result(status: WaitStatus, text: str) -> WaitResult:
        return WaitResult(
            status=status,
            message=text,
            elapsed_seconds=time.monotonic() - start_time,
            attempts=attempts,
        )

    while True:
        if cancel is not None and cancel.is_set():
            return result(WaitStatus.CANCELLED, f"Cancelled waiting for {description}")

        attempts += 1
        try:
            success, message = check_fn()
            if success:
                return result(WaitStatus.READY, message)
        except propagate:
            raise
        except Exception as e:
            message = str(e)

        if max_attempts is not None and attempts >= max_attempts:
            return result(
                WaitStatus.EXHAUSTED,
                f"Gave up on {description} after {attempts} attempts: {message}",
            )

        now = time.monotonic()
        if limit is not None and now >= limit:
            elapsed = now - start_time
            return result(
                WaitStatus.TIMEOUT,
                f"Timeout after {int(elapsed)}s waiting for {description}: {message}",
            )

        interval = poll_interval if limit is None else min(poll_interval, limit - now)
        if pause(interval, cancel):
            return result(WaitStatus.CANCELLED, f"Cancelled waiting for {description}")
