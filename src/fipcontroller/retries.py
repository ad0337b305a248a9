"""Bounded retry with multiplicative backoff.

Mirrors the semantics of a Kubernetes ``wait.Backoff``: ``steps`` is the total
number of attempts, the first retry waits ``duration`` seconds and every
following wait is multiplied by ``factor``.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, List, Optional

from fipcontroller.logging import get_logger

logger = get_logger(__name__, component="retries")


@dataclass(frozen=True)
class Backoff:
    """Backoff policy."""

    duration: float = 1.0  # seconds
    factor: float = 1.2
    steps: int = 5
    jitter: float = 0.0  # fraction of each delay added at random
    cap: Optional[float] = None  # seconds

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError("steps must be at least 1")
        if self.duration < 0:
            raise ValueError("duration must not be negative")
        if self.factor < 1.0:
            raise ValueError("factor must be >= 1.0")

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry (``steps - 1`` values)."""
        delay = self.duration
        for _ in range(self.steps - 1):
            current = delay
            if self.cap is not None:
                current = min(current, self.cap)
            if self.jitter > 0:
                current += random.uniform(0, current * self.jitter)
            yield current
            delay *= self.factor


@dataclass
class RetryResult:
    """Result from retry execution."""

    success: bool
    output: Any
    attempts: int
    total_delay: float
    errors: List[str] = field(default_factory=list)
    last_error: Optional[BaseException] = None


def always_retry(_error: BaseException) -> bool:
    return True


async def retry_on_error(
    backoff: Backoff,
    func: Callable[[], Awaitable[Any]],
    retriable: Callable[[BaseException], bool] = always_retry,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryResult:
    """Call ``func`` until it returns without raising or the steps run out.

    Args:
        backoff: Backoff policy.
        func: Zero-argument coroutine function to call.
        retriable: Predicate deciding whether an error is worth another attempt.
        on_retry: Callback on each retry (attempt, error, delay).
        sleep: Sleep coroutine, replaceable in tests.

    Returns:
        RetryResult with the outcome. Never raises for errors from ``func``.
    """
    errors: List[str] = []
    total_delay = 0.0
    delays = backoff.delays()
    attempt = 0

    while True:
        attempt += 1
        try:
            output = await func()
            return RetryResult(
                success=True,
                output=output,
                attempts=attempt,
                total_delay=total_delay,
                errors=errors,
            )
        except Exception as e:
            errors.append(f"Attempt {attempt}: {e}")
            logger.debug("retry_attempt_failed", attempt=attempt, error=str(e))

            delay = next(delays, None)
            if delay is None or not retriable(e):
                return RetryResult(
                    success=False,
                    output=None,
                    attempts=attempt,
                    total_delay=total_delay,
                    errors=errors,
                    last_error=e,
                )

            if on_retry:
                on_retry(attempt, e, delay)

            total_delay += delay
            await sleep(delay)
