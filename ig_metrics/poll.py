from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from .apify_retry import is_retryable_apify_exception
from .errors import JobFailedError, JobTimedOutError
from .retry import IsRetryableFn, SleepFn

T = TypeVar("T")


@dataclass(frozen=True)
class PollConfig:
    """
    Fixed-interval polling policy for long-running upstream jobs.

    - interval_seconds is the constant delay between status checks (no backoff, no jitter).
    - max_attempts counts every status check, failed transport calls included.
    - deadline_seconds optionally bounds total wall-clock time as well.
    """

    interval_seconds: float = 10.0
    max_attempts: int = 30
    deadline_seconds: float | None = None
    tolerate_transient_errors: bool = True

    def __post_init__(self) -> None:
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be > 0 when set")


@dataclass(frozen=True)
class PollEvent:
    attempt: int
    max_attempts: int
    value: Any
    error_type: str | None = None
    error_message: str | None = None


OnAttemptFn = Callable[[PollEvent], None]
ClockFn = Callable[[], float]


def _default_clock() -> float:
    return asyncio.get_running_loop().time()


async def poll_until_done(
    fetch_status: Callable[[], Awaitable[T]],
    *,
    cfg: PollConfig,
    is_success: Callable[[T], bool],
    is_terminal: Callable[[T], bool],
    is_transient: IsRetryableFn = is_retryable_apify_exception,
    on_attempt: OnAttemptFn | None = None,
    sleep_fn: SleepFn | None = None,
    clock_fn: ClockFn | None = None,
) -> T:
    """
    Check a job's status until it succeeds, fails, or the budget runs out.

    Returns the successful status value. A terminal non-success value raises
    JobFailedError(value); an exhausted attempt budget or deadline raises
    JobTimedOutError. Transient fetch errors consume an attempt when tolerated
    and are re-raised otherwise. Task cancellation propagates from the sleep.
    """
    sleeper = sleep_fn or asyncio.sleep
    clock = clock_fn or _default_clock
    started = clock()
    attempts = 0

    for attempt in range(1, int(cfg.max_attempts) + 1):
        attempts = attempt
        try:
            value = await fetch_status()
        except Exception as exc:
            transient, _reason = is_transient(exc)
            if not (cfg.tolerate_transient_errors and transient):
                raise
            if on_attempt is not None:
                on_attempt(
                    PollEvent(
                        attempt=attempt,
                        max_attempts=int(cfg.max_attempts),
                        value=None,
                        error_type=type(exc).__name__,
                        error_message=(str(exc) or "").strip(),
                    )
                )
        else:
            if on_attempt is not None:
                on_attempt(
                    PollEvent(attempt=attempt, max_attempts=int(cfg.max_attempts), value=value)
                )
            if is_success(value):
                return value
            if is_terminal(value):
                raise JobFailedError(value)

        if attempt >= int(cfg.max_attempts):
            break

        if cfg.deadline_seconds is not None:
            remaining = float(cfg.deadline_seconds) - (clock() - started)
            if remaining <= 0:
                break
            delay = min(float(cfg.interval_seconds), remaining)
        else:
            delay = float(cfg.interval_seconds)

        if delay > 0:
            await sleeper(delay)

    raise JobTimedOutError(attempts)
