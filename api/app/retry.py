from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from . import config

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class RetryExhausted(Exception):
    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded sequential retry with a fixed (optionally growing) delay."""

    max_attempts: int = 2
    delay_seconds: float = 1.0
    backoff: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            delay_seconds=config.RETRY_DELAY_SECONDS,
            backoff=config.RETRY_BACKOFF,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.delay_seconds * (self.backoff ** (attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "operation",
        sleep: SleepFn = asyncio.sleep,
    ) -> T:
        """Await ``operation`` until it succeeds or attempts run out.

        Raises :class:`RetryExhausted` wrapping the last error.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning(
                    "%s attempt %d/%d failed: %s", label, attempt, self.max_attempts, exc
                )
                if attempt >= self.max_attempts:
                    raise RetryExhausted(attempt, exc) from exc
                await sleep(self.delay_for(attempt))
