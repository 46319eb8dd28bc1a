"""
Bounded worker pool for person builds.

- submit()/run_all(): run build coroutines, at most max_workers at a time
- run_step(): run one step with tenacity retry; never raises, returns a
  StepOutcome instead

A step signals a retryable failure by raising. StepFailed lets a step
hand back a payload (e.g. a failed DataSourceResult) that is reported
once retries are exhausted.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar

from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StepFailed(Exception):
    """Raised by a step to request a retry while keeping its last payload."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


@dataclass
class StepOutcome(Generic[T]):
    name: str
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 1

    @classmethod
    def success(cls, name: str, value: T, attempts: int = 1) -> "StepOutcome[T]":
        return cls(name=name, ok=True, value=value, attempts=attempts)

    @classmethod
    def failure(cls, name: str, error: BaseException, attempts: int = 1) -> "StepOutcome[T]":
        value = error.payload if isinstance(error, StepFailed) else None
        return cls(name=name, ok=False, value=value, error=error, attempts=attempts)


class BuildTaskQueue:
    """
    Global concurrency cap for builds plus per-step retry.

    Usage:
        queue = BuildTaskQueue(max_workers=5, step_retries=3)
        outcome = await queue.run_step("exa", lambda: adapter.safe_fetch(params))
        results = await queue.run_all([lambda: build(1), lambda: build(2)])
    """

    def __init__(
        self,
        max_workers: int = 5,
        step_retries: int = 3,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 10.0,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if step_retries < 1:
            raise ValueError("step_retries must be >= 1")
        self.max_workers = max_workers
        self.step_retries = step_retries
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self._semaphore = asyncio.Semaphore(max_workers)
        self._active = 0

    @property
    def active(self) -> int:
        """Builds currently holding a worker slot."""
        return self._active

    async def run_step(self, name: str, fn: Callable[[], Awaitable[T]]) -> StepOutcome[T]:
        """
        Run a step, retrying on any exception.

        Args:
            name: Step name for logs
            fn: Zero-argument coroutine factory, called once per attempt

        Returns:
            StepOutcome; ok=False once step_retries attempts have failed
        """
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.step_retries),
                wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
                reraise=False,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    if attempts > 1:
                        logger.info(f"Retrying step {name} (attempt {attempts}/{self.step_retries})")
                    value = await fn()
        except RetryError as e:
            error = e.last_attempt.exception()
            logger.warning(f"Step {name} failed after {attempts} attempts: {error}")
            return StepOutcome.failure(name, error, attempts)

        return StepOutcome.success(name, value, attempts)

    async def submit(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run a coroutine once a worker slot is free."""
        async with self._semaphore:
            self._active += 1
            try:
                return await factory()
            finally:
                self._active -= 1

    async def run_all(self, factories: Iterable[Callable[[], Awaitable[T]]]) -> List[Any]:
        """
        Run coroutines under the worker cap.

        Returns:
            Results in input order; a coroutine that raised yields its exception
        """
        tasks = [self.submit(factory) for factory in factories]
        return await asyncio.gather(*tasks, return_exceptions=True)
