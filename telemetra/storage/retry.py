from __future__ import annotations

import logging
import sqlite3
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Sequence, TypeVar

import anyio

from telemetra.models import Metric

from .base import MetricStorage
from .metrics import StorageMetrics

T = TypeVar("T")

log = logging.getLogger(__name__)

# Fragments of SQLite / aiosqlite error messages that describe a lost, busy
# or unreachable database rather than a problem with the statement or data.
CONNECTION_ERROR_MARKERS: tuple[str, ...] = (
    "database is locked",
    "database table is locked",
    "unable to open database",
    "disk i/o error",
    "closed database",
    "no active connection",
    "connection closed",
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Fixed retry schedule for transient connection failures.

    Attributes:
        attempts (int): Total number of attempts, the first one included.
        delays (tuple[float, ...]): Seconds to wait before each retry. The n-th
            retry waits `delays[n]`; retries beyond the schedule reuse the
            last entry. The schedule is fixed, not exponential.
    """

    attempts: int = 3
    delays: tuple[float, ...] = (1.0, 3.0, 5.0)

    def __post_init__(self) -> None:
        if self.attempts <= 0:
            raise ValueError("attempts must be > 0")
        if not self.delays:
            raise ValueError("delays must not be empty")

    def delay(self, retry: int) -> float:
        """Return the wait before the `retry`-th retry (0-based)."""
        return self.delays[min(retry, len(self.delays) - 1)]


def is_connection_error(exc: BaseException) -> bool:
    """
    Tell whether `exc` is a connection-level failure worth retrying.

    Constraint violations, malformed statements and data errors are never
    retried. The `__cause__` chain is followed so that errors re-raised with
    context keep their classification.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionError):
            return True
        if isinstance(current, (sqlite3.OperationalError, sqlite3.ProgrammingError, ValueError)):
            message = str(current).lower()
            if any(marker in message for marker in CONNECTION_ERROR_MARKERS):
                return True
        current = current.__cause__
    return False


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """
    Await `func()` and retry it on connection-level errors.

    When retries are exhausted, or the error is not retryable, the original
    exception is re-raised unchanged. If the enclosing cancel scope has a
    deadline that would expire during the next backoff, the most recent error
    is raised immediately instead of sleeping into the cancellation.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except Exception as exc:
            if attempt >= policy.attempts or not is_connection_error(exc):
                raise
            delay = policy.delay(attempt - 1)
            if anyio.current_time() + delay >= anyio.current_effective_deadline():
                raise
            if on_retry is not None:
                on_retry(attempt, exc, delay)
        await anyio.sleep(delay)


class RetryingStorage:
    """
    Transparent resilience proxy around a `MetricStorage`.

    Every operation of the wrapped backend is retried according to a
    `RetryPolicy` when it fails with a connection-level error. The proxy
    implements the same contract as the backend, adds no error kinds and
    only changes latency.

    Used for the relational backend, whose connections can drop.
    """

    def __init__(
        self,
        storage: MetricStorage,
        policy: RetryPolicy | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._storage = storage
        self._policy = policy or RetryPolicy()
        self._logger = logger or log

    @property
    def wrapped(self) -> MetricStorage:
        return self._storage

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def metrics(self) -> StorageMetrics:
        return self._storage.metrics

    def _on_retry(self, attempt: int, exc: BaseException, delay: float) -> None:
        self.metrics.retries += 1
        self._logger.warning(
            "Storage attempt %d/%d failed (%s), retrying in %.1fs",
            attempt,
            self._policy.attempts,
            exc,
            delay,
        )

    async def _call(self, func: Callable[[], Awaitable[T]]) -> T:
        return await call_with_retry(func, self._policy, on_retry=self._on_retry)

    async def get(self, kind: str, id: str) -> Metric:
        return await self._call(lambda: self._storage.get(kind, id))

    async def set(self, metric: Metric) -> Metric:
        return await self._call(lambda: self._storage.set(metric))

    async def set_many(self, metrics: Sequence[Metric]) -> list[Metric]:
        return await self._call(lambda: self._storage.set_many(metrics))

    async def get_all(self) -> list[Metric]:
        return await self._call(self._storage.get_all)

    async def ping(self) -> None:
        await self._call(self._storage.ping)

    async def aclose(self) -> None:
        await self._storage.aclose()
