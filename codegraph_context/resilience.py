"""Retry and circuit-breaker wrappers for embedding providers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from .embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    """Raised when a call is rejected because the circuit is open."""


class CircuitBreaker:
    """Stop calling a failing dependency until it has had time to recover.

    After ``threshold`` consecutive failures the circuit opens and calls are
    rejected with :class:`CircuitOpenError`.  Once ``reset_timeout`` seconds
    have passed, one trial call is let through (half-open); success closes
    the circuit, failure re-opens it.
    """

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def call(self, fn: Callable[[], T]) -> T:
        with self._lock:
            if self._state == OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0.0)
                if elapsed < self.reset_timeout:
                    raise CircuitOpenError(
                        f"Circuit breaker is open ({self._failure_count} failures)"
                    )
                self._state = HALF_OPEN
                logger.info("Circuit breaker half-open after %.1fs", elapsed)

        # The lock covers state transitions only, never fn itself.
        try:
            result = fn()
        except Exception:
            with self._lock:
                self._record_failure()
            raise

        with self._lock:
            self._reset()
        return result

    def _record_failure(self) -> None:
        self._last_failure_time = self._clock()
        if self._state == HALF_OPEN:
            self._state = OPEN
            return
        self._failure_count += 1
        if self._failure_count >= self.threshold:
            self._state = OPEN
            logger.warning("Circuit breaker opened after %d failures", self._failure_count)

    def _reset(self) -> None:
        self._state = CLOSED
        self._failure_count = 0
        self._last_failure_time = None


class RetryableProvider(EmbeddingProvider):
    """Wrap an :class:`EmbeddingProvider` with retries and an optional breaker.

    Failed calls are retried up to ``max_retries`` times with exponential
    backoff of ``2 ** attempt * 0.1`` seconds.  :class:`CircuitOpenError`
    is never retried.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_retries: int = 3,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.max_retries = max_retries
        self.circuit_breaker = circuit_breaker
        self._sleep = sleep

    def embed(self, text: str) -> List[float]:
        return self._with_retries(lambda: self.provider.embed(text))

    def embed_batch(self, texts: Iterable[str]) -> List[List[float]]:
        text_list = list(texts)
        return self._with_retries(lambda: self.provider.embed_batch(text_list))

    @property
    def dimensions(self) -> int:
        return self.provider.dimensions

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    def _with_retries(self, fn: Callable[[], Any]) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                if self.circuit_breaker is not None:
                    return self.circuit_breaker.call(fn)
                return fn()
            except CircuitOpenError:
                raise
            except Exception as exc:
                if attempt > self.max_retries:
                    raise
                delay = (2 ** attempt) * 0.1
                logger.warning(
                    "Embedding call failed (%s); retry %d/%d in %.1fs",
                    exc, attempt, self.max_retries, delay,
                )
                self._sleep(delay)
