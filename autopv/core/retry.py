"""
autopv.core.retry
=================
Bounded retry with linear back-off for external calls
(provider exports, reasoning service).

The policy is an explicit collaborator: components receive one in their
constructor, and tests pass a policy whose sleep is a no-op.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Tuple, Type

from autopv.core.logger import StructuredLogger


class RetryPolicy:
    """
    Call a function up to `max_attempts` times.

    Parameters
    ----------
    max_attempts : int
        Total attempts including the first one (>= 1).
    backoff_seconds : float
        Sleep before attempt n+1 is `backoff_seconds * n`.
    retry_on : tuple of exception types
        Only these are retried; anything else propagates immediately.
    give_up_on : tuple of exception types
        Subclasses of `retry_on` that must never be retried
        (e.g. CredentialError: a revoked token will not come back).
    sleep : callable
        Injected for tests.

    Usage
    -----
    policy = RetryPolicy(max_attempts=3, backoff_seconds=2.0)
    text = policy.call(service.complete, request)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        give_up_on: Tuple[Type[BaseException], ...] = (),
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[StructuredLogger] = None,
    ):
        if max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        self.max_attempts    = max_attempts
        self.backoff_seconds = backoff_seconds
        self.retry_on        = retry_on
        self.give_up_on      = give_up_on
        self._sleep          = sleep
        self._logger         = logger

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke fn(*args, **kwargs), retrying on the configured errors."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except self.give_up_on:
                raise
            except self.retry_on as exc:
                if attempt == self.max_attempts:
                    raise
                if self._logger is not None:
                    self._logger.warn(
                        "retry",
                        attempt=attempt,
                        max_attempts=self.max_attempts,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                self._sleep(self.backoff_seconds * attempt)
        raise AssertionError("unreachable")

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1, backoff_seconds=0.0)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"backoff_seconds={self.backoff_seconds})"
        )
