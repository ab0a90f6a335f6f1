"""
Bounded reconnect policy for transient replication failures.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import Retrying, RetryCallState, retry_if_exception, wait_fixed

from .metrics import connection_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_LIMIT = 100
DEFAULT_RETRY_WAIT = 3.0


@dataclass
class RetryState:
    """Retry bookkeeping for one ``start()`` call."""
    count: int = 0
    limit: int = DEFAULT_RETRY_LIMIT
    wait: float = DEFAULT_RETRY_WAIT

    def __post_init__(self):
        if self.limit < 0:
            raise ValueError("retry limit must be non-negative")
        if self.wait < 0:
            raise ValueError("retry wait must be non-negative")


class RetryController:
    """
    Fixed-wait, bounded retry around a connect-and-replay attempt.

    A failure is retried while ``should_retry(error)`` holds and fewer than
    ``limit`` retries have been spent. Once exhausted, the last error is
    re-raised as-is.

    Example:
        >>> controller = RetryController(RetryState(limit=2, wait=0.1))
        >>> controller.call(attempt, should_retry=lambda e: isinstance(e, IOError))
    """

    def __init__(self, state: RetryState = None, sleep: Callable[[float], None] = time.sleep):
        self.state = state or RetryState()
        self._sleep = sleep

    @property
    def count(self) -> int:
        return self.state.count

    def retryable(self) -> bool:
        return self.state.count < self.state.limit

    def reset(self) -> None:
        self.state.count = 0

    def call(self, attempt: Callable[[], T], should_retry: Callable[[BaseException], bool]) -> T:
        """
        Run ``attempt`` until it returns, retrying qualifying failures.

        Raises:
            The last exception raised by ``attempt`` once retries are exhausted
            or the failure does not qualify.
        """
        retrying = Retrying(
            stop=lambda retry_state: not self.retryable(),
            wait=wait_fixed(self.state.wait),
            retry=retry_if_exception(should_retry),
            before_sleep=self._before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(attempt)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        self.state.count += 1
        connection_retries_total.inc()
        error = retry_state.outcome.exception()
        logger.warning(
            f"Replication connection lost, retrying in {self.state.wait}s "
            f"(attempt {self.state.count}/{self.state.limit})",
            extra={
                "attempt": self.state.count,
                "max_retries": self.state.limit,
                "delay_seconds": self.state.wait,
                "error": str(error),
                "error_type": type(error).__name__
            }
        )
