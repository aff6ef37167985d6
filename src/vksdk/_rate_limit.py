"""
Client-side rate limiting for the vksdk SDK.

The provider rejects clients that exceed a fixed number of calls per second
(error 6, "Too many requests per second"). RateLimiter keeps the SDK under
that budget by admitting at most `max_operations` operations within any
rolling `window`.

Example:
    >>> from vksdk._rate_limit import RateLimiter
    >>> limiter = RateLimiter(max_operations=3, window=1.0)
    >>> result = limiter.perform(lambda: http_client.post(url, data))
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import TypeVar

from vksdk._errors import ConfigurationError, VkSdkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Exceptions
# =============================================================================


class TokenAcquisitionTimeoutError(VkSdkError):
    """
    Raised when a caller waited longer than max_wait_time for admission.

    Attributes:
        waited: Time in seconds the caller waited before giving up.
        max_wait_time: The configured maximum wait time.

    Example:
        >>> try:
        ...     limiter.perform(send)
        ... except TokenAcquisitionTimeoutError as e:
        ...     print(f"Rate limit timeout after {e.waited:.1f}s")
    """

    def __init__(self, waited: float, max_wait_time: float):
        self.waited = waited
        self.max_wait_time = max_wait_time
        super().__init__(
            f"Rate limit timeout: waited {waited:.2f}s, max_wait_time={max_wait_time:.2f}s"
        )


# =============================================================================
# Rate Limiter
# =============================================================================


class RateLimiter:
    """
    Sliding-window rate limiter shared by every call of a client.

    Admission timestamps are kept in a log on a monotonic clock. A new
    operation is admitted when fewer than `max_operations` timestamps are
    younger than `window`, so no window-length interval ever contains more
    than `max_operations` admissions.

    Waiters are served in arrival order: only the head of the queue may be
    admitted, the others wait on a condition variable until the head leaves.
    The head waits on the same condition, so set_rate() wakes it and the
    new budget is checked before the old window runs out.

    This class is thread-safe.

    Example:
        >>> limiter = RateLimiter(max_operations=3, window=1.0)
        >>> limiter.perform(lambda: "sent")
        'sent'
        >>> limiter.set_rate(0, 1.0)  # unlimited

    Args:
        max_operations: Operations allowed per window. 0 means unlimited.
        window: Window length in seconds.
        max_wait_time: Maximum time in seconds to wait for admission. If None,
            waits indefinitely.
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests. When None the head waits
            on the internal condition instead, so set_rate() can wake it.
    """

    def __init__(
        self,
        max_operations: int = 0,
        window: float = 1.0,
        *,
        max_wait_time: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ):
        assert max_wait_time is None or max_wait_time > 0, "max_wait_time must be > 0 or None."
        self._validate_rate(max_operations, window)

        self.max_operations = max_operations
        self.window = window
        self.max_wait_time = max_wait_time

        self._clock = clock
        self._sleep = sleep
        self._admissions: deque[float] = deque()
        self._waiters: deque[object] = deque()
        self._lock = threading.Lock()
        self._turn = threading.Condition(self._lock)

    @staticmethod
    def _validate_rate(count: int, window: float) -> None:
        if count is None or count < 0:
            raise ConfigurationError(f"Rate count must be >= 0, got {count}")
        if window is None or window <= 0:
            raise ConfigurationError(f"Rate window must be > 0, got {window}")

    def set_rate(self, count: int, window: float) -> None:
        """
        Reconfigure the budget for subsequent admissions.

        Operations already admitted are not affected.

        Args:
            count: Operations allowed per window. 0 means unlimited.
            window: Window length in seconds.

        Raises:
            ConfigurationError: If count is negative or window is not positive.
        """
        self._validate_rate(count, window)
        with self._turn:
            self.max_operations = count
            self.window = window
            self._turn.notify_all()
        logger.debug(f"Rate limit set to {count} operation(s) per {window:.3f}s")

    def perform(self, operation: Callable[[], T]) -> T:
        """
        Wait for admission, then run the operation.

        Args:
            operation: Zero-argument callable to run once admitted.

        Returns:
            Whatever the operation returns.

        Raises:
            TokenAcquisitionTimeoutError: If max_wait_time is exceeded.
            Exception: Any exception raised by the operation, unchanged.
        """
        self._acquire()
        return operation()

    def _acquire(self) -> None:
        ticket = object()
        start_time = self._clock()

        with self._turn:
            self._waiters.append(ticket)

        try:
            while True:
                with self._turn:
                    if self._waiters[0] is not ticket:
                        self._turn.wait(timeout=self._remaining_wait(start_time))
                        self._check_timeout(start_time, 0.0)
                        continue

                    wait_time = self._try_admit()
                    if wait_time is None:
                        self._waiters.popleft()
                        self._turn.notify_all()
                        return

                    self._check_timeout(start_time, wait_time)
                    if self._sleep is None:
                        self._turn.wait(timeout=wait_time)
                        continue

                self._sleep(wait_time)
        except BaseException:
            with self._turn:
                if ticket in self._waiters:
                    self._waiters.remove(ticket)
                    self._turn.notify_all()
            raise

    def _try_admit(self) -> float | None:
        """
        Admit the caller or compute how long the head must wait.

        Must be called with the lock held.

        Returns:
            None when admitted, otherwise the seconds until the oldest
            admission leaves the window.
        """
        if self.max_operations == 0:
            return None

        now = self._clock()
        while self._admissions and now - self._admissions[0] >= self.window:
            self._admissions.popleft()

        if len(self._admissions) < self.max_operations:
            self._admissions.append(now)
            return None

        # with a shrunk budget the log may hold more than max_operations entries
        oldest_blocking = self._admissions[len(self._admissions) - self.max_operations]
        return max(oldest_blocking + self.window - now, 0.0)

    def _remaining_wait(self, start_time: float) -> float | None:
        if self.max_wait_time is None:
            return None
        return max(self.max_wait_time - (self._clock() - start_time), 0.0)

    def _check_timeout(self, start_time: float, wait_time: float) -> None:
        if self.max_wait_time is None:
            return
        total_waited = self._clock() - start_time
        if total_waited + wait_time > self.max_wait_time:
            raise TokenAcquisitionTimeoutError(
                waited=total_waited,
                max_wait_time=self.max_wait_time,
            )
