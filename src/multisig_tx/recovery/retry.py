"""
Retry policies for transient transport failures.

Provides configurable retry strategies with backoff and jitter. Only
errors that `ErrorHandler.is_retryable` accepts are retried; everything
else propagates on the first attempt.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from ..runtime.errors import ErrorHandler, TransportError


logger = logging.getLogger(__name__)


class MaxRetriesExceeded(TransportError):
    """Maximum retry attempts exceeded."""
    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Max retries ({attempts}) exceeded. Last error: {last_error}",
            details={"attempts": attempts},
            cause=last_error,
        )


@dataclass
class RetryAttempt:
    """Information about a retry attempt."""
    attempt: int
    delay: float
    exception: Optional[Exception] = None
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def duration(self) -> float:
        """Get attempt duration in seconds."""
        if self.end_time > self.start_time:
            return self.end_time - self.start_time
        return 0.0


class RetryPolicy(ABC):
    """
    Abstract base class for retry policies.

    Defines the interface for retry strategies with configurable
    backoff algorithms and retry conditions.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        jitter: bool = True,
        jitter_factor: float = 0.1,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize retry policy.

        Args:
            max_attempts: Maximum number of attempts, the first included
            base_delay: Base delay between retries in seconds
            max_delay: Maximum delay between retries in seconds
            jitter: Whether to add jitter to delays
            jitter_factor: Jitter factor (0.0 to 1.0)
            sleep: Sleep function, replaceable in tests
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.jitter_factor = jitter_factor
        self.sleep = sleep
        self.attempts: List[RetryAttempt] = []

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for given attempt number.

        Args:
            attempt: Attempt number (1-based)

        Returns:
            Delay in seconds
        """
        pass

    def should_retry(self, attempt: int, exception: Exception) -> bool:
        """
        Determine if operation should be retried.

        Args:
            attempt: Current attempt number
            exception: Exception that occurred

        Returns:
            True if should retry, False otherwise
        """
        if attempt >= self.max_attempts:
            return False
        return ErrorHandler.is_retryable(exception)

    def add_jitter(self, delay: float) -> float:
        """
        Add jitter to delay if enabled.

        Args:
            delay: Base delay

        Returns:
            Delay with jitter applied
        """
        if not self.jitter:
            return delay

        jitter_amount = delay * self.jitter_factor * (random.random() - 0.5)
        return max(0, delay + jitter_amount)

    def execute(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function with retry policy.

        The attempt number (1-based) is not passed to `func`; closures that
        need it can read `len(policy.attempts)`.

        Args:
            func: Function to execute
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Function result

        Raises:
            MaxRetriesExceeded: If every attempt failed with a retryable error
            Exception: The first non-retryable error, unchanged
        """
        self.attempts = []
        attempt = 0
        last_exception = None

        while attempt < self.max_attempts:
            attempt += 1
            retry_attempt = RetryAttempt(attempt=attempt, delay=0.0, start_time=time.time())
            self.attempts.append(retry_attempt)

            try:
                result = func(*args, **kwargs)
                retry_attempt.end_time = time.time()
                if attempt > 1:
                    logger.info(f"Operation succeeded on attempt {attempt}")
                return result

            except Exception as e:
                retry_attempt.end_time = time.time()
                retry_attempt.exception = e
                last_exception = e

                if not ErrorHandler.is_retryable(e):
                    raise
                if not self.should_retry(attempt, e):
                    break

                delay = self.add_jitter(min(self.calculate_delay(attempt), self.max_delay))
                retry_attempt.delay = delay
                logger.warning(
                    f"Attempt {attempt} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                self.sleep(delay)

        raise MaxRetriesExceeded(attempt, last_exception)


class ExponentialBackoff(RetryPolicy):
    """
    Exponential backoff retry policy.

    Delay increases exponentially with each attempt: base_delay * (factor ^ attempt)
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        factor: float = 2.0,
        jitter: bool = True,
        jitter_factor: float = 0.1,
        sleep: Callable[[float], None] = time.sleep
    ):
        super().__init__(max_attempts, base_delay, max_delay, jitter, jitter_factor, sleep)
        self.factor = factor

    def calculate_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = self.base_delay * (self.factor ** (attempt - 1))
        return min(delay, self.max_delay)


class FixedBackoff(RetryPolicy):
    """
    Fixed delay retry policy.

    Uses constant delay between all retry attempts.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay: float = 1.0,
        jitter: bool = False,
        jitter_factor: float = 0.1,
        sleep: Callable[[float], None] = time.sleep
    ):
        super().__init__(max_attempts, delay, delay, jitter, jitter_factor, sleep)

    def calculate_delay(self, attempt: int) -> float:
        """Calculate fixed delay."""
        return self.base_delay
