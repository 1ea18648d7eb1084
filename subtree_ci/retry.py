"""
Retry policy for git network operations.

Pulls and pushes against a remote fail transiently (a concurrent push moved
the branch, the network dropped). A RetryPolicy runs an operation a bounded
number of times with a delay between attempts, and lets any error that is not
retryable escape immediately.

Example:
    >>> policy = RetryPolicy(attempts=4, delay=1.0)
    >>> outcome = policy.run(lambda attempt: repo.push(url, "gh-pages"))
    >>> outcome.succeeded
    True
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from git.exc import GitCommandError

from .console import log_info

T = TypeVar("T")


def is_retryable_error(exception: BaseException) -> bool:
    """Git command failures are treated as transient; everything else is not."""
    return isinstance(exception, GitCommandError)


@dataclass
class RetryOutcome(Generic[T]):
    """Result of running an operation under a retry policy."""

    succeeded: bool
    attempts: int
    value: T | None = None
    errors: list[BaseException] = field(default_factory=list)


class RetryPolicy:
    """
    Bounded retry with a fixed or exponential delay.

    Attributes:
        attempts: Maximum number of times the operation runs (default: 4)
        delay: Seconds to wait before the second attempt (default: 1.0)
        multiplier: Growth factor of the delay per attempt (default: 1.0, fixed)
        retryable: Predicate deciding whether an error is retried
        sleep: Function used to wait between attempts
    """

    def __init__(
        self,
        attempts: int = 4,
        delay: float = 1.0,
        multiplier: float = 1.0,
        retryable: Callable[[BaseException], bool] = is_retryable_error,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the retry policy.

        Raises:
            ValueError: If parameters are invalid
        """
        if attempts < 0:
            raise ValueError("attempts must be non-negative")
        if delay < 0:
            raise ValueError("delay must be non-negative")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

        self.attempts = attempts
        self.delay = delay
        self.multiplier = multiplier
        self.retryable = retryable
        self.sleep = sleep

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds after the given (0-indexed) failed attempt."""
        return self.delay * (self.multiplier**attempt)

    def run(
        self,
        operation: Callable[[int], T | None],
        description: str | None = None,
    ) -> RetryOutcome[T]:
        """
        Run an operation until it succeeds or the attempts are exhausted.

        The operation receives the 0-indexed attempt number. It fails an attempt
        either by raising a retryable error or by returning None. Any other
        error propagates immediately.

        Args:
            operation: Callable invoked once per attempt
            description: Shown in the retry notice between attempts

        Returns:
            RetryOutcome describing the last attempt
        """
        outcome: RetryOutcome[T] = RetryOutcome(succeeded=False, attempts=0)

        for attempt in range(self.attempts):
            outcome.attempts = attempt + 1
            try:
                value = operation(attempt)
            except Exception as e:
                if not self.retryable(e):
                    raise
                outcome.errors.append(e)
                value = None

            if value is not None:
                outcome.succeeded = True
                outcome.value = value
                return outcome

            if attempt + 1 < self.attempts:
                if description:
                    log_info(f"Retry {description}")
                self.sleep(self.calculate_delay(attempt))

        return outcome
