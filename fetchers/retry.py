"""Retry protocol shared by every GitHub API operation.

A request is attempted, and the failure (if any) is classified:
- TransientError (5xx, timeouts, connection resets, rate limits): sleep for
  the next delay in the retry schedule and try again
- anything else: propagate immediately, without consuming the schedule

Delays are consumed strictly in order. Once the schedule is exhausted the
last transient failure is re-raised as RetriesExhaustedError.
"""

import logging
import time
from typing import Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GitHubAPIError(Exception):
    """Base class for failures talking to the GitHub API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientError(GitHubAPIError):
    """Failure that may clear up on its own (5xx, timeout, connection reset)."""


class RateLimitError(TransientError):
    """Rate limited by GitHub.

    `resume_at` is the epoch time (seconds) the server suggested waiting
    until, when it provided one.
    """

    def __init__(
        self,
        message: str,
        resume_at: Optional[float] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.resume_at = resume_at


class NotFoundError(GitHubAPIError):
    """The requested repository, issue or pull request does not exist."""


class RetriesExhaustedError(GitHubAPIError):
    """A transient failure persisted through the whole retry schedule."""

    def __init__(self, description: str, attempts: int, last_error: Exception):
        super().__init__(
            f"{description} failed after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
        self.attempts = attempts
        self.last_error = last_error


def with_retries(
    operation: Callable[[], T],
    retries: Sequence[int],
    description: str,
) -> T:
    """
    Run an operation under the retry protocol.

    Args:
        operation: Zero-argument callable performing one attempt
        retries: Delays in seconds to sleep before each retry. An empty
                 schedule means a transient failure is fatal right away.
        description: Short text for log messages (e.g., "issues page 3 of dotnet/runtime")

    Returns:
        Whatever the operation returns on its first successful attempt

    Raises:
        RetriesExhaustedError: If a transient failure outlasts the schedule
        GitHubAPIError: Non-transient failures, unchanged
    """
    attempt = 0

    while True:
        try:
            return operation()
        except TransientError as e:
            if attempt >= len(retries):
                logger.error(f"✗ {description}: giving up after {attempt + 1} attempts - {e}")
                raise RetriesExhaustedError(description, attempt + 1, e) from e

            delay = float(retries[attempt])
            attempt += 1

            if isinstance(e, RateLimitError) and e.resume_at is not None:
                delay = max(delay, e.resume_at - time.time())

            logger.warning(
                f"{description}: {e}. Retry {attempt}/{len(retries)} in {delay:.0f}s..."
            )
            time.sleep(delay)
