"""
Error handler with retry logic for site fetches.

Implements the bounded retry policy for transport errors: only known
anti-bot/throttling statuses are retried, with exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Tuple


logger = logging.getLogger(__name__)


class FetchError(Exception):
    """
    Transport failure while fetching a page.

    Attributes:
        status: HTTP status returned by the fetch provider, if any
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status in RetryConfig.retryable_statuses


class BlockedPageError(FetchError):
    """The page came back too short to be real content (anti-bot wall)."""


class ExtractionError(Exception):
    """A strategy could not interpret a fetched page."""


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior with exponential backoff.

    Attributes:
        max_attempts: Total attempts, first one included
        initial_delay_s: Backoff before the first retry, in seconds
        retryable_statuses: HTTP statuses worth retrying
    """
    max_attempts: int = 2
    initial_delay_s: float = 2.0
    retryable_statuses: Tuple[int, ...] = (422, 403, 429)

    def get_backoff_delay(self, attempt: int) -> float:
        """
        Calculate backoff delay before retry attempt.

        delay = initial_delay_s * (2 ^ attempt)

        Args:
            attempt: The failed attempt number (0-indexed)

        Returns:
            Delay in seconds before the next attempt
        """
        return self.initial_delay_s * (2 ** attempt)

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, FetchError) and error.status in self.retryable_statuses


class ErrorHandler:
    """
    Runs fetch operations under the retry policy.

    Attributes:
        config: Retry configuration
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    async def retry_with_backoff(
        self,
        operation: Callable,
        *args,
        **kwargs
    ) -> Any:
        """
        Execute an async operation, retrying retryable fetch errors.

        Non-retryable errors are raised immediately. Retryable ones are
        retried up to max_attempts in total, sleeping the backoff delay in
        between.

        Args:
            operation: Async callable to execute
            *args: Positional arguments for the operation
            **kwargs: Keyword arguments for the operation

        Returns:
            Result from the successful attempt

        Raises:
            Exception: The last error once attempts are exhausted, or the
                first non-retryable error
        """
        name = getattr(operation, '__name__', repr(operation))

        for attempt in range(self.config.max_attempts):
            try:
                return await operation(*args, **kwargs)
            except Exception as e:
                self._log_error(name, attempt + 1, e, args)

                if not self.config.is_retryable(e) or attempt == self.config.max_attempts - 1:
                    raise

                backoff_delay = self.config.get_backoff_delay(attempt)
                logger.info(f"Retryable status {e.status} for {name}, waiting {backoff_delay:.1f}s")
                await asyncio.sleep(backoff_delay)

        raise RuntimeError(f"{name} ran with max_attempts={self.config.max_attempts}")

    def _log_error(
        self,
        operation_name: str,
        attempt: int,
        error: Exception,
        args: tuple,
    ) -> None:
        """Log a failed attempt with its diagnostic context."""
        context = {
            'timestamp': datetime.now().isoformat(),
            'operation': operation_name,
            'attempt': f"{attempt}/{self.config.max_attempts}",
            'error_type': type(error).__name__,
            'status': getattr(error, 'status', None),
            'args': str(args) if args else 'None',
        }
        logger.warning(
            f"Operation failed: {operation_name} | "
            f"Attempt: {attempt}/{self.config.max_attempts} | "
            f"Error: {type(error).__name__}: {error}"
        )
        logger.debug(f"Full error context: {context}")
