"""Utility classes for OpenAPI tools."""

import logging
from typing import Any, Awaitable, Callable, Dict

import tenacity

from .errors import NetworkError
from .models import RetryConfig, ToolResult

logger = logging.getLogger(__name__)


class RetryHandler:
    """Handler for retrying tool calls with exponential backoff.

    Only results that failed with a NetworkError are retried. Upstream HTTP
    errors, validation errors and auth errors are returned on the first attempt.
    """

    def __init__(self, config: RetryConfig):
        """Initialize the retry handler.

        Args:
            config: Retry configuration
        """
        self.config = config

    def should_retry(self, result: ToolResult) -> bool:
        """Determine if a call should be retried.

        Args:
            result: Result of the last attempt

        Returns:
            True if the result is a transport failure, False otherwise
        """
        return (
            self.config.enabled
            and result.is_error
            and result.error is not None
            and result.error.kind == NetworkError.kind
        )

    def get_backoff_time(self, attempt: int) -> float:
        """Calculate backoff time for a retry attempt.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Time to wait in seconds before the next attempt
        """
        return self.config.backoff_factor * (2**attempt)

    def _log_retry(self, retry_state: tenacity.RetryCallState):
        result = retry_state.outcome.result()
        logger.warning(
            f"Attempt {retry_state.attempt_number} failed with "
            f"{result.error.kind}: {result.error.message}; retrying"
        )

    def tenacity_kwargs(self) -> Dict[str, Any]:
        """Build keyword arguments for ``tenacity.retry``."""
        return {
            "stop": tenacity.stop_after_attempt(self.config.max_retries + 1),
            "wait": tenacity.wait_exponential(multiplier=self.config.backoff_factor, min=0),
            "retry": tenacity.retry_if_result(self.should_retry),
            "before_sleep": self._log_retry,
            # Hand back the last failure instead of raising RetryError
            "retry_error_callback": lambda retry_state: retry_state.outcome.result(),
        }

    async def run(
        self, func: Callable[..., Awaitable[ToolResult]], *args: Any, **kwargs: Any
    ) -> ToolResult:
        """Run a tool call, retrying transport failures when enabled.

        Args:
            func: Coroutine function returning a ToolResult
            *args: Positional arguments for ``func``
            **kwargs: Keyword arguments for ``func``

        Returns:
            The result of the last attempt
        """
        if not self.config.enabled or self.config.max_retries <= 0:
            return await func(*args, **kwargs)

        @tenacity.retry(**self.tenacity_kwargs())
        async def _attempt():
            return await func(*args, **kwargs)

        return await _attempt()
