"""Async utility functions for resilient pipeline steps.

This module provides:
- Custom exceptions for error handling
- StepRunner, the retrying execution substrate for pipeline steps
- Timeout wrappers for async operations
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from situationcord.config.schema import RetryConfig

log = structlog.get_logger()

T = TypeVar("T")


# =============================================================================
# Custom Exceptions
# =============================================================================


class SituationError(Exception):
    """Base exception for all pipeline errors."""


class PayloadError(SituationError):
    """Webhook payload could not be parsed."""


class LLMAnalysisError(SituationError):
    """LLM call failed or returned an unusable result."""


class RateLimitError(LLMAnalysisError):
    """Rate limit exceeded.

    Attributes:
        retry_after: Number of seconds to wait before retrying, if known.
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TimeoutError(SituationError):
    """Operation timed out."""


class StoreError(SituationError):
    """Data store read or write failed."""


class MessageNotFoundError(StoreError):
    """Message record missing at persistence time.

    The webhook write must precede the pipeline start; hitting this
    means that ordering was violated.
    """

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found in store")
        self.message_id = message_id


class AlertDispatchError(SituationError):
    """Alert endpoint rejected the event or was unreachable.

    Attributes:
        status_code: HTTP status returned by the endpoint, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StepFailedError(SituationError):
    """A pipeline step failed after exhausting its retries."""

    def __init__(self, step: str, attempts: int, cause: BaseException) -> None:
        super().__init__(f"Step '{step}' failed after {attempts} attempt(s): {cause}")
        self.step = step
        self.attempts = attempts


# =============================================================================
# Step Runner
# =============================================================================


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts for debugging."""
    if retry_state.outcome is None:
        return

    exception = retry_state.outcome.exception()
    if exception:
        log.warning(
            "retrying_step",
            step=retry_state.kwargs.get("_step_name", "unknown"),
            attempt=retry_state.attempt_number,
            exception_type=type(exception).__name__,
            exception_message=str(exception),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )


class StepRunner:
    """Executes pipeline steps with independent retry policy.

    Each call to ``run`` is one schedulable unit of work. A failing step
    is re-executed from scratch up to ``max_attempts`` times, so steps must
    be safe to run more than once.

    Example:
        runner = StepRunner(max_attempts=3)
        record_id = await runner.run("store_analysis", recorder.record, message, analysis)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        on_retry: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            max_attempts: Total attempts per step, including the first.
            initial_delay: Minimum wait between attempts (seconds).
            max_delay: Maximum wait between attempts (seconds).
            exponential_base: Backoff growth factor.
            retry_on: Exception types that trigger a retry.
            on_retry: Optional hook called with the step name before each retry.
        """
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._exponential_base = exponential_base
        self._retry_on = retry_on
        self._on_retry = on_retry

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        on_retry: Callable[[str], None] | None = None,
    ) -> StepRunner:
        """Create a runner from retry configuration."""
        return cls(
            max_attempts=config.max_attempts,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
            exponential_base=config.exponential_base,
            on_retry=on_retry,
        )

    @property
    def max_attempts(self) -> int:
        """Return the configured attempt limit."""
        return self._max_attempts

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        _log_retry(retry_state)
        if self._on_retry:
            self._on_retry(retry_state.kwargs.get("_step_name", "unknown"))

    async def run(
        self,
        step_name: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run one step, retrying on failure.

        Args:
            step_name: Name used in logs and errors.
            func: Async step function.
            *args: Positional arguments for the step.
            **kwargs: Keyword arguments for the step.

        Returns:
            The step's result.

        Raises:
            StepFailedError: If every attempt failed.
            Exception: Errors outside ``retry_on`` propagate on the first attempt.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._initial_delay,
                min=self._initial_delay,
                max=self._max_delay,
                exp_base=self._exponential_base,
            ),
            retry=retry_if_exception_type(self._retry_on),
            before_sleep=self._before_sleep,
            reraise=False,
        )

        async def attempt(_step_name: str) -> T:
            return await func(*args, **kwargs)

        try:
            return await retrying(attempt, _step_name=step_name)
        except RetryError as e:
            cause = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            log.error(
                "step_failed",
                step=step_name,
                attempts=attempts,
                error=str(cause),
            )
            raise StepFailedError(step_name, attempts, cause) from cause  # type: ignore[arg-type]


# =============================================================================
# Timeout Utilities
# =============================================================================


async def with_timeout(
    coro: Awaitable[T],
    timeout: float,
    error_message: str | None = None,
) -> T:
    """Execute an awaitable with a timeout.

    Args:
        coro: The coroutine to execute.
        timeout: Timeout in seconds.
        error_message: Custom error message for timeout.

    Returns:
        The result of the coroutine.

    Raises:
        TimeoutError: If the operation times out.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except builtins.TimeoutError as e:
        msg = error_message or f"Operation timed out after {timeout}s"
        log.warning("operation_timeout", timeout=timeout)
        raise TimeoutError(msg) from e
