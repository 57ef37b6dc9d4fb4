"""
Retry utilities.

Provides the bounded retry-poll primitive used by every readiness wait and a
decorator that retries transient Kubernetes API failures with exponential backoff.
"""
import asyncio
import functools
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from kubernetes_asyncio.client.rest import ApiException
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

from dbaas_harness.config.logging import get_logger
from dbaas_harness.exceptions import ConfigurationError

logger = get_logger(__name__)

T = TypeVar('T')


async def retry_until_success(
    interval: float,
    max_attempts: int,
    operation: Callable[[], Awaitable[T]],
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    log: Optional[Any] = None,
) -> T:
    """
    Call ``operation`` until it succeeds, at most ``max_attempts`` times.

    Sleeps ``interval`` seconds between attempts (not after the last one). The
    operation must be safe to repeat, typically a "re-fetch and check status"
    coroutine that returns the refreshed state.

    Args:
        interval: Seconds to wait between attempts
        max_attempts: Maximum number of calls, at least 1
        operation: Zero-argument coroutine function
        sleep: Awaitable sleep function (injectable for tests)
        log: Logger to report failed attempts on

    Returns:
        The result of the first successful call

    Raises:
        ConfigurationError: If max_attempts is below 1
        Exception: The error raised by the last attempt when all attempts fail
    """
    if max_attempts < 1:
        raise ConfigurationError(
            f"max_attempts must be at least 1, got {max_attempts}",
            operation="retry_until_success",
        )
    log = log or logger

    def _log_attempt(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.info(
            "retry_attempt_failed",
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            error=str(exc),
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        sleep=sleep,
        before_sleep=_log_attempt,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result


def is_retryable_k8s_error(exception: Exception) -> bool:
    """
    Determine if a Kubernetes API exception should trigger a retry.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    if not isinstance(exception, ApiException):
        return False

    retryable_status_codes = {
        408,  # Request Timeout
        429,  # Too Many Requests (rate limiting)
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    return exception.status in retryable_status_codes


def retry_on_k8s_error(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
) -> Callable:
    """
    Decorator to retry Kubernetes API calls with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay between retries in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 30.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)
        retry_on: Additional exception types to retry on (default: None)

    Returns:
        Decorated function with retry logic

    Example:
        @retry_on_k8s_error(max_retries=5, initial_delay=2.0)
        async def get(self, kind, namespace, name):
            # ... Kubernetes API call ...
            pass
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            "k8s_api_call_succeeded_after_retry",
                            function=func.__name__,
                            attempt=attempt + 1,
                            max_retries=max_retries,
                        )

                    return result

                except Exception as e:
                    should_retry = is_retryable_k8s_error(e)
                    if retry_on and isinstance(e, retry_on):
                        should_retry = True

                    if attempt >= max_retries or not should_retry:
                        if should_retry:
                            logger.error(
                                "k8s_api_call_failed_max_retries",
                                function=func.__name__,
                                attempt=attempt + 1,
                                max_retries=max_retries,
                                error_type=type(e).__name__,
                                error=str(e),
                            )
                        else:
                            logger.debug(
                                "k8s_api_call_failed_non_retryable",
                                function=func.__name__,
                                error_type=type(e).__name__,
                                status_code=getattr(e, "status", None),
                            )
                        raise

                    delay = min(
                        initial_delay * (exponential_base ** attempt),
                        max_delay
                    )

                    logger.warning(
                        "k8s_api_call_failed_retrying",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error_type=type(e).__name__,
                        status_code=getattr(e, 'status', None),
                    )

                    await asyncio.sleep(delay)

        return wrapper
    return decorator
