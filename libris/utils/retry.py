"""Retry utilities with exponential backoff for external source calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retry_on_exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    An exception carrying a ``retry_after`` attribute (seconds, e.g. parsed
    from an HTTP 429 Retry-After header) overrides the computed delay for that
    attempt.

    Args:
        func: Async function to retry
        *args: Positional arguments for the function
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds before first retry
        backoff_factor: Multiplier for delay after each retry (default: 2.0)
        retry_on_exceptions: Tuple of exception types to retry on
        sleep: Awaitable sleep used between attempts
        **kwargs: Keyword arguments for the function

    Returns:
        Result from successful function execution

    Raises:
        The last exception if all retries fail
    """
    delay = initial_delay
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retry_on_exceptions as e:
            if attempt == max_retries:
                logger.error(
                    "retry_exhausted",
                    function=name,
                    attempts=attempt + 1,
                    error=str(e),
                )
                raise

            retry_after = getattr(e, "retry_after", None)
            wait = retry_after if retry_after is not None else delay
            logger.warning(
                "retry_attempt",
                function=name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=wait,
                error=str(e),
            )
            await sleep(wait)
            delay *= backoff_factor

    raise RuntimeError("Unexpected retry loop exit")
