# -*- coding: utf-8 -*-
import asyncio
import functools
import random
from typing import Any, Callable, Coroutine, Optional, Tuple, Type, TypeVar, cast

from loguru import logger

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

DEFAULT_MAX_RETRY_ATTEMPTS = 3
DEFAULT_INITIAL_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 30.0  # seconds
DEFAULT_RETRY_BACKOFF_FACTOR = 2.0
DEFAULT_JITTER_FACTOR = 0.1  # 10% jitter
MIN_RETRY_DELAY = 0.1  # seconds


def backoff_delay(
    attempt: int,
    initial_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
    backoff_factor: float = DEFAULT_RETRY_BACKOFF_FACTOR,
    jitter_factor: float = DEFAULT_JITTER_FACTOR,
) -> float:
    """
    Compute the delay before retry number ``attempt`` (1-based).

    The delay grows exponentially from ``initial_delay`` and is capped at
    ``max_delay``; a random jitter of ``jitter_factor`` of the delay is then
    added or subtracted.

    Args:
        attempt: Number of failures so far (values below 1 are treated as 1).
        initial_delay: Delay in seconds for the first retry.
        max_delay: Maximum delay in seconds.
        backoff_factor: Multiplier for delay increase.
        jitter_factor: Percentage of delay to use for random jitter.

    Returns:
        Delay in seconds, never below MIN_RETRY_DELAY.
    """
    exponent = max(attempt, 1) - 1
    # Cap the exponent so huge failure counts cannot overflow the float
    delay = min(initial_delay * (backoff_factor ** min(exponent, 64)), max_delay)
    jitter = delay * jitter_factor
    return max(MIN_RETRY_DELAY, delay + random.uniform(-jitter, jitter))


def with_exponential_backoff(
    max_retries: Optional[int] = DEFAULT_MAX_RETRY_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
    backoff_factor: float = DEFAULT_RETRY_BACKOFF_FACTOR,
    jitter_factor: float = DEFAULT_JITTER_FACTOR,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
):
    """
    Decorator applying exponential backoff with jitter to an async function.

    Retries the function upon encountering one of ``retry_on``, increasing the
    delay between attempts exponentially. Other exceptions propagate at once.

    Args:
        max_retries: Maximum attempts (None for infinite).
        initial_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds.
        backoff_factor: Multiplier for delay increase.
        jitter_factor: Percentage of delay to use for random jitter.
        retry_on: Exception types that trigger a retry.

    Returns:
        The decorated async function.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            func_name = func.__qualname__

            while True:
                attempt += 1
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if max_retries is not None and attempt >= max_retries:
                        logger.error(
                            f"Function {func_name} failed after {attempt} attempts. Last error: {repr(e)}"
                        )
                        raise

                    actual_delay = backoff_delay(
                        attempt,
                        initial_delay=initial_delay,
                        max_delay=max_delay,
                        backoff_factor=backoff_factor,
                        jitter_factor=jitter_factor,
                    )
                    logger.warning(
                        f"Function {func_name} failed on attempt {attempt}"
                        f"{f'/{max_retries}' if max_retries else ''}: {repr(e)}. "
                        f"Retrying in {actual_delay:.2f}s"
                    )
                    await asyncio.sleep(actual_delay)

        return cast(F, wrapper)

    return decorator
