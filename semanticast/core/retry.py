"""Rate-limit retry wrapper with linear backoff."""

import time
from functools import wraps
from typing import Any, Callable, TypeVar, cast

from semanticast.core.errors import RateLimited, RateLimitExceeded
from semanticast.core.logger import logger

F = TypeVar('F', bound=Callable[..., Any])


def with_rate_limit_backoff(max_retries: int = 3, unit_seconds: float = 5.0) -> Callable[[F], F]:
    """
    A decorator that retries a call when it signals ``RateLimited``.

    Delays grow linearly: ``attempt × unit_seconds`` (5s, 10s, 15s with the defaults).
    Any other exception propagates immediately.

    Args:
        max_retries (int): Retries allowed after the first attempt.
        unit_seconds (float): Backoff unit multiplied by the attempt number.

    Returns:
        Callable: The decorated function.

    Raises:
        RateLimitExceeded: When the call is still rate limited after ``max_retries``.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_retries + 2):
                try:
                    return func(*args, **kwargs)
                except RateLimited as e:
                    if attempt > max_retries:
                        logger.error(
                            f"'{func.__name__}' RATE_LIMIT_EXCEEDED after {max_retries} retries: {e}"
                        )
                        raise RateLimitExceeded(
                            f"rate limit exceeded after {max_retries} retries"
                        ) from e

                    delay = attempt * unit_seconds
                    logger.warning(
                        f"'{func.__name__}' rate limited (attempt {attempt}/{max_retries}). "
                        f"Retrying in {delay:g} seconds..."
                    )
                    time.sleep(delay)

            return None  # unreachable: the final attempt either returns or raises
        return cast(F, wrapper)
    return decorator
