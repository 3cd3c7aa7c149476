"""
Bounded retries for broker and outbound calls.

``retry_async`` runs an awaitable factory until it succeeds or the attempt
budget is spent; ``retry_on_exception`` is the decorator form used around
startup steps.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger

ExceptionTypes = Tuple[Type[BaseException], ...]


class BackoffStrategy(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass
class RetryConfig:
    """Attempt budget and backoff shape."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL

    def __post_init__(self):
        self.backoff_strategy = BackoffStrategy(self.backoff_strategy)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


class RetryError(Exception):
    """All attempts failed; ``last_exception`` is the final cause."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after the failed ``attempt`` (1-based)."""
    if config.backoff_strategy == BackoffStrategy.EXPONENTIAL:
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == BackoffStrategy.LINEAR:
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        spread = delay * 0.1
        delay += random.uniform(-spread, spread)

    return max(0.0, delay)


async def retry_async(operation: Callable[[], Awaitable[Any]],
                      exceptions: ExceptionTypes = (Exception,),
                      config: Optional[RetryConfig] = None,
                      name: Optional[str] = None) -> Any:
    """Await ``operation()`` until it returns, retrying on ``exceptions``.

    Exceptions outside ``exceptions`` propagate on the first occurrence.
    Raises ``RetryError`` once ``config.max_attempts`` attempts have failed.
    """
    config = config or RetryConfig()
    name = name or getattr(operation, "__name__", "operation")
    logger = get_logger(f"retry.{name}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation()
        except exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempts=attempt,
                    error=str(e)
                )
                raise RetryError(
                    f"{name} failed after {attempt} attempts",
                    last_exception=e,
                    attempts=attempt
                ) from e

            delay = calculate_delay(attempt, config)
            logger.warning(
                "Attempt failed, retrying",
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay=delay,
                error=str(e)
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.info("Retry succeeded", attempt=attempt)
            return result


def retry_on_exception(exceptions: ExceptionTypes = (Exception,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Decorator form of :func:`retry_async`."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await retry_async(
                lambda: func(*args, **kwargs),
                exceptions=exceptions,
                config=config,
                name=func.__name__
            )

        return wrapper

    return decorator
