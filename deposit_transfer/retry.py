"""
Retry Policy

Bounded exponential backoff for exchange calls. The policy is passed to each
call site instead of being hard-coded, so tests can run with zero delays.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import ccxt.async_support as ccxt
from loguru import logger

from .errors import TransientExternalFailure

T = TypeVar('T')

# Substrings of transient errors raised outside of the ccxt exception tree
RETRYABLE_KEYWORDS = [
    'timeout', 'network', 'connection', 'rate limit',
    'temporarily', 'unavailable', '429', '503', '502', '504'
]


@dataclass
class RetryPolicy:
    """Retry configuration for exchange calls"""
    max_attempts: int = 4
    initial_delay: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0  # seconds

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt"""
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """
    Classify an exchange error

    CCXT network errors (timeouts, DDoS protection, rate limits, exchange not
    available) are transient. Exchange errors such as authentication failures
    or insufficient funds are not.
    """
    if isinstance(error, ccxt.NetworkError):
        return True
    if isinstance(error, ccxt.ExchangeError):
        return False
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return True

    error_str = str(error).lower()
    return any(keyword in error_str for keyword in RETRYABLE_KEYWORDS)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str
) -> T:
    """
    Run an async operation with retry on transient errors

    Args:
        operation: Zero-argument coroutine function
        policy: Retry policy
        description: Operation name for logging

    Returns:
        The operation result

    Raises:
        TransientExternalFailure: retries exhausted
        Exception: non-retryable error from the operation, unchanged
    """
    attempts = max(1, policy.max_attempts)
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()

        except Exception as e:
            if not is_retryable(e):
                logger.warning(f"Non-retryable error in {description}: {str(e)[:100]}")
                raise

            last_error = e
            logger.warning(f"Retryable error in {description} (attempt {attempt}/{attempts}): {str(e)[:100]}")

        # Wait before retry (exponential backoff)
        if attempt < attempts:
            wait_time = policy.delay_for(attempt)
            logger.debug(f"Waiting {wait_time}s before retry...")
            await asyncio.sleep(wait_time)

    raise TransientExternalFailure(description, attempts, last_error) from last_error
