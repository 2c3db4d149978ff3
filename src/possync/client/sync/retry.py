"""Retry logic for the sync queue and for single cloud requests.

This module provides:
- promote_eligible_failures: Move retry-eligible failed entries back to pending
- retry_with_backoff: Exponential backoff retry of a single call
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from possync.client.state import QueueStore

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_WINDOW = 24 * 60 * 60  # seconds
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 60.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def promote_eligible_failures(
    store: QueueStore,
    max_retries: int = DEFAULT_MAX_RETRIES,
    window_seconds: float = DEFAULT_RETRY_WINDOW,
) -> int:
    """Give failed entries another chance before a drain pass.

    An entry is promoted back to pending when it has been retried fewer than
    `max_retries` times and was enqueued within the last `window_seconds`.
    Promotion clears the error message and counts one retry. Everything
    else stays in error until an operator resets it.

    Args:
        store: Queue store to update.
        max_retries: Retry ceiling per entry.
        window_seconds: Age limit of retry-eligible entries.

    Returns:
        Number of entries promoted.
    """
    cutoff = store.now() - window_seconds
    promoted = store.promote_errors(max_retries, created_after=cutoff)
    if promoted:
        logger.info("Auto-retrying %d failed sync items", promoted)
    return promoted


def retry_with_backoff(
    func: Callable[[], Any],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Execute a function with exponential backoff retry.

    Args:
        func: Function to execute.
        max_retries: Maximum number of retry attempts.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.
        sleep: Sleep function (replaced in tests).

    Returns:
        Result of the function.

    Raises:
        The last exception if all retries fail.
    """
    backoff = initial_backoff

    for attempt in range(max_retries + 1):
        try:
            return func()
        except retryable_exceptions as e:
            if attempt == max_retries:
                if max_retries:
                    logger.error("All %d retries failed: %s", max_retries, e)
                raise

            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt + 1,
                max_retries + 1,
                e,
                backoff,
            )
            sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)

    raise RuntimeError("Unexpected retry loop exit")
