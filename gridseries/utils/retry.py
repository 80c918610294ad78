"""
GridSeries - Store Retry Helper

Retries store operations that fail with StoreUnavailableError, backing off
between attempts. Any other error propagates on the first attempt.
"""

import logging
import time
from typing import Any, Callable, Optional

from gridseries.errors import StoreUnavailableError


logger = logging.getLogger(__name__)


def execute_with_retry(
    operation: str,
    call: Callable[..., Any],
    *args: Any,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any
) -> Any:
    """
    Execute a store call with retry logic.

    Waits retry_delay * attempt seconds between attempts.

    Args:
        operation: Description of the operation (for logging)
        call: Callable store method
        *args: Positional arguments for the call
        max_retries: Total number of attempts
        retry_delay: Base delay in seconds
        sleep: Sleep function (injectable for tests)
        **kwargs: Keyword arguments for the call

    Returns:
        Result of the call

    Raises:
        StoreUnavailableError: If every attempt failed
    """
    last_error: Optional[StoreUnavailableError] = None

    for attempt in range(1, max_retries + 1):
        try:
            return call(*args, **kwargs)
        except StoreUnavailableError as error:
            last_error = error
            logger.warning(
                f"[WARN] {operation} failed (attempt {attempt}/{max_retries}): {error}"
            )
            if attempt < max_retries:
                sleep(retry_delay * attempt)

    logger.error(f"[ERROR] {operation} failed after {max_retries} attempts")
    if last_error is not None:
        raise last_error
    raise StoreUnavailableError(f"{operation} was not attempted (max_retries={max_retries})")
