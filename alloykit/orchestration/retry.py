"""Fixed-delay retry of operations that report success as a boolean."""

import time
from typing import Callable, Optional, Tuple, Type

from ..core.errors import ProcessError, TransientNetworkError
from ..core.log import get_logger
from ..core.types import RetryConfig

logger = get_logger(__name__)

DEFAULT_RETRYABLE: Tuple[Type[BaseException], ...] = (TransientNetworkError, ProcessError)


def retry(
    operation: Callable[[], bool],
    max_attempts: int,
    delay: float,
    description: str,
    retryable: Tuple[Type[BaseException], ...] = DEFAULT_RETRYABLE,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Run operation up to max_attempts times, sleeping delay between tries.

    A falsy return value or a retryable exception counts as a failed attempt.
    Any other exception propagates immediately. The operation must be
    idempotent: partial effects of a failed attempt are not undone.

    Returns:
        True on the first successful attempt, False after max_attempts failures
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            logger.info("Retry attempt %d/%d: %s", attempt, max_attempts, description)
        try:
            if operation():
                return True
        except retryable as e:
            logger.warning("Attempt %d/%d failed: %s: %s", attempt, max_attempts, description, e)
        if attempt < max_attempts:
            sleep(delay)

    logger.error("Failed after %d attempts: %s", max_attempts, description)
    return False


class RetryExecutor:
    """Retry policy bound to a RetryConfig."""

    def __init__(self, config: Optional[RetryConfig] = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self._config = config or RetryConfig()
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def run(self, operation: Callable[[], bool], description: str) -> bool:
        return retry(
            operation,
            max_attempts=self._config.max_attempts,
            delay=self._config.delay,
            description=description,
            sleep=self._sleep,
        )
