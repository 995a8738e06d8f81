"""
Retry with exponential backoff.

One policy object serves every retrying call site; each site picks its own
attempt budget, base delay and jitter.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total attempts, including the first
        base_delay: Seconds before the first retry; doubles per attempt
        max_jitter: Up to this many random seconds added to each delay
        sleep: Blocking sleep function (injectable for tests)
        terminal: Exception types raised at once, without retrying
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)
    terminal: Tuple[Type[BaseException], ...] = ()

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        jitter = random.uniform(0, self.max_jitter) if self.max_jitter else 0.0
        return self.base_delay * (2 ** attempt) + jitter

    def run(self, fn: Callable[[], T], description: str = "operation") -> T:
        """
        Call fn until it succeeds or the attempt budget is spent.

        Raises:
            The last exception raised by fn
        """
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except self.terminal as e:
                logger.error(f"{description} failed with a non-retryable error: {e}")
                raise
            except Exception as e:
                if attempt == self.max_attempts - 1:
                    logger.error(f"{description} failed after {self.max_attempts} attempts: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} attempt {attempt + 1} failed ({e}), "
                    f"retrying in {delay:.2f}s"
                )
                self.sleep(delay)


# Provider batches: 6 attempts, 1s doubling, up to 250ms jitter
BATCH_EMBED_RETRY = RetryPolicy(max_attempts=6, base_delay=1.0, max_jitter=0.25)

# Per-message store writes: 1 attempt + 3 retries, 1s doubling, no jitter
STORE_WRITE_RETRY = RetryPolicy(max_attempts=4, base_delay=1.0)
