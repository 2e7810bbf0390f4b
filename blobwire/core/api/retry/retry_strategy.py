"""Reconnect strategies using Strategy Pattern."""
import random
from abc import ABC, abstractmethod


class ReconnectStrategy(ABC):
    """Abstract reconnect strategy."""

    def __init__(self, max_attempts: int = 5):
        """
        Args:
            max_attempts: Maximum consecutive attempts, 0 means unlimited
        """
        self.max_attempts = max_attempts

    def should_retry(self, attempts_made: int) -> bool:
        """Determines if another reconnect attempt is allowed."""
        return self.max_attempts == 0 or attempts_made < self.max_attempts

    @abstractmethod
    def delay(self, attempt: int) -> float:
        """Seconds to wait before the given attempt (1-based)."""
        pass


class FixedDelayStrategy(ReconnectStrategy):
    """Waits the same delay before every attempt."""

    def __init__(self, delay: float = 3.0, max_attempts: int = 5):
        super().__init__(max_attempts)
        self._delay = delay

    def delay(self, attempt: int) -> float:
        return self._delay


class ExponentialBackoffStrategy(ReconnectStrategy):
    """Exponential backoff with proportional jitter."""

    def __init__(
        self,
        base_delay: float = 3.0,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        exponential_base: float = 2.0,
        jitter: float = 0.1,
        rng: random.Random = None
    ):
        super().__init__(max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self._rng = rng or random.Random()

    def delay(self, attempt: int) -> float:
        """Calculate delay for given attempt number."""
        delay = self.base_delay * (self.exponential_base ** max(attempt - 1, 0))
        delay = min(delay, self.max_delay)
        if self.jitter:
            spread = delay * self.jitter
            delay += self._rng.uniform(-spread, spread)
        return max(delay, 0.0)
