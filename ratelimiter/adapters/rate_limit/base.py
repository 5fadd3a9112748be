"""Rate limiter interfaces.

The API layer depends on this abstraction (not the concrete implementation)
so the store-backed limiter can be swapped for a test double without touching
routes or dependencies.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single token-bucket evaluation.

    Token quantities carry two decimal digits, truncated.

    Attributes:
        allowed: Whether the unit of work may proceed.
        tokens_before: Quota available after refill, before this call consumed.
        tokens_left: Quota remaining after this call (equals tokens_before when
            rejected).
        refill_amount: Quota added since the previous evaluation; zero on the
            first evaluation of a bucket.
        capacity: Configured bucket capacity.
        retry_after_seconds: Seconds until a whole token is available again,
            or None when allowed.
    """

    allowed: bool
    tokens_before: float
    tokens_left: float
    refill_amount: float
    capacity: int
    retry_after_seconds: int | None = None

    @property
    def remaining(self) -> int:
        """Whole requests still admissible right now."""
        return int(self.tokens_left)


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def allow(self, identifier: str) -> RateLimitResult:
        """Evaluate and consume one unit of quota for an identifier.

        Args:
            identifier: Non-empty client identifier (e.g., API key, IP address).

        Returns:
            RateLimitResult describing whether the call was allowed.

        Raises:
            ValidationAppError: If the identifier is empty.
            UnavailableError: If no decision could be obtained.
        """
        raise NotImplementedError
