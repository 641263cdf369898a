"""Retry policy for outbound actions."""

from __future__ import annotations

from dataclasses import dataclass

MAX_ATTEMPTS = 10

# Keeps the backoff exponent finite for very large attempt numbers
_MAX_EXPONENT = 32


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with capped exponential backoff.

    Attributes:
        max_attempts: Total attempts, including the first one
        base_delay_ms: Delay after the first failed attempt
        max_delay_ms: Upper bound for any single delay
        exponential_base: Growth factor between consecutive delays
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    exponential_base: float = 2.0

    def delay_ms(self, attempt: int) -> float:
        """Delay to wait after failed attempt ``attempt`` (1-indexed)."""
        exponent = min(max(attempt - 1, 0), _MAX_EXPONENT)
        delay = self.base_delay_ms * (self.exponential_base**exponent)
        return min(delay, self.max_delay_ms)

    def should_retry(self, attempt: int) -> bool:
        """Return True if another attempt is allowed after ``attempt``."""
        return attempt < self.max_attempts

    def with_max_attempts(self, max_attempts: int | None) -> RetryPolicy:
        """Copy with a per-action attempt override, clamped to 1..MAX_ATTEMPTS."""
        if max_attempts is None:
            return self
        return RetryPolicy(
            max_attempts=min(max(1, max_attempts), MAX_ATTEMPTS),
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
        )

    @staticmethod
    def is_retryable_status(status_code: int) -> bool:
        """Client errors other than 429 are not transient."""
        if status_code == 429:
            return True
        return not 400 <= status_code < 500
