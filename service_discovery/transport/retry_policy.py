"""Retry policy for registry HTTP calls.

The keepalive pusher and the registry resolver use ``no_retry_policy`` since
they already retry on their own schedule (or leave it to the caller).
A RegistryClient built without a policy uses the default backoff.
"""

from dataclasses import dataclass, field


@dataclass
class RetryPolicy:
    """Exponential backoff for transient registry failures."""
    max_retries: int = 3
    initial_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 10.0
    retry_statuses: frozenset[int] = field(
        default_factory=lambda: frozenset({502, 503, 504})
    )

    def get_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0 = first retry)."""
        delay = self.initial_delay * (self.backoff_factor ** attempt)
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries


def default_retry_policy() -> RetryPolicy:
    """3 retries, 0.5s initial delay, 2x backoff, 10s max."""
    return RetryPolicy()


def no_retry_policy() -> RetryPolicy:
    """Single attempt; failures surface immediately."""
    return RetryPolicy(max_retries=0)
