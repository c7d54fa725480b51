import random
from typing import Union

from .auth import apply_static_key
from .types import (
    AuthStrategy,
    FatalError,
    Outcome,
    RequestDescriptor,
    RetryConfig,
    StaticKey,
)

DEFAULT_MAX_ATTEMPTS = 3

# Body fragment Azure API Management returns for a rejected subscription key
INVALID_SUBSCRIPTION_KEY_MARKER = "Access denied due to invalid subscription key"


class RetryPolicy:
    """Decides whether a call is retried and how long to wait first.

    Pure: no I/O, no clock. Only FatalError outcomes are retryable, and only when
    their status is not terminal (None, 408, 429 and 5xx under the default config).
    """

    def __init__(self, config: Union[RetryConfig, None] = None, **kwargs):
        cfg = config or RetryConfig(**kwargs)
        self.config = cfg
        self.max_attempts = cfg.max_attempts if cfg.max_attempts > 0 else DEFAULT_MAX_ATTEMPTS
        self._random = random.Random()

    def is_retryable(self, outcome: Outcome) -> bool:
        if not isinstance(outcome, FatalError):
            return False
        return outcome.status_code not in self.config.terminal_statuses

    def should_retry(self, outcome: Outcome, attempt: int, max_attempts: int | None = None) -> bool:
        limit = max_attempts if max_attempts is not None and max_attempts > 0 else self.max_attempts
        return self.is_retryable(outcome) and attempt < limit

    def base_delay(self, attempt: int) -> float:
        cfg = self.config
        try:
            delay = cfg.backoff_base * (cfg.backoff_growth**attempt)
        except OverflowError:
            delay = float("inf")
        if cfg.backoff_cap is not None:
            delay = min(cfg.backoff_cap, delay)
        return max(0.0, delay)

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay(attempt)
        if self.config.jitter > 0:
            delay += self._random.uniform(0.0, self.config.jitter * delay)
        return delay


def coerce_retry_policy(policy: Union[object, None]) -> RetryPolicy:
    """Turn None | int | RetryConfig | RetryPolicy into a RetryPolicy."""
    if policy is None:
        return RetryPolicy()
    if isinstance(policy, RetryPolicy):
        return policy
    if isinstance(policy, RetryConfig):
        return RetryPolicy(policy)
    if isinstance(policy, int) and not isinstance(policy, bool):
        return RetryPolicy(max_attempts=policy)
    raise TypeError("retry policy must be None, an int, a RetryConfig or a RetryPolicy")


class SecondaryKeyFallback:
    """Legacy: resend once with the secondary subscription key.

    Triggers only on the first attempt, for a StaticKey strategy that carries a
    fallback_key, when the gateway answers 401 with the invalid-key marker in the
    body. Kept out of RetryPolicy; the resend does not use a retry attempt.
    """

    def __init__(self, marker: str = INVALID_SUBSCRIPTION_KEY_MARKER):
        self.marker = marker

    def applies(self, strategy: AuthStrategy, status_code: int | None, body: bytes, attempt: int) -> bool:
        if attempt != 1 or status_code != 401:  # noqa: PLR2004
            return False
        if not isinstance(strategy, StaticKey) or not strategy.fallback_key:
            return False
        return self.marker in body.decode("utf-8", errors="replace")

    def rewrite(self, descriptor: RequestDescriptor, strategy: StaticKey) -> RequestDescriptor:
        if strategy.placement == "query":
            stripped = descriptor.without_query(strategy.header_name)
        else:
            stripped = descriptor.without_header(strategy.header_name)
        return apply_static_key(stripped, strategy, strategy.fallback_key)
