import pytest

from apiexec import (
    FatalError,
    NotFound,
    RawResponse,
    RequestDescriptor,
    RetryConfig,
    RetryPolicy,
    SecondaryKeyFallback,
    StaticKey,
    Success,
    ValidationError,
    coerce_retry_policy,
)
from apiexec.policies import INVALID_SUBSCRIPTION_KEY_MARKER


def test_delays_double_per_attempt():
    p = RetryPolicy()
    assert [p.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]


def test_delay_cap_and_custom_base():
    p = RetryPolicy(backoff_base=0.5, backoff_growth=3.0, backoff_cap=5.0)
    assert p.delay_for(1) == 1.5  # noqa: PLR2004
    assert p.delay_for(2) == 4.5  # noqa: PLR2004
    assert p.delay_for(3) == 5.0  # noqa: PLR2004
    # huge exponents do not blow up when capped
    assert p.delay_for(100000) == 5.0  # noqa: PLR2004


def test_jitter_only_adds():
    p = RetryPolicy(jitter=0.5)
    for _ in range(50):
        d = p.delay_for(2)
        assert 4.0 <= d <= 6.0  # noqa: PLR2004


def test_should_retry_matrix():
    p = RetryPolicy(max_attempts=3)
    assert p.should_retry(FatalError(500, "x"), 1)
    assert p.should_retry(FatalError(None, "conn reset"), 2)
    assert p.should_retry(FatalError(429, "slow down"), 1)
    assert p.should_retry(FatalError(408, "timeout"), 1)
    assert not p.should_retry(FatalError(500, "x"), 3)
    for status in (400, 401, 403, 405, 409, 410, 422):
        assert not p.should_retry(FatalError(status, "x"), 1)
    assert not p.should_retry(Success(RawResponse(200)), 1)
    assert not p.should_retry(NotFound(), 1)
    assert not p.should_retry(ValidationError({"a": ["b"]}), 1)


def test_explicit_max_attempts_argument():
    p = RetryPolicy()
    assert p.should_retry(FatalError(500, "x"), 4, max_attempts=5)
    assert not p.should_retry(FatalError(500, "x"), 5, max_attempts=5)


def test_non_positive_max_attempts_defaults_to_three():
    assert RetryPolicy(max_attempts=0).max_attempts == 3  # noqa: PLR2004
    assert RetryPolicy(max_attempts=-2).max_attempts == 3  # noqa: PLR2004


def test_custom_terminal_statuses():
    p = RetryPolicy(RetryConfig(terminal_statuses=frozenset({500})))
    assert not p.is_retryable(FatalError(500, "x"))
    assert p.is_retryable(FatalError(401, "x"))


def test_coerce_retry_policy():
    assert coerce_retry_policy(None).max_attempts == 3  # noqa: PLR2004
    assert coerce_retry_policy(7).max_attempts == 7  # noqa: PLR2004
    assert coerce_retry_policy(RetryConfig(max_attempts=2)).max_attempts == 2  # noqa: PLR2004
    p = RetryPolicy()
    assert coerce_retry_policy(p) is p
    with pytest.raises(TypeError):
        coerce_retry_policy("bad")
    with pytest.raises(TypeError):
        coerce_retry_policy(True)


# ---------- secondary key fallback ----------

MARKER_BODY = f'{{"statusCode": 401, "message": "{INVALID_SUBSCRIPTION_KEY_MARKER}."}}'.encode()


def test_fallback_applies_only_on_first_attempt_with_marker():
    fb = SecondaryKeyFallback()
    key = StaticKey("primary", fallback_key="secondary")
    assert fb.applies(key, 401, MARKER_BODY, 1)
    assert not fb.applies(key, 401, MARKER_BODY, 2)
    assert not fb.applies(key, 403, MARKER_BODY, 1)
    assert not fb.applies(key, 401, b"some other 401", 1)
    assert not fb.applies(StaticKey("primary"), 401, MARKER_BODY, 1)


def test_fallback_rewrite_replaces_header_key():
    key = StaticKey("primary", fallback_key="secondary")
    d = RequestDescriptor("/x", headers=(("ocp-apim-subscription-key", "primary"), ("Accept", "a")))
    out = SecondaryKeyFallback().rewrite(d, key)
    assert out.headers == (("Accept", "a"), ("Ocp-Apim-Subscription-Key", "secondary"))


def test_fallback_rewrite_replaces_query_key():
    key = StaticKey("primary", header_name="code", placement="query", fallback_key="secondary")
    d = RequestDescriptor("/x", query=(("page", "1"), ("code", "primary")))
    out = SecondaryKeyFallback().rewrite(d, key)
    assert out.query == (("page", "1"), ("code", "secondary"))
