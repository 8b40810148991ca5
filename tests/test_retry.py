"""Retry policy decisions."""

import pytest

from ringscan import AlwaysRetry, BoundedRetry, FailureKind, RetryDecision, RetryPolicy, RetryVerdict


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (FailureKind.UNAVAILABLE, RetryVerdict(RetryDecision.RETRY_NEXT_HOST, reset_connection=True)),
        (FailureKind.READ_TIMEOUT, RetryVerdict(RetryDecision.RETRY_NEXT_HOST, reset_connection=True)),
        (FailureKind.WRITE_TIMEOUT, RetryVerdict(RetryDecision.RETRY, reset_connection=False)),
        (FailureKind.REQUEST_ERROR, RetryVerdict(RetryDecision.RETRY_NEXT_HOST, reset_connection=False)),
    ],
)
def test_always_retry(kind: FailureKind, expected: RetryVerdict) -> None:
    assert AlwaysRetry().on_failure(kind, 0) == expected


def test_always_retry_never_gives_up() -> None:
    policy = AlwaysRetry()

    decisions = {policy.on_failure(kind, n).decision for kind in FailureKind for n in range(0, 10_000, 997)}

    assert RetryDecision.RETHROW not in decisions


def test_bounded_retry_defers_then_rethrows() -> None:
    policy = BoundedRetry(2)

    assert policy.on_failure(FailureKind.READ_TIMEOUT, 0).reset_connection
    assert policy.on_failure(FailureKind.READ_TIMEOUT, 1).decision is RetryDecision.RETRY_NEXT_HOST
    assert policy.on_failure(FailureKind.READ_TIMEOUT, 2) == RetryVerdict(RetryDecision.RETHROW)


def test_bounded_retry_wraps_any_policy() -> None:
    class Stubborn:
        def on_failure(self, kind: FailureKind, retry_num: int) -> RetryVerdict:
            return RetryVerdict(RetryDecision.RETRY)

    policy = BoundedRetry(1, inner=Stubborn())

    assert isinstance(policy.inner, RetryPolicy)
    assert policy.on_failure(FailureKind.UNAVAILABLE, 0) == RetryVerdict(RetryDecision.RETRY)
    assert policy.on_failure(FailureKind.UNAVAILABLE, 1).decision is RetryDecision.RETHROW


def test_bounded_retry_rejects_negative_budget() -> None:
    with pytest.raises(ValueError, match="max_retries"):
        BoundedRetry(-1)
