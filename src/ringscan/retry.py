"""Retry decisions for backend failures.

The backend client consults a `RetryPolicy` synchronously at the point of
failure. A verdict pairs the decision with whether the connection should be
reset first; the reset itself is the client's job and is never awaited before
the retry goes out.
"""

from enum import StrEnum
from typing import NamedTuple, Protocol, final, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


class FailureKind(StrEnum):
    """Backend failure classes a policy is asked about."""

    UNAVAILABLE = "unavailable"
    """Not enough replicas alive to satisfy the consistency level."""

    READ_TIMEOUT = "read_timeout"
    """Replicas did not answer a read in time."""

    WRITE_TIMEOUT = "write_timeout"
    """Replicas did not acknowledge a write in time."""

    REQUEST_ERROR = "request_error"
    """Client-side timeout or connection error."""


class RetryDecision(StrEnum):
    """What the backend client should do with a failed request."""

    RETRY = "retry"
    """Retry on the same host."""

    RETRY_NEXT_HOST = "retry_next_host"
    """Retry on the next host of the query plan."""

    RETHROW = "rethrow"
    """Give up and surface the error."""

    IGNORE = "ignore"
    """Swallow the error and return an empty result."""


class RetryVerdict(NamedTuple):
    decision: RetryDecision
    reset_connection: bool = False


@runtime_checkable
class RetryPolicy(Protocol):
    """Protocol for backend retry policies."""

    def on_failure(self, kind: FailureKind, retry_num: int) -> RetryVerdict:
        """Decide how to react to the `retry_num`-th failure of a request."""
        ...


@final
class AlwaysRetry:
    """Policy that never gives up.

    Unavailable and read-timeout failures also reset the connection, since a
    poisoned socket tends to keep failing. Give-up logic lives in the page
    fetcher's backoff instead.
    """

    __slots__ = ()

    def on_failure(self, kind: FailureKind, retry_num: int) -> RetryVerdict:
        match kind:
            case FailureKind.UNAVAILABLE:
                return RetryVerdict(RetryDecision.RETRY_NEXT_HOST, reset_connection=True)
            case FailureKind.READ_TIMEOUT:
                logger.info("read retry", retry_num=retry_num)
                return RetryVerdict(RetryDecision.RETRY_NEXT_HOST, reset_connection=True)
            case FailureKind.WRITE_TIMEOUT:
                return RetryVerdict(RetryDecision.RETRY)
            case FailureKind.REQUEST_ERROR:
                return RetryVerdict(RetryDecision.RETRY_NEXT_HOST)


@final
class BoundedRetry:
    """Policy that defers to `inner` for the first `max_retries` retries, then gives up."""

    __slots__ = ("inner", "max_retries")

    def __init__(self, max_retries: int, inner: RetryPolicy | None = None) -> None:
        if max_retries < 0:
            msg = f"max_retries must be >= 0, got {max_retries}"
            raise ValueError(msg)
        self.max_retries = max_retries
        self.inner: RetryPolicy = inner if inner is not None else AlwaysRetry()

    def on_failure(self, kind: FailureKind, retry_num: int) -> RetryVerdict:
        if retry_num >= self.max_retries:
            return RetryVerdict(RetryDecision.RETHROW)
        return self.inner.on_failure(kind, retry_num)
