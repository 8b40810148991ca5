"""Parameter types for scan configuration.

Params define how scans operate (page sizes, backoff, skip stride),
while contexts carry runtime state (tokens, page states).
"""

from enum import Enum

from pydantic import BaseModel, Field, PositiveInt


class ConsistencyLevel(str, Enum):
    """Read consistency requested from the backend."""

    ONE = "one"
    """Single replica (default; bulk scans favor availability)."""

    LOCAL_ONE = "local_one"
    """Single replica in the local datacenter."""

    QUORUM = "quorum"
    """Majority of replicas."""

    LOCAL_QUORUM = "local_quorum"
    """Majority of replicas in the local datacenter."""

    ALL = "all"
    """Every replica."""


class ScanParams(BaseModel, frozen=True):
    """Tuning parameters shared by the page fetcher and scanners."""

    page_size: PositiveInt = 50
    """Rows requested for a normal page."""

    retry_page_size: PositiveInt = 1
    """Rows requested once backoff has started for a page."""

    consistency: ConsistencyLevel = ConsistencyLevel.ONE
    """Consistency level for every read."""

    backoff_initial: float = Field(default=0.001, gt=0)
    """First backoff delay and jitter unit, in seconds."""

    backoff_ceiling: float = Field(default=20.0, gt=0)
    """Cumulative backoff, in seconds, before skipping past a stuck token."""

    skip_stride: PositiveInt = 500_000_000
    """Tokens to jump over when a partition range stays unreadable."""

    partition_key: tuple[str, ...] = ("_domain", "key")
    """Partition key columns hashed by `token(...)`."""

    token_column: str = "_token"
    """Alias under which each row's partition token is projected."""


class ExecuteOptions(BaseModel, frozen=True):
    """Options for a single prepare-and-execute read."""

    prepare: bool = True
    """Whether to execute as a prepared statement."""

    fetch_size: PositiveInt
    """Maximum rows in the returned page."""

    page_state: bytes | None = None
    """Continuation handle from the previous page."""

    consistency: ConsistencyLevel = ConsistencyLevel.ONE
    """Consistency level for the read."""
