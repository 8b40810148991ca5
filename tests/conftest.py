"""Shared fixtures: an in-memory token ring standing in for the backend."""

import asyncio
import hashlib
from collections.abc import Iterable

import pytest

from ringscan import (
    AlwaysRetry,
    ExecuteOptions,
    FailureKind,
    Page,
    Query,
    RetryDecision,
    RetryPolicy,
    ScanError,
)
from ringscan.errors import ErrorKind

DOMAIN = "en.wikipedia.org"
PROJECTION = '"_domain", key, value'

_SURFACED_KINDS = {
    FailureKind.UNAVAILABLE: ErrorKind.UNAVAILABLE,
    FailureKind.READ_TIMEOUT: ErrorKind.TIMEOUT,
    FailureKind.WRITE_TIMEOUT: ErrorKind.TIMEOUT,
    FailureKind.REQUEST_ERROR: ErrorKind.CONNECTION,
}


def token_of(domain: str, key: str) -> int:
    digest = hashlib.blake2b(f"{domain}\x00{key}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def make_rows(count: int, *, domain: str = DOMAIN, prefix: str = "Page") -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for i in range(count):
        key = f"{prefix}_{i}"
        rows.append({"_domain": domain, "key": key, "value": i, "_token": token_of(domain, key)})
    return sorted(rows, key=lambda row: row["_token"])


class FakeRing:
    """ScanBackend over in-memory tables ordered by partition token.

    Failures come in three flavours:
    - `script[n]` lists failures injected into the n-th execute call (1-based).
      They go through `policy` the way a driver would, including connection
      resets, which run as separate tasks and so complete after the retry.
    - `outage` and `stuck` raise straight to the caller, as if the driver had
      already given up on the request.
    - `failures[n]` is raised as-is from the n-th execute call.
    """

    def __init__(
        self,
        tables: dict[str, Iterable[dict[str, object]]],
        policy: RetryPolicy | None = None,
    ) -> None:
        self.tables = {name: sorted(rows, key=lambda row: row["_token"]) for name, rows in tables.items()}
        self.policy: RetryPolicy = policy or AlwaysRetry()
        self.calls: list[tuple[Query, ExecuteOptions]] = []
        self.events: list[str] = []
        self.script: dict[int, list[FailureKind]] = {}
        self.failures: dict[int, Exception] = {}
        self.outage = 0
        self.stuck: dict[tuple[str, int], int | None] = {}
        self.resets = 0
        self.reset_tasks: list[asyncio.Task[None]] = []

    async def execute(self, query: Query, options: ExecuteOptions) -> Page:
        self.calls.append((query, options))
        call = len(self.calls)
        self.events.append(f"execute:{call}")

        if call in self.failures:
            raise self.failures[call]

        for retry_num, kind in enumerate(self.script.get(call, [])):
            verdict = self.policy.on_failure(kind, retry_num)
            if verdict.reset_connection:
                self.events.append("reset:requested")
                self.reset_tasks.append(asyncio.create_task(self._reset()))
            if verdict.decision is RetryDecision.RETHROW:
                msg = f"{kind} after {retry_num} retries"
                raise ScanError(msg, kind=_SURFACED_KINDS[kind])
            self.events.append(f"retry:{call}")

        if self.outage > 0:
            self.outage -= 1
            msg = "Not enough replicas available"
            raise ScanError(msg, kind=ErrorKind.UNAVAILABLE)

        table = query.cql.split(" FROM ", 1)[1].split(" ", 1)[0]
        token = query.params[0] if len(query.params) == 1 else None
        if (table, token) in self.stuck:
            remaining = self.stuck[table, token]
            if remaining is None or remaining > 0:
                if remaining is not None:
                    self.stuck[table, token] = remaining - 1
                msg = f"Read timed out at token {token}"
                raise ScanError(msg, kind=ErrorKind.TIMEOUT)

        return self._read(table, query, options)

    async def _reset(self) -> None:
        await asyncio.sleep(0)
        self.resets += 1
        self.events.append("reset:done")

    def _read(self, table: str, query: Query, options: ExecuteOptions) -> Page:
        rows = self.tables[table]
        if len(query.params) == 1:
            rows = [row for row in rows if row["_token"] == query.params[0]]
        elif len(query.params) == 2:
            domain, key = query.params
            rows = [row for row in rows if row["_token"] == token_of(str(domain), str(key))]

        start = int(options.page_state) if options.page_state else 0
        end = start + options.fetch_size
        page_state = str(end).encode() if end < len(rows) else None
        return Page(rows=[dict(row) for row in rows[start:end]], page_state=page_state)


class SleepRecorder:
    """Stands in for asyncio.sleep, recording requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def rows() -> list[dict[str, object]]:
    return make_rows(120)


@pytest.fixture
def ring(rows: list[dict[str, object]]) -> FakeRing:
    return FakeRing({"T": rows})


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
