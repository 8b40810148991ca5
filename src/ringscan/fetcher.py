"""Single-page reads with backoff and skip-forward over stuck token ranges.

A fetch never gives up on transient failures. Backoff grows exponentially
with jitter until the cumulative sleep reaches the ceiling; then, if the
cursor has a token, the partition range is treated as stuck and skipped.
Without a token there is nothing safe to skip, so the fetcher keeps waiting
for the backend to recover.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeAlias

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    wait_exponential_jitter,
)
from tenacity.stop import stop_base

from ringscan.contexts import Cursor, SkippedRange
from ringscan.datatypes import Page
from ringscan.errors import ScanError
from ringscan.params import ExecuteOptions, ScanParams
from ringscan.protocols import ScanBackend
from ringscan.query import build_query

logger = structlog.get_logger(__name__)

Sleep: TypeAlias = Callable[[float], Awaitable[None]]
SkipCallback: TypeAlias = Callable[[SkippedRange], None]


class stop_after_idle(stop_base):  # noqa: N801
    """Stop once the cumulative backoff sleep reaches `max_idle` seconds."""

    def __init__(self, max_idle: float) -> None:
        self.max_idle = max_idle

    def __call__(self, retry_state: RetryCallState) -> bool:
        return retry_state.idle_for >= self.max_idle


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ScanError) and exc.transient


class PageFetcher:
    """Fetches exactly one page for a table at a cursor.

    Stateless across calls: backoff lives in the local state of each `fetch`.
    """

    def __init__(
        self,
        backend: ScanBackend,
        params: ScanParams | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        on_skip: SkipCallback | None = None,
    ) -> None:
        self._backend = backend
        self._params = params or ScanParams()
        self._sleep = sleep
        self._on_skip = on_skip

    @property
    def params(self) -> ScanParams:
        return self._params

    async def fetch(self, table: str, cursor: Cursor, projection: str) -> tuple[Page, Cursor]:
        """Read the page at `cursor`.

        Returns the page together with the cursor it was read from, which
        only differs from `cursor` if a stuck range was skipped.

        Raises:
            ScanError: For non-transient failures, annotated with table and cursor.
                Exceptions of other types are wrapped with kind BACKEND.
        """
        degraded = False
        while True:
            try:
                page = await self._attempt(table, cursor, projection, degraded=degraded)
            except RetryError as e:
                degraded = True
                if cursor.token is not None:
                    cursor = self._skip(table, cursor)
                    continue
                last_error = e.last_attempt.exception()
                logger.error(
                    "backoff exhausted with no token to skip past, waiting for recovery",
                    table=table,
                    page_state=cursor.page_state,
                    last_token=cursor.last_token,
                    error=str(last_error),
                    retry_in=self._params.backoff_ceiling,
                )
                await self._sleep(self._params.backoff_ceiling)
                continue
            except ScanError as e:
                raise e.with_position(table, cursor) from e
            except Exception as e:
                msg = f"Backend failed while reading {table}: {e}"
                raise ScanError(msg, source=e, table=table, cursor=cursor) from e
            return page, cursor

    async def _attempt(
        self,
        table: str,
        cursor: Cursor,
        projection: str,
        *,
        degraded: bool,
    ) -> Page:
        params = self._params
        query = build_query(
            table,
            cursor,
            projection,
            partition_key=params.partition_key,
            token_column=params.token_column,
        )
        retrying = AsyncRetrying(
            sleep=self._sleep,
            retry=retry_if_exception(_is_transient),
            wait=wait_exponential_jitter(
                initial=params.backoff_initial,
                max=params.backoff_ceiling,
                exp_base=2,
                jitter=params.backoff_initial,
            ),
            stop=stop_after_idle(params.backoff_ceiling),
            before_sleep=lambda state: self._log_backoff(table, cursor, state),
        )
        async for attempt in retrying:
            with attempt:
                retrying_page = degraded or attempt.retry_state.attempt_number > 1
                options = ExecuteOptions(
                    fetch_size=params.retry_page_size if retrying_page else params.page_size,
                    page_state=cursor.page_state,
                    consistency=params.consistency,
                )
                page = await self._backend.execute(query, options)
        return page

    def _skip(self, table: str, cursor: Cursor) -> Cursor:
        skipped = cursor.skip_forward(self._params.skip_stride)
        skipped_range = SkippedRange(table=table, start=cursor.token, end=skipped.token)
        logger.warning(
            "skipping over problematic token range",
            table=table,
            token=cursor.token,
            next_token=skipped.token,
        )
        if self._on_skip is not None:
            self._on_skip(skipped_range)
        return skipped

    @staticmethod
    def _log_backoff(table: str, cursor: Cursor, state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        logger.warning(
            "page fetch failed, backing off",
            table=table,
            token=cursor.token,
            page_state=cursor.page_state,
            last_token=cursor.last_token,
            attempt=state.attempt_number,
            retry_in=round(delay, 3),
            error=str(error),
        )
