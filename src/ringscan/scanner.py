"""Full-table traversal over a token-ring partitioned table."""

import asyncio
import inspect
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import TypeVar
from contextlib import aclosing

import structlog

from ringscan.contexts import Cursor, SkippedRange
from ringscan.datatypes import Page, Row
from ringscan.errors import ErrorKind, ScanError
from ringscan.fetcher import PageFetcher, Sleep
from ringscan.params import ScanParams
from ringscan.protocols import Consumer, ScanBackend

logger = structlog.get_logger(__name__)


T = TypeVar("T")


async def deliver(consumer: Consumer[T], item: T) -> None:
    """Invoke `consumer` and wait for it to finish with `item`."""
    result = consumer(item)
    if inspect.isawaitable(result):
        await result


def last_token(rows: Sequence[Row], column: str) -> int | None:
    """Return the projected partition token of the last row, if it carries one."""
    if not rows or not isinstance(rows[-1], Mapping):
        return None
    value = rows[-1].get(column)
    return value if isinstance(value, int) else None


class TableScanner:
    """Scanner for a single table.

    Implements DataInput[Row, Cursor]. Pages are fetched one at a time and
    the next page is only requested once every row of the current one has
    been consumed.
    """

    def __init__(
        self,
        backend: ScanBackend,
        params: ScanParams | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._skipped: list[SkippedRange] = []
        self._fetcher = PageFetcher(backend, params, sleep=sleep, on_skip=self._skipped.append)

    @property
    def skipped_ranges(self) -> tuple[SkippedRange, ...]:
        """Token ranges this scanner gave up on, in the order they were skipped."""
        return tuple(self._skipped)

    async def pages(
        self, table: str, cursor: Cursor, projection: str
    ) -> AsyncIterator[tuple[Page, Cursor]]:
        """Yield each page with the cursor it was read from.

        Stops after the page the backend marks as the last one.
        """
        column = self._fetcher.params.token_column
        while True:
            page, cursor = await self._fetcher.fetch(table, cursor, projection)
            yield page, cursor
            if page.exhausted:
                return
            cursor = cursor.advance(page.page_state, last_token(page.rows, column))
            await asyncio.sleep(0)

    async def read(
        self, table: str, ctx: Cursor, projection: str
    ) -> AsyncIterator[tuple[Row, Cursor]]:
        """Yield (row, cursor) tuples for the whole table.

        The cursor is the one the row's page was read from, so resuming from
        it replays that page.
        """
        async for page, cursor in self.pages(table, ctx, projection):
            for row in page.rows:
                yield row, cursor

    async def scan(
        self,
        table: str,
        cursor: Cursor,
        projection: str,
        consumer: Consumer[Row],
    ) -> Cursor:
        """Feed every row of `table` to `consumer`, in backend order.

        Returns:
            The cursor after the last page, once the backend reports exhaustion.

        Raises:
            ScanError: If the consumer fails (kind CONSUMER) or a fetch fails
                irrecoverably; either way `table` and `cursor` locate the page
                to resume from.
        """
        column = self._fetcher.params.token_column
        final = cursor
        try:
            async with aclosing(self.pages(table, cursor, projection)) as pages:
                async for page, page_cursor in pages:
                    for row in page.rows:
                        try:
                            await deliver(consumer, row)
                        except Exception as e:
                            msg = f"Consumer failed while scanning {table}: {e}"
                            raise ScanError(
                                msg,
                                kind=ErrorKind.CONSUMER,
                                source=e,
                                table=table,
                                cursor=page_cursor,
                            ) from e
                    final = page_cursor.advance(page.page_state, last_token(page.rows, column))
        except ScanError as e:
            logger.error(
                "scan halted",
                table=table,
                kind=e.kind,
                token=e.cursor.token if e.cursor else None,
                page_state=e.cursor.page_state if e.cursor else None,
                last_token=e.cursor.last_token if e.cursor else None,
                error=e.message,
            )
            raise
        return final
