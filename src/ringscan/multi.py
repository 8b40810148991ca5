"""Lockstep traversal of identically partitioned tables.

Each table is read with its own page state, but all of them start from the
same token/seed position. After every fan-out the pages are checked for
alignment, and rows are paired by position. Pairing is only meaningful when
the tables share partitioning and per-partition row order, which the caller
must guarantee; a detectable violation fails the scan with a MISALIGNED error
rather than delivering mismatched tuples.
"""

import asyncio
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import TypeAlias
from contextlib import aclosing

import structlog

from ringscan.contexts import Cursor, SkippedRange
from ringscan.datatypes import Page, Row
from ringscan.errors import ErrorKind, ScanError
from ringscan.fetcher import PageFetcher, Sleep
from ringscan.params import ScanParams
from ringscan.protocols import Consumer, ScanBackend
from ringscan.scanner import deliver, last_token

logger = structlog.get_logger(__name__)

Cursors: TypeAlias = tuple[Cursor, ...]


def _misaligned(tables: Sequence[str], cursors: Cursors, reason: str) -> ScanError:
    msg = f"Tables {list(tables)} are misaligned: {reason}"
    return ScanError(
        msg, kind=ErrorKind.MISALIGNED, table=tables[0], cursor=cursors[0], cursors=cursors
    )


class MultiTableScanner:
    """Scanner pairing rows across tables that share one logical cursor."""

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
        """Token ranges given up on, across all tables."""
        return tuple(self._skipped)

    @staticmethod
    def _fan_out(tables: Sequence[str], cursor: Cursor | Sequence[Cursor]) -> Cursors:
        if not tables:
            msg = "At least one table is required"
            raise ScanError(msg, kind=ErrorKind.INVALID_INPUT)
        if isinstance(cursor, Cursor):
            return (cursor,) * len(tables)
        cursors = tuple(cursor)
        if len(cursors) != len(tables):
            msg = f"Got {len(cursors)} cursors for {len(tables)} tables"
            raise ScanError(msg, kind=ErrorKind.INVALID_INPUT)
        return cursors

    async def _fetch_all(
        self, tables: Sequence[str], cursors: Cursors, projection: str
    ) -> tuple[list[Page], Cursors]:
        tasks = [
            asyncio.ensure_future(self._fetcher.fetch(table, cursor, projection))
            for table, cursor in zip(tables, cursors, strict=True)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        pages = [page for page, _ in results]
        return pages, tuple(cursor for _, cursor in results)

    def _check_alignment(
        self, tables: Sequence[str], pages: Sequence[Page], cursors: Cursors
    ) -> None:
        counts = [len(page.rows) for page in pages]
        if len(set(counts)) > 1:
            raise _misaligned(tables, cursors, f"row counts differ {counts}")

        tokens = {cursor.token for cursor in cursors}
        if len(tokens) > 1:
            raise _misaligned(tables, cursors, f"cursor tokens diverged {sorted(map(str, tokens))}")

        if len({page.exhausted for page in pages}) > 1:
            raise _misaligned(tables, cursors, "tables disagree on exhaustion")

        column = self._fetcher.params.token_column
        for i, rows in enumerate(zip(*(page.rows for page in pages), strict=True)):
            if not all(isinstance(row, Mapping) and column in row for row in rows):
                continue
            row_tokens = {row[column] for row in rows}
            if len(row_tokens) > 1:
                reason = f"row {i} has tokens {sorted(map(str, row_tokens))}"
                raise _misaligned(tables, cursors, reason)

    async def pages(
        self,
        tables: Sequence[str],
        cursor: Cursor | Sequence[Cursor],
        projection: str,
    ) -> AsyncIterator[tuple[list[Page], Cursors]]:
        """Yield aligned pages, one per table, with the cursors they were read from."""
        cursors = self._fan_out(tables, cursor)
        column = self._fetcher.params.token_column
        while True:
            try:
                pages, fetched = await self._fetch_all(tables, cursors, projection)
            except ScanError as e:
                raise e.with_position(e.table or tables[0], e.cursor or cursors[0], cursors) from e
            cursors = fetched
            self._check_alignment(tables, pages, cursors)
            yield pages, cursors
            if pages[0].exhausted:
                return
            cursors = tuple(
                c.advance(page.page_state, last_token(page.rows, column))
                for c, page in zip(cursors, pages, strict=True)
            )
            await asyncio.sleep(0)

    async def read(
        self,
        tables: Sequence[str],
        ctx: Cursor | Sequence[Cursor],
        projection: str,
    ) -> AsyncIterator[tuple[tuple[Row, ...], Cursors]]:
        """Yield (row_tuple, cursors) with one row per table, paired by position."""
        async for pages, cursors in self.pages(tables, ctx, projection):
            for rows in zip(*(page.rows for page in pages), strict=True):
                yield rows, cursors

    async def scan(
        self,
        tables: Sequence[str],
        cursor: Cursor | Sequence[Cursor],
        projection: str,
        consumer: Consumer[tuple[Row, ...]],
    ) -> Cursors:
        """Feed paired row tuples to `consumer` until the tables are exhausted.

        Returns:
            Per-table cursors after the last page.

        Raises:
            ScanError: On consumer failure, irrecoverable fetch failure or
                misalignment between the tables. Its `cursors` hold one resume
                cursor per table.
        """
        column = self._fetcher.params.token_column
        final = self._fan_out(tables, cursor)
        try:
            async with aclosing(self.pages(tables, cursor, projection)) as stream:
                async for pages, cursors in stream:
                    for rows in zip(*(page.rows for page in pages), strict=True):
                        try:
                            await deliver(consumer, rows)
                        except Exception as e:
                            msg = f"Consumer failed while scanning {list(tables)}: {e}"
                            raise ScanError(
                                msg,
                                kind=ErrorKind.CONSUMER,
                                source=e,
                                table=tables[0],
                                cursor=cursors[0],
                                cursors=cursors,
                            ) from e
                    final = tuple(
                        c.advance(page.page_state, last_token(page.rows, column))
                        for c, page in zip(cursors, pages, strict=True)
                    )
        except ScanError as e:
            logger.error(
                "multi-table scan halted",
                tables=list(tables),
                kind=e.kind,
                table=e.table,
                tokens=[c.token for c in e.cursors] if e.cursors else None,
                page_states=[c.page_state for c in e.cursors] if e.cursors else None,
                error=e.message,
            )
            raise
        return final
