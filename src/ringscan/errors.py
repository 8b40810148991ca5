"""Error types for scan operations."""

from enum import StrEnum
from typing import TYPE_CHECKING, final

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ringscan.contexts import Cursor


class ErrorKind(StrEnum):
    """Classification of scan errors."""

    CONNECTION = "connection"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    INVALID_INPUT = "invalid_input"
    CONSUMER = "consumer"
    MISALIGNED = "misaligned"
    BACKEND = "backend"


TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset(
    {ErrorKind.CONNECTION, ErrorKind.UNAVAILABLE, ErrorKind.TIMEOUT}
)
"""Kinds the page fetcher absorbs with backoff instead of surfacing.

Unclassified backend failures are not among them: skipping a token range
loses rows, so only replica and timeout trouble may lead to a skip.
"""


@final
class ScanError(Exception):
    """Base error for all scan operations.

    Errors that escape a scanner carry the table and cursor they were raised at,
    which is enough to resume the scan from a persisted snapshot. Errors from a
    multi-table scan also carry `cursors`, one per table, in table order.
    """

    __slots__ = ("cursor", "cursors", "kind", "message", "source", "table")

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        kind: ErrorKind = ErrorKind.BACKEND,
        source: BaseException | None = None,
        *,
        table: str | None = None,
        cursor: "Cursor | None" = None,
        cursors: "Sequence[Cursor] | None" = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.source = source
        self.table = table
        self.cursor = cursor
        self.cursors = tuple(cursors) if cursors is not None else None

    @property
    def transient(self) -> bool:
        """Whether the failure is worth retrying."""
        return self.kind in TRANSIENT_KINDS

    def with_position(
        self,
        table: str,
        cursor: "Cursor",
        cursors: "Sequence[Cursor] | None" = None,
    ) -> "ScanError":
        """Return a copy of this error annotated with the scan position."""
        return ScanError(
            self.message,
            kind=self.kind,
            source=self.source,
            table=table,
            cursor=cursor,
            cursors=cursors if cursors is not None else self.cursors,
        )

    def __repr__(self) -> str:
        return f"ScanError({self.message!r}, kind={self.kind!r}, table={self.table!r})"
