"""Data types that flow through scanners.

- `Row` is whatever record the backend returns, forwarded verbatim
- `Page` is one bounded read: its rows plus the continuation handle
"""

from typing import Any, TypeAlias

from pydantic import BaseModel, Field

# Backend-defined record. The Cassandra provider returns dict rows.
Row: TypeAlias = Any


class Page(BaseModel, frozen=True):
    """A single page of rows read at a cursor."""

    rows: list[Row] = Field(default_factory=list)
    """Rows in backend order."""

    page_state: bytes | None = None
    """Continuation handle for the next page, or None once the result is exhausted."""

    @property
    def exhausted(self) -> bool:
        """Whether the backend signalled that no pages follow this one."""
        return self.page_state is None
