"""Core protocols for scan backends and consumers."""

from collections.abc import AsyncIterator, Awaitable
from typing import Protocol, Self, TypeVar, runtime_checkable

from ringscan.datatypes import Page
from ringscan.params import ExecuteOptions
from ringscan.query import Query

T_co = TypeVar("T_co", covariant=True)
T_contra = TypeVar("T_contra", contravariant=True)
Ctx = TypeVar("Ctx")  # Invariant: used in both parameter and return positions
Cred_contra = TypeVar("Cred_contra", contravariant=True)
Params_contra = TypeVar("Params_contra", contravariant=True)


@runtime_checkable
class ScanBackend(Protocol):
    """Protocol for the backend client a scan reads through."""

    async def execute(self, query: Query, options: ExecuteOptions) -> Page:
        """Run one bounded read and return its rows and continuation handle.

        Failures are raised as `ScanError`. Transient failures have already
        been through the client's retry policy by the time they surface here.
        """
        ...


@runtime_checkable
class Consumer(Protocol[T_contra]):
    """Callable receiving each scanned row (or row tuple).

    May be a plain function or a coroutine function; raising halts the scan.
    """

    def __call__(self, item: T_contra, /) -> Awaitable[None] | None: ...


@runtime_checkable
class DataInput(Protocol[T_co, Ctx]):
    """Protocol for reading data from a scanned source."""

    def read(self, table: str, ctx: Ctx, projection: str) -> AsyncIterator[tuple[T_co, Ctx]]:
        """Yield (item, context) tuples from the source.

        Each yielded context can be used to resume reading if the
        stream is interrupted.
        """
        ...


@runtime_checkable
class Provider(Protocol[Cred_contra, Params_contra]):
    """Protocol for provider lifecycle management."""

    @classmethod
    async def connect(cls, credentials: Cred_contra, params: Params_contra) -> Self:
        """Establish connection to the external service."""
        ...

    async def disconnect(self) -> None:
        """Release resources and close connections."""
        ...
