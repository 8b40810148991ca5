"""CQL construction for positioned page reads."""

from collections.abc import Sequence

from pydantic import BaseModel

from ringscan.contexts import Cursor
from ringscan.errors import ErrorKind, ScanError


class Query(BaseModel, frozen=True):
    """A CQL statement with its positional bind values."""

    cql: str
    params: tuple[object, ...] = ()


def build_query(
    table: str,
    cursor: Cursor,
    projection: str,
    *,
    partition_key: Sequence[str] = ("_domain", "key"),
    token_column: str = "_token",
) -> Query:
    """Build the read for the page at `cursor`.

    The partition token is always projected as `token_column` so rows report
    where they live on the ring.
    """
    token_expr = "token(" + ", ".join(f'"{c}"' for c in partition_key) + ")"
    cql = f'SELECT {projection}, {token_expr} AS "{token_column}" FROM {table}'  # noqa: S608

    if cursor.token is not None:
        return Query(cql=f"{cql} WHERE {token_expr} = ?", params=(cursor.token,))

    if cursor.seeded:
        if len(partition_key) != 2:  # noqa: PLR2004
            msg = f"A domain/key seed needs a two-column partition key, got {tuple(partition_key)}"
            raise ScanError(msg, kind=ErrorKind.INVALID_INPUT)
        return Query(
            cql=f"{cql} WHERE {token_expr} = token(?, ?)",
            params=(cursor.domain, cursor.key),
        )

    return Query(cql=cql)
