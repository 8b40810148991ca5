"""Context types for scan operations.

Contexts carry the state needed to resume a scan from a specific position.
They only track *where* to resume, not *how much* to read (that's in Params).
"""

import base64
from typing import Self

from pydantic import BaseModel, field_serializer, field_validator, model_validator

MIN_TOKEN = -(2**63)
MAX_TOKEN = 2**63 - 1
_RING_SIZE = 2**64


class Cursor(BaseModel, frozen=True):
    """Scan position within a token-ring partitioned table.

    Exactly one positioning mode applies when the next query is built: a defined
    `token` wins, otherwise a `domain`/`key` seed, otherwise a scan from the start.
    Cursors are immutable snapshots; scanners hand a fresh one back after every page.
    """

    token: int | None = None
    """Partition token to continue from."""

    domain: str | None = None
    """Domain half of the seed used when no token is known."""

    key: str | None = None
    """Key half of the seed used when no token is known."""

    page_state: bytes | None = None
    """Opaque continuation handle returned by the backend after the last page."""

    last_token: int | None = None
    """Partition token of the last delivered row, for operator reporting."""

    @model_validator(mode="after")
    def _check_seed(self) -> Self:
        if (self.domain is None) != (self.key is None):
            msg = "domain and key must be given together"
            raise ValueError(msg)
        return self

    @field_validator("page_state", mode="before")
    @classmethod
    def _decode_page_state(cls, value: object) -> object:
        if isinstance(value, str):
            return base64.b64decode(value)
        return value

    @field_serializer("page_state", when_used="json")
    def _encode_page_state(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    @property
    def seeded(self) -> bool:
        """Whether the cursor carries a domain/key seed."""
        return self.domain is not None and self.key is not None

    def advance(self, page_state: bytes | None, last_token: int | None = None) -> Self:
        """Return the cursor positioned after a page that ended at `page_state`."""
        return self.model_copy(
            update={
                "page_state": page_state,
                "last_token": self.last_token if last_token is None else last_token,
            }
        )

    def skip_forward(self, stride: int) -> Self:
        """Return the cursor moved `stride` tokens ahead with its page state cleared.

        Tokens live on a signed 64-bit ring, so a skip past `MAX_TOKEN` wraps
        around to the low end instead of leaving the ring.
        """
        if self.token is None:
            msg = "cannot skip forward without a token"
            raise ValueError(msg)
        token = (self.token + stride - MIN_TOKEN) % _RING_SIZE + MIN_TOKEN
        return self.model_copy(update={"token": token, "page_state": None})


class SkippedRange(BaseModel, frozen=True):
    """A token range given up on after backoff was exhausted.

    Rows in `[start, end)` are never delivered by the scan that skipped them.
    When the skip wrapped around the ring, `end` is smaller than `start`.
    """

    table: str
    start: int
    end: int
