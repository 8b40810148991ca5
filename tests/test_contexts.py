import pytest
from pydantic import ValidationError

from ringscan import Cursor
from ringscan.contexts import MAX_TOKEN, MIN_TOKEN


def test_advance_keeps_position_and_records_progress() -> None:
    cursor = Cursor(token=42, page_state=b"old", last_token=40)

    advanced = cursor.advance(b"new", last_token=45)

    assert advanced.token == 42
    assert advanced.page_state == b"new"
    assert advanced.last_token == 45
    assert cursor.page_state == b"old"


def test_advance_without_rows_keeps_last_token() -> None:
    cursor = Cursor(last_token=40).advance(b"state")

    assert cursor.last_token == 40


def test_skip_forward_moves_token_and_clears_page_state() -> None:
    cursor = Cursor(token=1_000_000_000, page_state=b"\x00\x01")

    skipped = cursor.skip_forward(500_000_000)

    assert skipped.token == 1_500_000_000
    assert skipped.page_state is None


def test_skip_forward_wraps_around_the_ring() -> None:
    cursor = Cursor(token=MAX_TOKEN - 199)

    skipped = cursor.skip_forward(500_000_000)

    assert skipped.token == MIN_TOKEN + 500_000_000 - 200
    assert MIN_TOKEN <= skipped.token <= MAX_TOKEN


def test_skip_forward_lands_exactly_on_the_ring_ends() -> None:
    assert Cursor(token=MAX_TOKEN - 10).skip_forward(10).token == MAX_TOKEN
    assert Cursor(token=MAX_TOKEN).skip_forward(1).token == MIN_TOKEN


def test_skip_forward_needs_a_token() -> None:
    with pytest.raises(ValueError, match="without a token"):
        Cursor(domain="en.wikipedia.org", key="Main_Page").skip_forward(10)


def test_domain_and_key_go_together() -> None:
    with pytest.raises(ValidationError):
        Cursor(domain="en.wikipedia.org")


def test_snapshot_survives_json_with_binary_page_state() -> None:
    cursor = Cursor(token=-(2**63), page_state=bytes(range(256)), last_token=12)

    restored = Cursor.model_validate_json(cursor.model_dump_json())

    assert restored == cursor


def test_cursors_are_immutable() -> None:
    cursor = Cursor(token=1)

    with pytest.raises(ValidationError):
        cursor.token = 2  # pyright: ignore[reportAttributeAccessIssue]
