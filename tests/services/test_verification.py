"""
Tests for the verification state machine
========================================
"""

import pytest

from conftest import make_row
from datacleaner.schemas.domain import VerificationState
from datacleaner.services.verification import is_pending, mark_verified, reset_on_edit
from datacleaner.utils.errors import IllegalTransitionError

SIGNIFICANT = ("用户名", "简介")


def test_mark_verified_from_unverified() -> None:
    row = make_row("dy1")

    verified = mark_verified(row)

    assert verified.verification is VerificationState.VERIFIED
    assert verified.internal_id == row.internal_id
    assert verified.values == row.values


def test_mark_verified_twice_is_illegal() -> None:
    row = make_row("dy1", verified=True)

    with pytest.raises(IllegalTransitionError) as exc_info:
        mark_verified(row)

    assert exc_info.value.details["row_id"] == row.internal_id


@pytest.mark.parametrize("column", SIGNIFICANT)
def test_significant_edit_resets(column: str) -> None:
    row = make_row("dy1", verified=True)

    assert reset_on_edit(row, column, SIGNIFICANT).verification is VerificationState.UNVERIFIED


def test_other_edit_keeps_state() -> None:
    row = make_row("dy1", verified=True)

    assert reset_on_edit(row, "粉丝数", SIGNIFICANT) is row


def test_unverified_row_unchanged_by_edit() -> None:
    row = make_row("dy1")

    assert reset_on_edit(row, "用户名", SIGNIFICANT) is row


def test_is_pending() -> None:
    assert is_pending(make_row("a"))
    assert not is_pending(make_row("a", verified=True))
