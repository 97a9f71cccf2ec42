"""
Verification State Machine
==========================

Rows move between two states:

    UNVERIFIED --mark_verified--> VERIFIED      (survived a relevance pass)
    VERIFIED   --reset_on_edit--> UNVERIFIED    (a significant column was edited)

Removal by the relevance filter deletes the row; it is not a state.
Every transition checks its precondition and raises IllegalTransitionError
instead of silently skipping.
"""

from collections.abc import Collection

from datacleaner.schemas.domain import Row, VerificationState
from datacleaner.utils.errors import IllegalTransitionError


def mark_verified(row: Row) -> Row:
    """
    Transition UNVERIFIED -> VERIFIED after a batch classification kept the row.

    Precondition: the row is UNVERIFIED (only unverified rows are sent for
    classification).
    """
    if row.verification is not VerificationState.UNVERIFIED:
        raise IllegalTransitionError(
            "Only unverified rows can be marked verified",
            details={"row_id": row.internal_id, "state": row.verification.value},
        )
    return row.with_meta(verification=VerificationState.VERIFIED)


def reset_on_edit(row: Row, column: str, significant_columns: Collection[str]) -> Row:
    """
    Apply the edit policy for the verification state.

    An edit to a significant column returns the row to UNVERIFIED; any other
    edit leaves the state unchanged.
    """
    if column in significant_columns and row.verification is VerificationState.VERIFIED:
        return row.with_meta(verification=VerificationState.UNVERIFIED)
    return row


def is_pending(row: Row) -> bool:
    """True if the row still needs a relevance pass."""
    return row.verification is VerificationState.UNVERIFIED
