"""
Domain Models
=============

Core in-memory table model shared by every service.

A Row keeps user data (``values``, keyed by header name) structurally apart
from bookkeeping (``meta``), so header names chosen by the user can never
collide with internal fields. Rows and tables are treated as immutable
snapshots: services build new objects and the table service swaps the whole
snapshot in one step.
"""

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

from datacleaner.utils.ids import new_internal_id

CellValue = Union[str, int, float, None]

# Derived display column for verification state. Never stored in row values.
STATUS_COLUMN = "状态"

# Default headers of the profile-cleaning table
DEFAULT_HEADERS: list[str] = ["用户名", "抖音号", "粉丝数", "简介", "联系方式"]


class VerificationState(str, Enum):
    """Relevance verification state of a row."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"


STATUS_LABELS: dict[VerificationState, str] = {
    VerificationState.VERIFIED: "已验证",
    VerificationState.UNVERIFIED: "待检查",
}


class RowMeta(BaseModel):
    """
    Bookkeeping attached to a row.

    Attributes:
        internal_id: Opaque id, assigned at creation, never changes
        verification: Relevance verification state
        highlighted: Columns last written by an automated update
    """

    model_config = ConfigDict(frozen=True)

    internal_id: str = Field(default_factory=new_internal_id)
    verification: VerificationState = VerificationState.UNVERIFIED
    highlighted: frozenset[str] = Field(default_factory=frozenset)


class Row(BaseModel):
    """A table row: header-keyed scalar values plus metadata."""

    model_config = ConfigDict(frozen=True)

    meta: RowMeta = Field(default_factory=RowMeta)
    values: dict[str, CellValue] = Field(default_factory=dict)

    @property
    def internal_id(self) -> str:
        return self.meta.internal_id

    @property
    def verification(self) -> VerificationState:
        return self.meta.verification

    def get(self, column: str) -> CellValue:
        """Raw value of a column; absent columns read as empty string."""
        value = self.values.get(column)
        return "" if value is None else value

    def display(self, column: str) -> CellValue:
        """Value as shown in the grid and written on export."""
        if column == STATUS_COLUMN:
            return STATUS_LABELS[self.meta.verification]
        return self.get(column)

    def with_values(self, updates: dict[str, CellValue]) -> "Row":
        """Copy of the row with some values replaced."""
        return self.model_copy(update={"values": {**self.values, **updates}})

    def with_meta(self, **changes: Any) -> "Row":
        """Copy of the row with metadata fields replaced (never the id)."""
        changes.pop("internal_id", None)
        return self.model_copy(update={"meta": self.meta.model_copy(update=changes)})

    @classmethod
    def create(
        cls,
        values: dict[str, CellValue],
        headers: list[str] | None = None,
    ) -> "Row":
        """New unverified row with a fresh id; every header present (blank if missing)."""
        if headers is not None:
            full = {h: "" for h in headers}
            full.update(values)
            values = full
        return cls(meta=RowMeta(), values=values)


class Table(BaseModel):
    """Ordered headers plus ordered rows."""

    headers: list[str] = Field(default_factory=lambda: list(DEFAULT_HEADERS))
    rows: list[Row] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def find(self, internal_id: str) -> Row | None:
        for row in self.rows:
            if row.internal_id == internal_id:
                return row
        return None

    def ids(self) -> set[str]:
        return {row.internal_id for row in self.rows}

    def with_rows(self, rows: list[Row]) -> "Table":
        return Table(headers=list(self.headers), rows=rows)

    def count_by_state(self) -> dict[str, int]:
        """Number of rows per verification state."""
        counts = {state.value: 0 for state in VerificationState}
        for row in self.rows:
            counts[row.verification.value] += 1
        return counts


class FilterState(BaseModel):
    """
    Grid filter state.

    Attributes:
        restrictions: column -> allowed normalized values; absent column = no restriction
        unique_columns: columns in "unique only" (cross-row dedup) mode, in enable order
    """

    model_config = ConfigDict(frozen=True)

    restrictions: dict[str, frozenset[str]] = Field(default_factory=dict)
    unique_columns: tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return bool(self.restrictions or self.unique_columns)
