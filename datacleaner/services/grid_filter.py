"""
Grid Filter Engine
==================

Faceted column filtering plus opt-in "unique only" cross-row deduplication.

Filtering only changes visibility: the engine is pure, never mutates rows
and keeps backing-store order. Facet counts are always computed over the
full dataset.

Value normalization (used for facets AND matching):
    None / blank-after-trim -> BLANK sentinel
    anything else           -> trimmed string form

Distinct-value order: count descending, ties alphabetical, blank last.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from datacleaner.schemas.domain import CellValue, FilterState, Row

# Normalized token for null / whitespace-only values
BLANK = ""
BLANK_LABEL = "(空白)"


def normalize_value(value: CellValue) -> str:
    """Comparison form of a cell value."""
    if value is None:
        return BLANK
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


@dataclass(frozen=True)
class FacetValue:
    """One entry of a column's distinct-value list."""

    value: str
    count: int

    @property
    def is_blank(self) -> bool:
        return self.value == BLANK

    @property
    def label(self) -> str:
        return BLANK_LABEL if self.is_blank else self.value


def distinct_values(rows: Iterable[Row], column: str) -> list[FacetValue]:
    """
    Distinct normalized values of a column with occurrence counts.

    Args:
        rows: Full (unfiltered) row set
        column: Column name

    Returns:
        Facets sorted by count descending, ties alphabetical, blank last
    """
    counts = Counter(normalize_value(row.display(column)) for row in rows)
    facets = [FacetValue(value, count) for value, count in counts.items()]
    facets.sort(key=lambda f: (f.is_blank, -f.count, f.value))
    return facets


def set_selection(
    state: FilterState,
    column: str,
    selected: Iterable[str],
    all_values: Iterable[str],
) -> FilterState:
    """
    Store the user's working selection for a column.

    A selection equal to the full distinct-value set is "no restriction" and
    removes the column from the map.
    """
    selected_set = frozenset(normalize_value(v) for v in selected)
    universe = frozenset(normalize_value(v) for v in all_values)
    restrictions = dict(state.restrictions)

    if selected_set >= universe:
        restrictions.pop(column, None)
    else:
        restrictions[column] = selected_set

    return state.model_copy(update={"restrictions": restrictions})


def clear_column(state: FilterState, column: str) -> FilterState:
    """Remove the value restriction on one column."""
    restrictions = {k: v for k, v in state.restrictions.items() if k != column}
    return state.model_copy(update={"restrictions": restrictions})


def enable_unique(state: FilterState, column: str) -> FilterState:
    """
    Put a column in unique-only mode.

    Clears a value restriction on the same column; restrictions on other
    columns are kept.
    """
    restrictions = {k: v for k, v in state.restrictions.items() if k != column}
    unique = state.unique_columns
    if column not in unique:
        unique = (*unique, column)
    return FilterState(restrictions=restrictions, unique_columns=unique)


def disable_unique(state: FilterState, column: str) -> FilterState:
    unique = tuple(c for c in state.unique_columns if c != column)
    return state.model_copy(update={"unique_columns": unique})


def clear_filters() -> FilterState:
    return FilterState()


def apply_filters(rows: Sequence[Row], state: FilterState) -> list[Row]:
    """
    Visible subset of the rows, in backing-store order.

    Value restrictions are applied first; unique-only dedup then runs over the
    rows that passed. A row is dropped if ANY unique column's value was already
    seen; surviving rows add their value to EVERY unique column's seen-set.
    """
    visible = [
        row
        for row in rows
        if all(
            normalize_value(row.display(column)) in allowed
            for column, allowed in state.restrictions.items()
        )
    ]

    if not state.unique_columns:
        return visible

    seen: dict[str, set[str]] = {column: set() for column in state.unique_columns}
    survivors: list[Row] = []
    for row in visible:
        keys = {column: normalize_value(row.display(column)) for column in state.unique_columns}
        if any(keys[column] in seen[column] for column in state.unique_columns):
            continue
        for column, key in keys.items():
            seen[column].add(key)
        survivors.append(row)

    return survivors


def hidden_ids(rows: Sequence[Row], state: FilterState) -> list[str]:
    """Internal ids of rows the current filter hides."""
    visible = {row.internal_id for row in apply_filters(rows, state)}
    return [row.internal_id for row in rows if row.internal_id not in visible]
