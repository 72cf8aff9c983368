"""Pure row projection shared by every screen: search, exact-match filters, sort.

``project_rows`` never mutates its input. ``MemoizedProjection`` caches the last
result per (rows version, view state) so repeated renders of an unchanged screen do
not redo the work.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any


ALL = "all"


@dataclass(frozen=True)
class ViewState:
    search: str = ""
    filters: tuple[tuple[str, Any], ...] = ()
    sort_field: str | None = None
    sort_desc: bool = False

    def with_search(self, search: str) -> ViewState:
        return replace(self, search=search)

    def with_filter(self, field: str, value: Any) -> ViewState:
        others = tuple((name, current) for name, current in self.filters if name != field)
        if value is None or value == ALL:
            return replace(self, filters=others)
        return replace(self, filters=tuple(sorted(others + ((field, value),), key=lambda item: item[0])))

    def with_sort(self, field: str | None, descending: bool = False) -> ViewState:
        return replace(self, sort_field=field, sort_desc=descending)

    def toggle_sort(self, field: str) -> ViewState:
        if self.sort_field == field:
            return replace(self, sort_desc=not self.sort_desc)
        return replace(self, sort_field=field, sort_desc=False)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set)):
        return " ".join(_text(item) for item in value)
    return str(value)


def matches_search(row: Mapping[str, Any], query: str, fields: Iterable[str]) -> bool:
    needle = query.strip().casefold()
    if not needle:
        return True
    return any(needle in _text(row.get(name)).casefold() for name in fields)


def _filter_matches(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    if isinstance(actual, (int, float, Decimal)) and not isinstance(actual, bool) and isinstance(expected, str):
        try:
            return Decimal(str(actual)) == Decimal(expected.strip())
        except ArithmeticError:
            return False
    return str(actual) == str(expected)


def _sort_key(value: Any) -> tuple[int, Any]:
    # Ranked by kind so mixed or unorderable column values (JSON objects) still sort.
    if isinstance(value, (bool, int, float, Decimal)):
        return (0, value)
    if isinstance(value, str):
        return (1, value.casefold())
    if isinstance(value, datetime):
        return (2, value)
    if isinstance(value, date):
        return (3, value)
    return (4, json.dumps(value, sort_keys=True, default=str))


def sort_rows(rows: Sequence[Mapping[str, Any]], field: str, descending: bool = False) -> list[Mapping[str, Any]]:
    present = [row for row in rows if row.get(field) is not None]
    missing = [row for row in rows if row.get(field) is None]
    ordered = sorted(present, key=lambda row: _sort_key(row.get(field)), reverse=descending)
    return ordered + missing


def project_rows(
    rows: Sequence[Mapping[str, Any]],
    state: ViewState,
    search_fields: Sequence[str],
) -> list[Mapping[str, Any]]:
    result = [row for row in rows if matches_search(row, state.search, search_fields)]
    for field, expected in state.filters:
        result = [row for row in result if _filter_matches(row.get(field), expected)]
    if state.sort_field:
        result = sort_rows(result, state.sort_field, state.sort_desc)
    return result


class MemoizedProjection:
    def __init__(self, search_fields: Sequence[str]) -> None:
        self.search_fields = tuple(search_fields)
        self._key: tuple[int, ViewState] | None = None
        self._value: list[Mapping[str, Any]] = []

    def __call__(self, rows: Sequence[Mapping[str, Any]], rows_version: int, state: ViewState) -> list[Mapping[str, Any]]:
        key = (rows_version, state)
        if self._key != key:
            self._value = project_rows(rows, state, self.search_fields)
            self._key = key
        return self._value
