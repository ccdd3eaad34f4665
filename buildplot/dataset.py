"""Sparse series x build table with a window over the newest builds."""
from datetime import datetime
from functools import total_ordering
from typing import Any, Dict, Hashable, List, Optional, Tuple
import logging
import sys

import numpy as np

logger = logging.getLogger(__name__)


def format_build_date(timestamp_millis: int) -> str:
    """Short local date of a build, e.g. "Mar 7"."""
    when = datetime.fromtimestamp(timestamp_millis / 1000.0)
    return f"{when:%b} {when.day}"


@total_ordering
class ColumnLabel:
    """
    Column key of a plot: one build.

    Labels compare, and are equal and hash, by build number only, so a
    dataset has at most one column per build whatever the display text.
    """

    __slots__ = ("build_number", "build_date", "text")

    def __init__(self, build_number: int, timestamp_millis: int, text: Optional[str] = None):
        self.build_number = int(build_number)
        self.build_date = format_build_date(timestamp_millis)
        self.text = text

    def num_date_string(self) -> str:
        return f"#{self.build_number} ({self.build_date})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, ColumnLabel):
            return NotImplemented
        return self.build_number == other.build_number

    def __lt__(self, other) -> bool:
        if not isinstance(other, ColumnLabel):
            return NotImplemented
        return self.build_number < other.build_number

    def __hash__(self) -> int:
        return hash(self.build_number)

    def __str__(self) -> str:
        return self.text if self.text is not None else self.num_date_string()

    def __repr__(self) -> str:
        return f"ColumnLabel({self.build_number}, {self.build_date!r}, {self.text!r})"


class CategoryDataset:
    """
    Table of numbers (and point URLs) keyed by series (rows) and build (columns).

    Rows keep the order in which series were first seen. Columns are kept
    sorted ascending. Only the last ``max_columns`` columns are visible
    through the read accessors and all column indices are relative to that
    window; the full column list is never truncated.
    """

    def __init__(self):
        self._row_keys: List[Hashable] = []
        self._column_keys: List[Any] = []
        self._data: List[Dict[Any, Tuple[Any, Optional[str]]]] = []
        self._max_columns = sys.maxsize

    @property
    def max_columns(self) -> int:
        return self._max_columns

    def set_value(self, value, url: Optional[str], row_key: Hashable, column_key):
        """Add or replace the cell for (row_key, column_key)."""
        try:
            row_index = self._row_keys.index(row_key)
        except ValueError:
            self._row_keys.append(row_key)
            self._data.append({})
            row_index = len(self._row_keys) - 1

        if column_key not in self._column_keys:
            # columns arrive mostly in build order, so the scan is short
            for i, key in enumerate(self._column_keys):
                if key >= column_key:
                    self._column_keys.insert(i, column_key)
                    break
            else:
                self._column_keys.append(column_key)

        self._data[row_index][column_key] = (value, url)

    def clip_dataset(self, max_columns: int):
        """
        Show only the last max_columns columns.

        Rows that have no cell inside the new window are removed right away
        so they do not show up as empty legend entries.
        """
        if max_columns < 0:
            raise ValueError(f"max_columns must not be negative: {max_columns}")
        self._max_columns = max_columns

        if self.get_column_count() == 0:
            return

        low_column = self._column_keys[self._first_visible()]
        for i in range(len(self._data) - 1, -1, -1):
            if not any(column >= low_column for column in self._data[i]):
                logger.debug(f"Removing row {self._row_keys[i]!r} with no data in window")
                del self._data[i]
                del self._row_keys[i]

    def _first_visible(self) -> int:
        return max(0, len(self._column_keys) - self._max_columns)

    def _physical_column(self, column: int) -> int:
        if column < 0 or column >= self.get_column_count():
            raise IndexError(f"Column index {column} out of range [0, {self.get_column_count()})")
        return self._first_visible() + column

    def _check_row(self, row: int):
        if row < 0 or row >= len(self._row_keys):
            raise IndexError(f"Row index {row} out of range [0, {len(self._row_keys)})")

    def get_row_count(self) -> int:
        return len(self._row_keys)

    def get_column_count(self) -> int:
        return min(len(self._column_keys), self._max_columns)

    def get_row_key(self, row: int):
        self._check_row(row)
        return self._row_keys[row]

    def get_row_index(self, key) -> int:
        try:
            return self._row_keys.index(key)
        except ValueError:
            return -1

    def get_row_keys(self) -> List[Hashable]:
        return list(self._row_keys)

    def get_column_key(self, column: int):
        return self._column_keys[self._physical_column(column)]

    def get_column_index(self, key) -> int:
        """Index of a column inside the window, -1 if absent or clipped."""
        try:
            physical = self._column_keys.index(key)
        except ValueError:
            return -1
        index = physical - self._first_visible()
        return index if index >= 0 else -1

    def get_column_keys(self) -> List[Any]:
        return self._column_keys[self._first_visible():]

    def get_value(self, row: int, column: int):
        """Number at a windowed position, None if nothing was recorded."""
        cell = self._cell(row, column)
        return cell[0] if cell else None

    def get_url(self, row: int, column: int) -> Optional[str]:
        """URL at a windowed position, None if nothing was recorded."""
        cell = self._cell(row, column)
        return cell[1] if cell else None

    def get_value_by_key(self, row_key, column_key):
        """Number for a row and column key, ignoring the window."""
        row_index = self.get_row_index(row_key)
        if row_index == -1:
            return None
        cell = self._data[row_index].get(column_key)
        return cell[0] if cell else None

    def _cell(self, row: int, column: int):
        self._check_row(row)
        column_key = self._column_keys[self._physical_column(column)]
        return self._data[row].get(column_key)

    def to_array(self) -> np.ndarray:
        """The visible table as floats, NaN where no value was recorded."""
        rows = self.get_row_count()
        columns = self.get_column_count()
        matrix = np.full((rows, columns), np.nan, dtype=float)
        for r in range(rows):
            for c in range(columns):
                value = self.get_value(r, c)
                if value is not None:
                    matrix[r, c] = float(value)
        return matrix

    def row_summary(self) -> List[Dict[str, Any]]:
        """Min, max, mean and latest value of each series inside the window."""
        matrix = self.to_array()
        summary = []
        for r, key in enumerate(self._row_keys):
            values = matrix[r]
            present = values[~np.isnan(values)]
            if present.size == 0:
                summary.append({"series": key, "count": 0, "min": None, "max": None, "mean": None, "last": None})
                continue
            summary.append({
                "series": key,
                "count": int(present.size),
                "min": float(np.min(present)),
                "max": float(np.max(present)),
                "mean": float(np.mean(present)),
                "last": float(present[-1]),
            })
        return summary
