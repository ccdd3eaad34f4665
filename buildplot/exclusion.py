"""Column inclusion/exclusion policy for CSV series."""
from enum import Enum
from typing import Optional, Set
import logging

logger = logging.getLogger(__name__)


class InclusionFlag(str, Enum):
    """How the configured value list is applied to CSV columns."""
    OFF = "OFF"
    INCLUDE_BY_STRING = "INCLUDE_BY_STRING"
    EXCLUDE_BY_STRING = "EXCLUDE_BY_STRING"
    INCLUDE_BY_COLUMN = "INCLUDE_BY_COLUMN"
    EXCLUDE_BY_COLUMN = "EXCLUDE_BY_COLUMN"


_ALIASES = {
    "INCLUDE_BY_LABEL": InclusionFlag.INCLUDE_BY_STRING,
    "EXCLUDE_BY_LABEL": InclusionFlag.EXCLUDE_BY_STRING,
    "INCLUDE_BY_COLUMN_INDEX": InclusionFlag.INCLUDE_BY_COLUMN,
    "EXCLUDE_BY_COLUMN_INDEX": InclusionFlag.EXCLUDE_BY_COLUMN,
}


def normalize_flag(value) -> str:
    """Map a configured flag name to an InclusionFlag value, OFF if unknown."""
    if value is None:
        return InclusionFlag.OFF.value
    if isinstance(value, InclusionFlag):
        return value.value

    name = str(value).strip().upper()
    if not name:
        return InclusionFlag.OFF.value
    if name in _ALIASES:
        return _ALIASES[name].value
    try:
        return InclusionFlag(name).value
    except ValueError:
        logger.warning(f"Unknown inclusion flag '{value}', column filtering disabled")
        return InclusionFlag.OFF.value


class ExclusionFilter:
    """Decides whether a CSV cell is dropped, by header label or column index."""

    def __init__(
        self,
        flag: InclusionFlag = InclusionFlag.OFF,
        labels: Optional[Set[str]] = None,
        columns: Optional[Set[int]] = None
    ):
        self.flag = flag
        self.labels: Set[str] = labels or set()
        self.columns: Set[int] = columns or set()

    @classmethod
    def from_config(cls, flag, values: Optional[str]) -> "ExclusionFilter":
        """
        Build a filter from the configured flag and comma separated list.

        The list is parsed once. Empty entries are ignored and entries that
        are not integers are dropped for the by-column modes. A missing list
        turns filtering off.
        """
        inclusion_flag = InclusionFlag(normalize_flag(flag))

        if inclusion_flag == InclusionFlag.OFF:
            return cls()

        if values is None:
            return cls()

        labels: Set[str] = set()
        columns: Set[int] = set()

        for entry in values.split(","):
            if not entry:
                continue

            if inclusion_flag in (InclusionFlag.INCLUDE_BY_STRING, InclusionFlag.EXCLUDE_BY_STRING):
                logger.debug(f"{inclusion_flag.value} CSV column: {entry}")
                labels.add(entry)
            else:
                try:
                    columns.add(int(entry))
                    logger.debug(f"{inclusion_flag.value} CSV column: {entry}")
                except ValueError:
                    logger.error(f"Ignoring non-integer column '{entry}' for {inclusion_flag.value}")

        return cls(inclusion_flag, labels, columns)

    def should_exclude(self, label: str, column_index: int) -> bool:
        """Return True if the cell with this header label and column index is dropped."""
        if self.flag == InclusionFlag.OFF:
            return False

        if self.flag == InclusionFlag.INCLUDE_BY_STRING:
            excluded = label not in self.labels
        elif self.flag == InclusionFlag.EXCLUDE_BY_STRING:
            excluded = label in self.labels
        elif self.flag == InclusionFlag.INCLUDE_BY_COLUMN:
            excluded = column_index not in self.columns
        elif self.flag == InclusionFlag.EXCLUDE_BY_COLUMN:
            excluded = column_index in self.columns
        else:
            excluded = False

        logger.debug(
            f"{'excluded' if excluded else 'included'} CSV column: {column_index} : {label}"
        )
        return excluded
