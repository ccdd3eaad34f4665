"""Data structures for plot points and persisted series records."""
from dataclasses import dataclass
from typing import List, Optional
import re

PAT_NAME = re.compile(r"%name%")
PAT_INDEX = re.compile(r"%index%")
PAT_BUILD = re.compile(r"%build%")


@dataclass
class DataPoint:
    """A single value extracted from a build's data file."""
    value: str
    url: str
    label: str

    def __post_init__(self):
        if self.url is None:
            self.url = ""

    def __str__(self) -> str:
        return f"{self.label} {self.url} {self.value}"


@dataclass
class SeriesRecord:
    """One row of a plot's series file."""
    value: str
    label: str
    build_number: int
    build_timestamp_millis: int
    url: str = ""

    def to_row(self) -> List[str]:
        """Serialize to the five store columns."""
        return [
            self.value,
            self.label,
            str(self.build_number),
            str(self.build_timestamp_millis),
            self.url,
        ]

    @classmethod
    def from_row(cls, row: List[str]) -> "SeriesRecord":
        """Parse a store row; rows written by old versions have no URL column."""
        if len(row) < 4:
            raise ValueError(f"Expected at least 4 fields, got {len(row)}: {row}")
        url = row[4] if len(row) >= 5 else ""
        return cls(
            value=row[0],
            label=row[1],
            build_number=int(row[2]),
            build_timestamp_millis=int(row[3]),
            url=url,
        )


def expand_url(template: Optional[str], label: Optional[str], index: int, build_number: int) -> str:
    """
    Substitute point tokens in a URL template.

    Supported tokens are %name% (point label), %index% (column index) and
    %build% (build number). A missing template expands to the empty string.
    """
    if template is None:
        return ""
    result = template
    result = PAT_NAME.sub(lambda _: label or "", result)
    result = PAT_INDEX.sub(str(index), result)
    result = PAT_BUILD.sub(str(build_number), result)
    return result
