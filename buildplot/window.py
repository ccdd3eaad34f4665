"""Which builds a plot keeps on disk and which it shows."""
from dataclasses import dataclass
from typing import Optional
import logging
import sys

from buildplot.history import BuildHistory

logger = logging.getLogger(__name__)

UNLIMITED = sys.maxsize


def parse_window_size(text) -> Optional[int]:
    """
    Parse a configured number of builds.

    Blank, missing, negative or unparseable values mean "all builds" and
    return None.
    """
    if text is None:
        return None
    if isinstance(text, int):
        value = text
    else:
        text = str(text).strip()
        if not text or text.lower() == "all":
            return None
        try:
            value = int(text)
        except ValueError:
            logger.error(f"Invalid number of builds '{text}', showing all builds")
            return None

    if value < 0:
        logger.error(f"Negative number of builds {value}, showing all builds")
        return None
    return value


@dataclass
class WindowPolicy:
    """Window size and deleted-build retention for one plot."""
    window_size: Optional[int] = None
    keep_records: bool = False

    @classmethod
    def from_config(cls, num_builds, keep_records: bool = False) -> "WindowPolicy":
        return cls(parse_window_size(num_builds), keep_records)

    @property
    def max_columns(self) -> int:
        """Window for CategoryDataset.clip_dataset."""
        return UNLIMITED if self.window_size is None else self.window_size

    def retains(self, build_number: int, history: BuildHistory) -> bool:
        """
        True if records of this build stay in the series file.

        Builds older than the window are dropped. Within the window a build
        is kept if it still exists or records of deleted builds are kept.
        """
        if self.window_size is not None:
            if build_number < history.next_build_number - self.window_size:
                return False

        return self.keep_records or history.exists(build_number)

    def visible(self, build_number: int, history: BuildHistory, right_build_num: Optional[int] = None) -> bool:
        """True if the build may appear as a column when rendering."""
        if right_build_num is not None and build_number > right_build_num:
            return False
        return self.retains(build_number, history)
