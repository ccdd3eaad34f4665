"""File-backed, append-only store of series records for one plot."""
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
import csv
import logging
import os
import shutil
import tempfile
import threading

from buildplot.history import BuildHistory
from buildplot.metrics import IngestMetrics
from buildplot.points import SeriesRecord
from buildplot.window import WindowPolicy

logger = logging.getLogger(__name__)

HEADER = ["Value", "Series Label", "Build Number", "Build Date", "URL"]

# One writer per series file within this process
_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


class SeriesStore:
    """
    The series file of a plot.

    The file has two header lines (the plot title and the column names)
    followed by one row per record. Records are kept in append order.

    Writers are serialized per file inside one process. Processes sharing a
    data directory must not append to the same plot concurrently.
    """

    def __init__(
        self,
        path: Union[str, Path],
        title: str,
        metrics: Optional[IngestMetrics] = None
    ):
        self.path = Path(path)
        self.title = title
        self.metrics = metrics
        self.last_load_failed = False

    def load(self) -> List[SeriesRecord]:
        """
        Read all records.

        A missing file is an empty history. Any read or parse error is
        logged and also gives an empty history, never a partial one.
        """
        self.last_load_failed = False
        if not self.path.exists():
            return []

        records: List[SeriesRecord] = []
        try:
            with open(self.path, 'r', newline='', encoding='utf-8') as f:
                reader = csv.reader(f)
                # title and column headers
                next(reader, None)
                next(reader, None)
                for row in reader:
                    if not row or (len(row) == 1 and row[0] == ""):
                        continue
                    records.append(SeriesRecord.from_row(row))
        except (OSError, ValueError, csv.Error) as e:
            logger.error(f"Exception reading plot file {self.path}: {e}")
            self.last_load_failed = True
            if self.metrics:
                self.metrics.record_store_error("read")
            return []

        logger.debug(f"Loaded {len(records)} record(s) from {self.path}")
        return records

    def save(
        self,
        records: Sequence[SeriesRecord],
        policy: WindowPolicy,
        history: BuildHistory
    ) -> List[SeriesRecord]:
        """
        Write the records that the policy retains.

        The file is written next to its final location and renamed over it,
        so readers see either the old or the new content. On failure the
        previous file is left untouched.

        Returns:
            The retained records, or an empty list if writing failed
        """
        retained = [r for r in records if policy.retains(r.build_number, history)]
        pruned = len(records) - len(retained)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        except OSError as e:
            logger.error(f"Exception saving plot file {self.path}: {e}")
            self._record_write_error()
            return []

        try:
            with os.fdopen(fd, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f, lineterminator="\n")
                writer.writerow(["Title", self.title])
                writer.writerow(HEADER)
                for record in retained:
                    writer.writerow(record.to_row())
            os.replace(tmp_name, self.path)
        except (OSError, csv.Error) as e:
            logger.error(f"Exception saving plot file {self.path}: {e}")
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            self._record_write_error()
            return []

        if pruned:
            logger.info(f"Dropped {pruned} record(s) outside retention from {self.path}")
        if self.metrics:
            self.metrics.record_save(self.title, len(retained), pruned)
        return retained

    def append(
        self,
        new_records: Sequence[SeriesRecord],
        policy: WindowPolicy,
        history: BuildHistory
    ) -> List[SeriesRecord]:
        """Add records from one build after the stored ones and save with retention."""
        with _lock_for(self.path):
            records = self.load()
            if self.last_load_failed:
                backup = self.path.with_name(self.path.name + ".corrupt")
                try:
                    shutil.copy2(self.path, backup)
                    logger.warning(f"Unreadable plot file {self.path} copied to {backup}")
                except OSError as e:
                    logger.error(f"Could not back up unreadable plot file {self.path}: {e}")

            records.extend(new_records)
            return self.save(records, policy, history)

    def _record_write_error(self):
        if self.metrics:
            self.metrics.record_store_error("write")
