"""A configured plot: records build data and projects it into datasets."""
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
import logging
import re

from buildplot.config import PlotConfig
from buildplot.dataset import CategoryDataset, ColumnLabel
from buildplot.extractors import PointExtractor, create_extractor
from buildplot.history import BuildHistory, BuildInfo
from buildplot.metrics import IngestMetrics
from buildplot.points import SeriesRecord
from buildplot.store import SeriesStore
from buildplot.window import WindowPolicy, parse_window_size, UNLIMITED
from buildplot.workspace import Workspace

logger = logging.getLogger(__name__)
console_logger = logging.getLogger("buildplot.console")

PAT_DESCRIPTION_BREAKS = re.compile(r"<p> *|<br> *")


def parse_number(text: str):
    """Value of a stored record as int, else float, else None."""
    try:
        return int(text)
    except (TypeError, ValueError):
        pass
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


def description_for_build(history: BuildHistory, build_number: int) -> Optional[str]:
    """Truncated build description with paragraph and line breaks flattened."""
    description = history.truncated_description(build_number)
    if description is None:
        return None
    return PAT_DESCRIPTION_BREAKS.sub(", ", description)


class Plot:
    """One plot of a project, backed by a series file in the data directory."""

    def __init__(
        self,
        config: PlotConfig,
        data_dir: Union[str, Path],
        metrics: Optional[IngestMetrics] = None
    ):
        self.config = config
        self.metrics = metrics
        self.policy = WindowPolicy.from_config(config.num_builds, config.keep_records)
        self.store = SeriesStore(
            Path(data_dir) / config.store_file_name(),
            config.title,
            metrics=metrics
        )
        self.extractors: List[PointExtractor] = [
            create_extractor(series, metrics) for series in config.series
        ]

    @property
    def title(self) -> str:
        return self.config.title

    def add_build(
        self,
        build: BuildInfo,
        workspace: Workspace,
        history: BuildHistory,
        console: Optional[Callable[[str], None]] = None
    ) -> List[SeriesRecord]:
        """
        Extract every series from the workspace and store the points.

        Args:
            build: The build that just finished
            workspace: Where the build left its data files
            history: The job's builds, consulted for retention
            console: Build log sink, defaults to the buildplot.console logger

        Returns:
            The records retained in the series file after saving
        """
        console = console or console_logger.info

        new_records: List[SeriesRecord] = []
        for extractor in self.extractors:
            points = extractor.extract(workspace, build.number, console)

            for point in points:
                new_records.append(SeriesRecord(
                    value=point.value,
                    label=point.label,
                    build_number=build.number,
                    build_timestamp_millis=build.timestamp_millis,
                    url=point.url,
                ))

            if self.metrics:
                self.metrics.record_points(self.title, extractor.file_type, len(points))

        logger.info(
            f"Plot '{self.title}': build #{build.number} contributed {len(new_records)} point(s)"
        )
        return self.store.append(new_records, self.policy, history)

    def build_dataset(
        self,
        history: BuildHistory,
        num_builds: Optional[str] = None,
        right_build_num: Optional[int] = None,
        use_descr: Optional[bool] = None
    ) -> CategoryDataset:
        """
        Project the stored records into a windowed dataset.

        Args:
            history: The job's builds
            num_builds: Window override; the configured window when None
            right_build_num: Newest build to show, for charts "as of" a build
            use_descr: Label columns with build descriptions; configured when None
        """
        if use_descr is None:
            use_descr = self.config.use_descr

        dataset = CategoryDataset()
        for record in self.store.load():
            if not self.policy.visible(record.build_number, history, right_build_num):
                continue

            value = parse_number(record.value)
            if value is None:
                logger.error(
                    f"Skipping non-numeric value '{record.value}' of '{record.label}' "
                    f"in build #{record.build_number}"
                )
                continue

            text = description_for_build(history, record.build_number) if use_descr else None
            column = ColumnLabel(record.build_number, record.build_timestamp_millis, text)
            dataset.set_value(value, record.url, record.label, column)

        if num_builds is None:
            max_columns = self.policy.max_columns
        else:
            window = parse_window_size(num_builds)
            max_columns = UNLIMITED if window is None else window

        dataset.clip_dataset(max_columns)
        return dataset

    def column_tooltips(self, dataset: CategoryDataset, history: BuildHistory) -> Dict[ColumnLabel, Optional[str]]:
        """Tooltip for each visible column."""
        tooltips = {}
        for label in dataset.get_column_keys():
            if label.text is not None:
                tooltips[label] = label.num_date_string()
            else:
                tooltips[label] = description_for_build(history, label.build_number)
        return tooltips

    def build_table(self, history: BuildHistory) -> List[List[str]]:
        """
        Stored values as a table of builds by series.

        The first row is the header ("Build #" then one column per series
        label in first-seen order); every other row starts with a build
        number. Cells without a value are empty strings.
        """
        header = ["Build #"]
        table = [header]
        rows: Dict[int, List[str]] = {}

        for record in self.store.load():
            if not self.policy.retains(record.build_number, history):
                continue

            if record.label in header[1:]:
                index = header.index(record.label, 1)
            else:
                index = len(header)
                header.append(record.label)

            row = rows.get(record.build_number)
            if row is None:
                row = [str(record.build_number)]
                rows[record.build_number] = row
                table.append(row)

            while len(row) <= index:
                row.append("")
            row[index] = record.value

        for row in table:
            row.extend([""] * (len(header) - len(row)))
        return table

    def chart_options(self) -> Dict[str, Any]:
        """Settings used only by the chart renderer."""
        return {
            "title": self.config.title,
            "yaxis": self.config.yaxis,
            "style": self.config.style,
            "exclude_zero": self.config.exclude_zero,
            "logarithmic": self.config.logarithmic,
            "yaxis_minimum": self.config.yaxis_minimum,
            "yaxis_maximum": self.config.yaxis_maximum,
        }

    def __str__(self) -> str:
        return (
            f"TITLE({self.title}),YAXIS({self.config.yaxis}),"
            f"NUMSERIES({len(self.config.series)}),GROUP({self.config.group}),"
            f"NUMBUILDS({self.config.num_builds}),FILENAME({self.store.path.name})"
        )
