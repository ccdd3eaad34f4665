"""Grouping of plots into reports."""
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

from buildplot.config import CsvSeriesConfig
from buildplot.history import BuildHistory
from buildplot.plot import Plot

NO_GROUP = "nogroup"


def url_group(group: Optional[str]) -> str:
    """URL friendly group name: blank groups become "nogroup", slashes become spaces."""
    if not group:
        return NO_GROUP
    return group.replace("/", " ")


def url_encoded_group(group: Optional[str]) -> str:
    return quote(url_group(group), safe="")


def group_plots(plots: Iterable[Plot]) -> Dict[str, List[Plot]]:
    """Plots by URL group name, each list sorted by title."""
    groups: Dict[str, List[Plot]] = {}
    for plot in plots:
        groups.setdefault(url_group(plot.config.group), []).append(plot)
    for members in groups.values():
        members.sort(key=lambda p: p.title)
    return groups


class PlotReport:
    """The plots of one group, sorted by title."""

    def __init__(self, group: str, plots: List[Plot]):
        self.group = group
        self.plots = sorted(plots, key=lambda p: p.title)

    def display_table_flag(self, index: int) -> bool:
        """True if the plot's first series is a CSV series shown as a table."""
        series = self.plots[index].config.series
        if not series:
            return False
        first = series[0]
        return isinstance(first, CsvSeriesConfig) and first.display_table

    def get_table(self, index: int, history: BuildHistory) -> List[List[str]]:
        return self.plots[index].build_table(history)
