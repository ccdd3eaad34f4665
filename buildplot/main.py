"""Command line entry point for recording and inspecting build plots."""
import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

import yaml

from buildplot.config import Config, load_config
from buildplot.dataset import CategoryDataset
from buildplot.history import BuildHistory, BuildInfo
from buildplot.metrics import IngestMetrics
from buildplot.plot import Plot
from buildplot.report import PlotReport, group_plots, url_encoded_group
from buildplot.workspace import Workspace

HISTORY_FILE = "builds.yaml"

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    datefmt = "%Y-%m-%d %H:%M:%S"

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter(datefmt=datefmt))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt=datefmt
        ))

    logging.basicConfig(level=level, handlers=[handler])


def build_plots(config: Config, metrics: Optional[IngestMetrics] = None) -> List[Plot]:
    data_dir = Path(config.global_.data_dir)
    return [Plot(plot_config, data_dir, metrics) for plot_config in config.plots]


def load_plot(config: Config, title: str, metrics: Optional[IngestMetrics] = None) -> Plot:
    """The configured plot with this title, KeyError if there is none."""
    return Plot(config.get_plot(title), Path(config.global_.data_dir), metrics)


def cmd_record(args, config: Config, metrics: IngestMetrics) -> int:
    """Register a finished build and record its data for every plot."""
    history_path = Path(config.global_.data_dir) / HISTORY_FILE
    history = BuildHistory.load(history_path)

    if args.build_number is None:
        build = history.new_build(args.description, args.timestamp)
    else:
        build = history.get(args.build_number)
        if build is None:
            timestamp = args.timestamp if args.timestamp is not None else int(time.time() * 1000)
            build = BuildInfo(args.build_number, timestamp, args.description)
            history.add(build)
    history.save(history_path)

    workspace = Workspace(args.workspace)
    logger.info(f"Recording build #{build.number} from workspace {workspace}")

    for plot in build_plots(config, metrics):
        records = plot.add_build(build, workspace, history, console=print)
        logger.info(f"Plot '{plot.title}' now holds {len(records)} record(s)")
    return 0


def format_dataset(dataset: CategoryDataset) -> List[str]:
    """Render a dataset as aligned text lines."""
    columns = [str(key) for key in dataset.get_column_keys()]
    rows = [
        [str(dataset.get_row_key(r))] + [
            "-" if dataset.get_value(r, c) is None else str(dataset.get_value(r, c))
            for c in range(dataset.get_column_count())
        ]
        for r in range(dataset.get_row_count())
    ]
    header = ["Series"] + columns
    widths = [
        max(len(line[i]) for line in [header] + rows)
        for i in range(len(header))
    ]
    return [
        "  ".join(cell.ljust(width) for cell, width in zip(line, widths)).rstrip()
        for line in [header] + rows
    ]


def cmd_show(args, config: Config, metrics: IngestMetrics) -> int:
    """Print the windowed dataset of one plot."""
    history = BuildHistory.load(Path(config.global_.data_dir) / HISTORY_FILE)
    plot = load_plot(config, args.plot, metrics)

    dataset = plot.build_dataset(
        history,
        num_builds=args.num_builds,
        right_build_num=args.right_build_num
    )

    options = plot.chart_options()
    print(f"{options['title']} ({options['yaxis'] or 'no y-axis label'})")
    for line in format_dataset(dataset):
        print(line)

    print()
    for row in dataset.row_summary():
        if row["count"] == 0:
            print(f"{row['series']}: no data")
            continue
        print(
            f"{row['series']}: n={row['count']} min={row['min']:g} "
            f"max={row['max']:g} mean={row['mean']:g} last={row['last']:g}"
        )
    return 0


def cmd_table(args, config: Config, metrics: IngestMetrics) -> int:
    """Print the build by series table of one plot."""
    history = BuildHistory.load(Path(config.global_.data_dir) / HISTORY_FILE)
    plot = load_plot(config, args.plot, metrics)
    for row in plot.build_table(history):
        print(",".join(row))
    return 0


def cmd_list(args, config: Config, metrics: IngestMetrics) -> int:
    """Print the plots by group."""
    for group, plots in sorted(group_plots(build_plots(config, metrics)).items()):
        report = PlotReport(group, plots)
        print(f"{group} [{url_encoded_group(group)}]")
        for index, plot in enumerate(report.plots):
            marker = " (table)" if report.display_table_flag(index) else ""
            print(f"  {plot.title}{marker}")
    return 0


def main(argv=None):
    """Run the buildplot command line."""
    parser = argparse.ArgumentParser(
        description="Build plots - record per-build measurements and inspect their history"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--metrics-file",
        help="Write ingestion metrics in Prometheus text format to this file"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Record the data files of a finished build")
    record.add_argument("--workspace", "-w", required=True, help="Build workspace directory")
    record.add_argument("--build-number", "-b", type=int, help="Build number (next number if omitted)")
    record.add_argument("--timestamp", type=int, help="Build start time in epoch milliseconds")
    record.add_argument("--description", help="Build description")
    record.set_defaults(handler=cmd_record)

    show = subparsers.add_parser("show", help="Print the dataset of a plot")
    show.add_argument("--plot", "-p", required=True, help="Plot title")
    show.add_argument("--num-builds", "-n", help="Number of builds to show")
    show.add_argument("--right-build-num", type=int, help="Newest build to show")
    show.set_defaults(handler=cmd_show)

    table = subparsers.add_parser("table", help="Print the build table of a plot")
    table.add_argument("--plot", "-p", required=True, help="Plot title")
    table.set_defaults(handler=cmd_table)

    listing = subparsers.add_parser("list", help="List plots by group")
    listing.set_defaults(handler=cmd_list)

    args = parser.parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)

    metrics = IngestMetrics()
    try:
        status = args.handler(args, config, metrics)
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error reading build history: {e}", file=sys.stderr)
        return 1

    if args.metrics_file:
        metrics.write(args.metrics_file)
    return status


if __name__ == "__main__":
    sys.exit(main())
