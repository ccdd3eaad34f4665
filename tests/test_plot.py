"""End to end tests: record builds into a plot and read them back."""
from prometheus_client import CollectorRegistry

from buildplot.config import CsvSeriesConfig, PlotConfig, PropertiesSeriesConfig
from buildplot.history import BuildHistory
from buildplot.metrics import IngestMetrics
from buildplot.plot import Plot, description_for_build, parse_number
from buildplot.workspace import Workspace


def record_builds(plot, history, tmp_path, values):
    """Run one build per entry of values, each writing a two column CSV."""
    for index, (a, b) in enumerate(values):
        workspace = tmp_path / f"ws{index}"
        workspace.mkdir()
        (workspace / "data.csv").write_text(f"a,b\n{a},{b}\n", encoding="utf-8")
        build = history.new_build(f"build {index + 1}", 1_700_000_000_000 + index * 60_000)
        plot.add_build(build, Workspace(workspace), history, console=lambda line: None)


def csv_plot(tmp_path, **kwargs):
    config = PlotConfig(title="Sizes", series=[CsvSeriesConfig(file="data.csv")], **kwargs)
    return Plot(config, tmp_path / "data")


def test_single_build_dataset(tmp_path):
    """One build produces one column with a row per CSV header."""
    plot = csv_plot(tmp_path)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 2)])

    dataset = plot.build_dataset(history)

    assert dataset.get_row_keys() == ["a", "b"]
    assert [c.build_number for c in dataset.get_column_keys()] == [1]
    assert dataset.get_value(0, 0) == 1
    assert dataset.get_value(1, 0) == 2


def test_window_keeps_latest_builds_on_disk(tmp_path):
    """With a window of two only the last two builds stay in the series file."""
    plot = csv_plot(tmp_path, num_builds="2")
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 1), (2, 2), (3, 3)])

    assert sorted({r.build_number for r in plot.store.load()}) == [2, 3]
    dataset = plot.build_dataset(history)
    assert [c.build_number for c in dataset.get_column_keys()] == [2, 3]


def test_deleted_build_is_pruned(tmp_path):
    """Records of a deleted build disappear on the next save."""
    plot = csv_plot(tmp_path)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 1), (2, 2)])

    history.remove(1)
    later = tmp_path / "later"
    later.mkdir()
    record_builds(plot, history, later, [(3, 3)])

    assert sorted({r.build_number for r in plot.store.load()}) == [2, 3]


def test_keep_records_retains_deleted_build(tmp_path):
    """keep_records keeps data of deleted builds inside the window."""
    plot = csv_plot(tmp_path, keep_records=True)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 1), (2, 2)])
    history.remove(1)

    dataset = plot.build_dataset(history)

    assert [c.build_number for c in dataset.get_column_keys()] == [1, 2]


def test_num_builds_override_and_right_build(tmp_path):
    """Rendering can narrow the window and stop at an earlier build."""
    plot = csv_plot(tmp_path)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 1), (2, 2), (3, 3), (4, 4)])

    narrowed = plot.build_dataset(history, num_builds="2")
    as_of = plot.build_dataset(history, num_builds="2", right_build_num=2)

    assert [c.build_number for c in narrowed.get_column_keys()] == [3, 4]
    assert [c.build_number for c in as_of.get_column_keys()] == [1, 2]


def test_non_numeric_values_are_skipped(tmp_path):
    """Stored values that are not numbers never reach the dataset."""
    plot = csv_plot(tmp_path)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [("n/a", "2.5")])

    dataset = plot.build_dataset(history)

    assert dataset.get_row_keys() == ["b"]
    assert dataset.get_value(0, 0) == 2.5


def test_descriptions_as_column_labels(tmp_path):
    """use_descr labels columns with build descriptions."""
    plot = csv_plot(tmp_path, use_descr=True)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 1)])

    dataset = plot.build_dataset(history)
    column = dataset.get_column_key(0)
    tooltips = plot.column_tooltips(dataset, history)

    assert str(column) == "build 1"
    assert tooltips[column] == column.num_date_string()


def test_tooltips_flatten_description_markup(tmp_path):
    """Tooltips show the description with paragraph and line breaks as commas."""
    plot = csv_plot(tmp_path)
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 1)])
    history.get(1).description = "first<p>second<br>  third"

    dataset = plot.build_dataset(history)
    tooltips = plot.column_tooltips(dataset, history)

    assert tooltips[dataset.get_column_key(0)] == "first, second, third"
    assert str(dataset.get_column_key(0)).startswith("#1 (")


def test_build_table(tmp_path):
    """The table has one row per build and one column per series."""
    config = PlotConfig(
        title="Mixed",
        series=[CsvSeriesConfig(file="data.csv"), PropertiesSeriesConfig(file="p.properties", label="p")],
    )
    plot = Plot(config, tmp_path / "data")
    history = BuildHistory()

    first = tmp_path / "ws1"
    first.mkdir()
    (first / "data.csv").write_text("a\n1\n", encoding="utf-8")
    (first / "p.properties").write_text("YVALUE=9\n", encoding="utf-8")
    plot.add_build(history.new_build(None, 0), Workspace(first), history, console=lambda line: None)

    second = tmp_path / "ws2"
    second.mkdir()
    (second / "data.csv").write_text("a\n2\n", encoding="utf-8")
    plot.add_build(history.new_build(None, 0), Workspace(second), history, console=lambda line: None)

    assert plot.build_table(history) == [
        ["Build #", "a", "p"],
        ["1", "1", "9"],
        ["2", "2", ""],
    ]


def test_add_build_records_metrics(tmp_path):
    """Extracted point counts are exported per plot and file type."""
    registry = CollectorRegistry()
    config = PlotConfig(title="Sizes", series=[CsvSeriesConfig(file="data.csv")])
    plot = Plot(config, tmp_path / "data", IngestMetrics(registry=registry))
    history = BuildHistory()
    record_builds(plot, history, tmp_path, [(1, 2)])

    assert registry.get_sample_value(
        "buildplot_points_extracted_total", {"plot": "Sizes", "file_type": "csv"}
    ) == 2.0
    assert registry.get_sample_value("buildplot_records_stored", {"plot": "Sizes"}) == 2.0


def test_chart_options_and_str(tmp_path):
    """Rendering settings pass through untouched."""
    plot = csv_plot(tmp_path, yaxis="KiB", style="bar", logarithmic=True, group="g")

    options = plot.chart_options()

    assert options["style"] == "bar"
    assert options["logarithmic"] is True
    assert options["yaxis"] == "KiB"
    assert str(plot).startswith("TITLE(Sizes),YAXIS(KiB),NUMSERIES(1),GROUP(g)")


def test_parse_number():
    """Values parse as int first, then float."""
    assert parse_number("3") == 3 and isinstance(parse_number("3"), int)
    assert parse_number("3.25") == 3.25
    assert parse_number("x") is None


def test_description_for_unknown_build():
    """Builds without a description have no tooltip text."""
    assert description_for_build(BuildHistory(), 5) is None
