"""Tests for configuration loading and validation."""
import pytest
import yaml

from buildplot.config import (
    Config,
    CsvSeriesConfig,
    PlotConfig,
    PropertiesSeriesConfig,
    XmlSeriesConfig,
    load_config,
)


def write_config(tmp_path, raw):
    path = tmp_path / "plots.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return str(path)


def test_load_config_with_all_series_types(tmp_path):
    """Series entries are typed by file_type."""
    path = write_config(tmp_path, {
        "global": {"data_dir": "out", "log_level": "DEBUG"},
        "plots": [{
            "title": "Mixed",
            "num_builds": 10,
            "series": [
                {"file_type": "csv", "file": "a.csv", "inclusion_flag": "exclude_by_label", "exclusion_values": "x"},
                {"file_type": "properties", "file": "b.properties"},
                {"file_type": "xml", "file": "c.xml", "xpath": "//v", "node_type": "number"},
            ],
        }],
    })

    config = load_config(path)
    plot = config.get_plot("Mixed")

    assert config.global_.data_dir == "out"
    assert plot.num_builds == "10"
    assert isinstance(plot.series[0], CsvSeriesConfig)
    assert plot.series[0].inclusion_flag == "EXCLUDE_BY_STRING"
    assert isinstance(plot.series[1], PropertiesSeriesConfig)
    assert plot.series[1].label == "Missing"
    assert isinstance(plot.series[2], XmlSeriesConfig)
    assert plot.series[2].node_type == "NUMBER"


def test_unknown_node_type_falls_back_to_nodeset():
    """Unrecognised XPath result kinds are treated as node sets."""
    series = XmlSeriesConfig(file="c.xml", xpath="//v", node_type="TREE")

    assert series.node_type == "NODESET"


def test_unknown_inclusion_flag_is_off():
    """Unrecognised inclusion flags disable filtering."""
    series = CsvSeriesConfig(file="a.csv", inclusion_flag="SOMETIMES")

    assert series.inclusion_flag == "OFF"


def test_environment_overrides(tmp_path, monkeypatch):
    """BUILDPLOT_DATA_DIR and LOG_LEVEL override the file."""
    path = write_config(tmp_path, {"plots": [{"title": "P"}]})
    monkeypatch.setenv("BUILDPLOT_DATA_DIR", "/var/plots")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    config = load_config(path)

    assert config.global_.data_dir == "/var/plots"
    assert config.global_.log_level == "WARNING"


def test_missing_config_file(tmp_path):
    """A missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_invalid_config_raises_value_error(tmp_path):
    """Validation failures surface as ValueError."""
    no_plots = write_config(tmp_path, {"plots": []})
    with pytest.raises(ValueError):
        load_config(no_plots)

    bad_style = write_config(tmp_path, {"plots": [{"title": "P", "style": "pie"}]})
    with pytest.raises(ValueError):
        load_config(bad_style)


def test_duplicate_titles_rejected():
    """Plot titles identify plots and must be unique."""
    with pytest.raises(ValueError):
        Config(plots=[PlotConfig(title="A"), PlotConfig(title="A")])


def test_shared_store_file_rejected():
    """Two plots cannot write the same series file."""
    with pytest.raises(ValueError):
        Config(plots=[
            PlotConfig(title="A", csv_file_name="same.csv"),
            PlotConfig(title="B", csv_file_name="same.csv"),
        ])


def test_store_file_name():
    """The series file is named explicitly or derived from the title."""
    assert PlotConfig(title="A", csv_file_name=" a.csv ").store_file_name() == "a.csv"

    derived = PlotConfig(title="A").store_file_name()
    assert derived.startswith("plot-") and derived.endswith(".csv")
    assert derived == PlotConfig(title="A", csv_file_name="").store_file_name()
    assert derived != PlotConfig(title="B").store_file_name()


def test_get_plot_unknown_title():
    """Looking up an unknown plot raises KeyError."""
    config = Config(plots=[PlotConfig(title="A")])

    with pytest.raises(KeyError):
        config.get_plot("B")
