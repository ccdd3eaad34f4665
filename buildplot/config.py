"""Configuration models using Pydantic for validation."""
from typing import Annotated, List, Optional, Union, Literal
from pydantic import BaseModel, Field, field_validator, model_validator
import hashlib
import logging
import os

from buildplot.exclusion import normalize_flag

logger = logging.getLogger(__name__)

NODE_TYPES = ("BOOLEAN", "NODE", "NODESET", "NUMBER", "STRING")

PLOT_STYLES = (
    "area", "bar", "bar3d", "line", "line3d", "lineSimple",
    "stackedArea", "stackedbar", "stackedbar3d", "waterfall",
)


class CsvSeriesConfig(BaseModel):
    """Series read from a CSV file, one point per cell."""
    file_type: Literal["csv"] = "csv"
    file: str
    label: str = ""
    url: Optional[str] = None
    inclusion_flag: str = "OFF"
    exclusion_values: Optional[str] = None
    display_table: bool = False

    @field_validator('inclusion_flag', mode='before')
    @classmethod
    def validate_inclusion_flag(cls, v):
        """Unknown flags fall back to OFF."""
        return normalize_flag(v)


class PropertiesSeriesConfig(BaseModel):
    """Series read from a properties file with YVALUE and URL keys."""
    file_type: Literal["properties"] = "properties"
    file: str
    label: str = "Missing"


class XmlSeriesConfig(BaseModel):
    """Series selected from an XML file with an XPath expression."""
    file_type: Literal["xml"] = "xml"
    file: str
    label: str = ""
    xpath: str
    node_type: str = "NODESET"
    url: Optional[str] = None

    @field_validator('node_type', mode='before')
    @classmethod
    def validate_node_type(cls, v):
        """Unknown result kinds fall back to NODESET."""
        name = str(v or "").strip().upper()
        if name not in NODE_TYPES:
            logger.warning(f"Unknown XPath node type '{v}', using NODESET")
            return "NODESET"
        return name


SeriesConfig = Annotated[
    Union[CsvSeriesConfig, PropertiesSeriesConfig, XmlSeriesConfig],
    Field(discriminator="file_type"),
]


class PlotConfig(BaseModel):
    """Configuration for a single plot."""
    title: str
    yaxis: str = ""
    group: str = ""
    num_builds: Optional[str] = None
    csv_file_name: Optional[str] = None
    style: Literal[PLOT_STYLES] = "line"
    use_descr: bool = False
    keep_records: bool = False
    series: List[SeriesConfig] = Field(default_factory=list)

    # Passed through to the chart layer
    exclude_zero: bool = False
    logarithmic: bool = False
    yaxis_minimum: Optional[float] = None
    yaxis_maximum: Optional[float] = None

    @field_validator('num_builds', mode='before')
    @classmethod
    def coerce_num_builds(cls, v):
        """Accept numbers as well as strings for the window size."""
        if v is None:
            return None
        return str(v)

    def store_file_name(self) -> str:
        """Name of the series file, derived from the title when not configured."""
        if self.csv_file_name and self.csv_file_name.strip():
            return self.csv_file_name.strip()
        digest = hashlib.md5(self.title.encode()).hexdigest()
        return f"plot-{digest[:12]}.csv"


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    data_dir: str = "./plots"
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    plots: List[PlotConfig] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator('plots')
    @classmethod
    def validate_plots(cls, v):
        """Validate plot configurations."""
        if not v:
            raise ValueError("At least one plot must be defined")

        titles = [p.title for p in v]
        if len(titles) != len(set(titles)):
            raise ValueError("Plot titles must be unique")

        return v

    @model_validator(mode='after')
    def validate_store_files_unique(self):
        """Two plots must never share a series file."""
        seen = {}
        for plot in self.plots:
            name = plot.store_file_name()
            if name in seen:
                raise ValueError(
                    f"Plots '{seen[name]}' and '{plot.title}' use the same file '{name}'"
                )
            seen[name] = plot.title
        return self

    def get_plot(self, title: str) -> PlotConfig:
        for plot in self.plots:
            if plot.title == title:
                return plot
        raise KeyError(f"No plot titled '{title}'")


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_data_dir := os.getenv('BUILDPLOT_DATA_DIR'):
        raw_config.setdefault('global', {})
        raw_config['global']['data_dir'] = env_data_dir

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})
        raw_config['global']['log_level'] = env_log_level

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
