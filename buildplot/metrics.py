"""Self-monitoring metrics for point ingestion using prometheus_client."""
from prometheus_client import (
    Counter, Gauge, CollectorRegistry, write_to_textfile
)
import logging

logger = logging.getLogger(__name__)


class IngestMetrics:
    """Counters and gauges describing extraction and store activity."""

    def __init__(self, registry=None, prefix="buildplot_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.points_total = Counter(
            f"{prefix}points_extracted_total",
            "Total number of data points extracted from build files",
            ["plot", "file_type"],
            registry=registry
        )

        self.extraction_errors_total = Counter(
            f"{prefix}extraction_errors_total",
            "Total number of series that failed to produce points",
            ["file_type"],
            registry=registry
        )

        self.records_stored = Gauge(
            f"{prefix}records_stored",
            "Number of records in the series file after the last save",
            ["plot"],
            registry=registry
        )

        self.records_pruned_total = Counter(
            f"{prefix}records_pruned_total",
            "Total number of records dropped by retention",
            ["plot"],
            registry=registry
        )

        self.store_errors_total = Counter(
            f"{prefix}store_errors_total",
            "Total number of series file read or write failures",
            ["operation"],
            registry=registry
        )

    def record_points(self, plot: str, file_type: str, count: int):
        """Record extracted points."""
        self.points_total.labels(plot=plot, file_type=file_type).inc(count)

    def record_extraction_error(self, file_type: str):
        """Record a series that failed to load."""
        self.extraction_errors_total.labels(file_type=file_type).inc()

    def record_save(self, plot: str, stored: int, pruned: int):
        """Record the outcome of a store save."""
        self.records_stored.labels(plot=plot).set(stored)
        if pruned:
            self.records_pruned_total.labels(plot=plot).inc(pruned)

    def record_store_error(self, operation: str):
        """Record a store read or write failure."""
        self.store_errors_total.labels(operation=operation).inc()

    def write(self, path: str):
        """Write all metrics in the text exposition format."""
        write_to_textfile(path, self.registry)
        logger.info(f"Wrote metrics to {path}")
