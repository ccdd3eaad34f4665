"""Per-build measurement plots: extraction, series storage and windowed datasets."""
