"""Sheet-facing helpers: ticker universe, day-off check and the trend report."""
