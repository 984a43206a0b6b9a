"""stocktrend — daily price ingestion, moving averages and trend signals per ticker."""

__version__ = "0.1.0"
