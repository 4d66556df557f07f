"""Bootstrap and reconciliation pipeline for the market-insights reference store."""

__version__ = "0.1.0"
