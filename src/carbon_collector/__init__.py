"""carbon_collector: carbon-market price collection and quality assurance."""

__version__ = "0.1.0"
