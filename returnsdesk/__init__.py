"""Returns Desk: marketplace returns aggregation, caching and review annotations."""

__version__ = "1.0.0"
