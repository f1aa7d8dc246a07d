"""repo-analyzer: aggregated analytics for a GitHub repository."""

__version__ = "0.1.0"
