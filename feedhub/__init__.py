"""FeedHub: aggregated per-user content feed."""

__version__ = "1.0.0"
