"""
Adapters for the remote sources the pipeline ingests from.
"""

from .commons import CategoryPage, CommonsClient, SourceError, file_path_url

__all__ = ["CategoryPage", "CommonsClient", "SourceError", "file_path_url"]
