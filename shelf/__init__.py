"""Hybrid lexical and semantic search over saved bookmarks."""

__version__ = "0.1.0"
