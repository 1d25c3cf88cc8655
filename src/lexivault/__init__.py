"""Lexivault — personal vocabulary store with full-text and semantic search."""

__version__ = "0.3.0"
