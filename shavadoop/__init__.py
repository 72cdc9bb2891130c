"""Shavadoop: a minimal distributed MapReduce word count."""

__version__ = "0.1.0"
