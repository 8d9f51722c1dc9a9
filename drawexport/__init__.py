"""Incremental export of released drawing revisions to PDF files."""

__version__ = "0.1.0"
