"""Sparse spreadsheet cell store with sharing, structural edits and archive import/export."""

__version__ = "1.0.0"
